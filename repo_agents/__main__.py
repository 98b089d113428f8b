import sys

from repo_agents.cli import main

if __name__ == "__main__":
    sys.exit(main())
