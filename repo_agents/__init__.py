"""Repo agents output stage: validate and execute agent-declared side effects."""
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (directory containing repo_agents/) so tokens and
# directory overrides are found when running from any directory.
_project_root = Path(__file__).resolve().parent.parent
load_dotenv(_project_root / ".env")
