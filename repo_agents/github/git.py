"""
Local git working-copy operations used by create-pr.
Commands are argument lists passed to subprocess; nothing goes through a shell.
"""
import asyncio
import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

from repo_agents.errors import GitCommandError
from repo_agents.security.paths import is_safe_relative_path

logger = logging.getLogger(__name__)

FALLBACK_DEFAULT_BRANCH = "master"


class GitWorkspace:
    """A git checkout at ``root`` with a single remote."""

    def __init__(self, root: Path, remote: str = "origin"):
        self.root = Path(root)
        self.remote = remote

    def _run(self, args: Sequence[str], check: bool = True) -> subprocess.CompletedProcess:
        result = subprocess.run(
            ["git"] + list(args),
            cwd=self.root,
            capture_output=True,
            text=True,
        )
        if check and result.returncode != 0:
            raise GitCommandError(list(args), result.returncode, result.stderr)
        return result

    async def run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return await asyncio.to_thread(self._run, args, check)

    async def configure_identity(self, user: str, email: str) -> None:
        await self.run("config", "user.name", user)
        await self.run("config", "user.email", email)

    async def checkout_default(self, branch: str) -> str:
        """Check out ``branch``, falling back to ``master``; returns the branch checked out."""
        try:
            await self.run("checkout", branch)
            return branch
        except GitCommandError:
            if branch == FALLBACK_DEFAULT_BRANCH:
                raise
            logger.info(f"Branch {branch} not found, falling back to {FALLBACK_DEFAULT_BRANCH}")
            await self.run("checkout", FALLBACK_DEFAULT_BRANCH)
            return FALLBACK_DEFAULT_BRANCH

    async def remote_branch_exists(self, branch: str) -> bool:
        result = await self.run("ls-remote", "--exit-code", "--heads", self.remote, branch, check=False)
        if result.returncode == 0:
            return True
        # ls-remote --exit-code uses 2 for "no matching refs"
        if result.returncode == 2:
            return False
        raise GitCommandError(["ls-remote", "--exit-code", "--heads", self.remote, branch], result.returncode, result.stderr)

    async def delete_remote_branch(self, branch: str) -> None:
        await self.run("push", self.remote, "--delete", branch)

    async def delete_local_branch(self, branch: str) -> bool:
        result = await self.run("branch", "-D", branch, check=False)
        return result.returncode == 0

    async def create_branch(self, branch: str) -> None:
        await self.run("checkout", "-b", branch)

    async def write_files(self, files: Sequence[tuple]) -> List[str]:
        """Write ``(path, content)`` pairs under the checkout and stage them."""
        written = []
        root = self.root.resolve()
        for path, content in files:
            if not is_safe_relative_path(path):
                raise ValueError(f"Refusing to write outside the repository: {path}")
            target = (root / path).resolve()
            if root not in target.parents:
                raise ValueError(f"Refusing to write outside the repository: {path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            await self.run("add", "--", path)
            written.append(path)
        return written

    async def commit(self, message: str, sign: bool = False) -> None:
        args = ["commit", "-m", message]
        if sign:
            args.insert(1, "-S")
        await self.run(*args)

    async def push(self, branch: str, set_upstream: bool = True) -> None:
        args = ["push"]
        if set_upstream:
            args.append("-u")
        await self.run(*args, self.remote, branch)
