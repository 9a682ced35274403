"""
Repository cloning with an on-disk cache.

Clones land in ``<base_dir>/<repo name>``. An existing directory is reused
as-is. While a clone is in progress a ``<repo name>.cloning`` marker sits
next to it, so a directory left behind by a crashed run is recognised and
re-cloned instead of being trusted.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path

from ..errors import CloneAccessDenied, CloneError, CloneNetworkError, ClonePathConflict


logger = logging.getLogger(__name__)


ACCESS_DENIED_HINTS = (
    "authentication failed",
    "could not read username",
    "terminal prompts disabled",
    "repository not found",
    "permission denied",
    "access denied",
    "returned error: 403",
    "returned error: 401",
)

NETWORK_HINTS = (
    "could not resolve host",
    "failed to connect",
    "connection timed out",
    "connection refused",
    "network is unreachable",
    "unable to access",
    "early eof",
    "remote end hung up",
)


def classify_clone_failure(stderr: str, repo: str) -> CloneError:
    """Map git's stderr to a typed clone error."""
    text = stderr.lower()
    message = stderr.strip().splitlines()[-1] if stderr.strip() else "git clone failed"
    if any(hint in text for hint in ACCESS_DENIED_HINTS):
        return CloneAccessDenied(f"Access denied cloning {repo}: {message}")
    if any(hint in text for hint in NETWORK_HINTS):
        return CloneNetworkError(f"Network failure cloning {repo}: {message}")
    return CloneError(f"Cloning {repo} failed: {message}")


class RepoCloner:
    """Clones repositories (with submodules) into a cache directory."""

    def __init__(
        self,
        base_dir: Path,
        timeout: float = 300.0,
        git_binary: str = "git",
        web_url: str = "https://github.com",
    ):
        self.base_dir = Path(base_dir).absolute()
        self.timeout = timeout
        self.git_binary = git_binary
        self.web_url = web_url.rstrip("/")
        self._locks: dict[str, asyncio.Lock] = {}

    def is_available(self) -> tuple[bool, str]:
        """Check that git is installed."""
        path = shutil.which(self.git_binary)
        if not path:
            return False, f"{self.git_binary} not found in PATH"
        return True, path

    def target_dir(self, repo: str) -> Path:
        return self.base_dir / repo

    def marker_path(self, repo: str) -> Path:
        return self.base_dir / f"{repo}.cloning"

    def clone_url(self, owner: str, repo: str) -> str:
        return f"{self.web_url}/{owner}/{repo}.git"

    def _lock_for(self, repo: str) -> asyncio.Lock:
        lock = self._locks.get(repo)
        if lock is None:
            lock = self._locks[repo] = asyncio.Lock()
        return lock

    async def ensure_clone(self, owner: str, repo: str, branch: str | None = None) -> Path:
        """Return a local working copy, cloning it if needed.

        Raises:
            ClonePathConflict: The target exists but is not a directory
            CloneError: The cache directory cannot be created or written
            CloneAccessDenied: The remote refused access
            CloneNetworkError: Network failure or timeout
            CloneError: Any other git failure
        """
        async with self._lock_for(repo):
            target = self.target_dir(repo)
            marker = self.marker_path(repo)

            if target.exists() and not target.is_dir():
                raise ClonePathConflict(f"Clone target {target} exists and is not a directory")

            if target.is_dir():
                if not marker.exists():
                    logger.info("Reusing existing clone of %s at %s", repo, target)
                    return target
                logger.warning("Discarding partial clone of %s left at %s", repo, target)
                shutil.rmtree(target, ignore_errors=True)

            try:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                marker.touch()
            except OSError as e:
                raise CloneError(f"Cannot prepare clone directory {self.base_dir} for {repo}: {e}") from e
            try:
                await self._run_clone(owner, repo, branch, target)
            except BaseException:
                # Includes cancellation: never leave a half-written clone behind
                shutil.rmtree(target, ignore_errors=True)
                marker.unlink(missing_ok=True)
                raise
            marker.unlink(missing_ok=True)
            return target

    async def _run_clone(self, owner: str, repo: str, branch: str | None, target: Path) -> None:
        cmd = [self.git_binary, "clone", "--recurse-submodules"]
        if branch:
            cmd.extend(["--branch", branch])
        cmd.extend([self.clone_url(owner, repo), str(target)])

        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"

        logger.info("Cloning %s/%s into %s", owner, repo, target)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as e:
            raise CloneError(f"{self.git_binary} not found: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise CloneNetworkError(f"Cloning {owner}/{repo} timed out after {self.timeout}s") from None
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            raise classify_clone_failure(stderr.decode("utf-8", errors="replace"), f"{owner}/{repo}")
