"""
Repository resolution: default branch and Solidity file tree.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ..errors import BranchNotFoundError, HarvestError, NotFoundError, TransportError
from .client import GitHubClient


logger = logging.getLogger(__name__)


SOLIDITY_EXTENSIONS = (".sol",)

_GITHUB_URL = re.compile(r"^(?:https?://)?(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+)", re.I)
_GIT_SSH = re.compile(r"^git@github\.com:([^/\s]+)/([^/\s]+)$", re.I)


@dataclass(frozen=True)
class TreeEntry:
    """A node of a repository's recursive file listing."""

    path: str
    kind: str  # blob, tree, commit
    url: str

    @property
    def filename(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def is_solidity(self) -> bool:
        return self.kind == "blob" and self.path.endswith(SOLIDITY_EXTENSIONS)


def parse_repo_reference(reference: str, default_owner: str) -> tuple[str, str]:
    """Split a repository reference into (owner, name).

    Accepts ``https://github.com/owner/name``, ``git@github.com:owner/name.git``,
    ``owner/name`` or a bare ``name`` (owned by ``default_owner``).

    Raises:
        HarvestError: If the reference is empty
    """
    ref = (reference or "").strip().rstrip("/")
    if not ref:
        raise HarvestError("Contest has no repository reference")

    match = _GITHUB_URL.match(ref) or _GIT_SSH.match(ref)
    if match:
        owner, name = match.group(1), match.group(2)
    elif "://" in ref:
        # Some other host: keep the last path segment, like the listing's own links
        owner, name = default_owner, ref.rsplit("/", 1)[-1]
    elif "/" in ref:
        owner, name = ref.split("/", 1)
        name = name.split("/", 1)[0]
    else:
        owner, name = default_owner, ref

    name = name.removesuffix(".git")
    if not owner or not name:
        raise HarvestError(f"Cannot parse repository reference: {reference!r}")
    return owner, name


def solidity_entries(tree: Any) -> list[TreeEntry]:
    """Filter a git tree response down to Solidity blobs.

    Entries with the same filename in different directories are all kept.
    """
    entries = []
    for node in (tree or {}).get("tree", []) if isinstance(tree, dict) else []:
        if not isinstance(node, dict):
            continue
        path, kind, url = node.get("path"), node.get("type"), node.get("url")
        if not (isinstance(path, str) and isinstance(kind, str) and isinstance(url, str)):
            continue
        entry = TreeEntry(path=path, kind=kind, url=url)
        if entry.is_solidity:
            entries.append(entry)
    return entries


class RepositoryResolver:
    """Resolves branches and file trees through the GitHub API."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def resolve_default_branch(self, owner: str, repo: str) -> str:
        """Return the repository's default branch.

        Raises:
            BranchNotFoundError: If the lookup fails or the field is missing
        """
        url = self.client.api(f"repos/{owner}/{repo}")
        try:
            response = await self.client.fetch(url)
        except TransportError as e:
            logger.error("Failed to send request to GitHub API for %s/%s: %s", owner, repo, e)
            raise BranchNotFoundError(f"Default branch not found for {owner}/{repo}: {e}", url=url) from e

        if response.ok and isinstance(response.data, dict):
            branch = response.data.get("default_branch")
            if isinstance(branch, str) and branch:
                return branch

        logger.error("Failed to retrieve default branch for %s/%s (HTTP %d)", owner, repo, response.status)
        raise BranchNotFoundError(
            f"Default branch not found for {owner}/{repo}",
            status=response.status,
            url=url,
        )

    async def list_tree(self, owner: str, repo: str, branch: str) -> list[TreeEntry]:
        """List every Solidity blob on a branch.

        Raises:
            AccessDeniedError, NotFoundError, TransportError: If the tree cannot be read
        """
        url = self.client.api(f"repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}")
        tree = await self.client.get_json(url, params={"recursive": "1"})
        if not isinstance(tree, dict) or "tree" not in tree:
            raise NotFoundError(f"Tree response for {owner}/{repo}@{branch} has no entries", url=url)

        if tree.get("truncated"):
            logger.warning("Tree for %s/%s@%s is truncated; some files will be missing", owner, repo, branch)

        entries = solidity_entries(tree)
        logger.debug("Found %d Solidity files in %s/%s@%s", len(entries), owner, repo, branch)
        return entries
