"""
Source acquisition strategies.

Two interchangeable ways to get a contest's Solidity sources:

- DirectFetchStrategy: list the tree through the API and download each blob.
  Every file is compiled on its own.
- CloneStrategy: clone the whole repository (with submodules) and compile the
  ``src`` directory as one project, using ``remappings.txt`` if present.

Both split into ``locate`` (tree listed / repository cloned) and ``acquire``
(sources decoded / read from disk) so the orchestrator can track each step.
"""

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from ..errors import DecodeError, HarvestError, SourceReadError
from ..github.client import GitHubClient
from ..github.resolver import RepositoryResolver, TreeEntry
from .clone import RepoCloner
from .remappings import Remapping, load_remapping_file


logger = logging.getLogger(__name__)


class StrategyKind(Enum):
    DIRECT = "direct"
    CLONE = "clone"


@dataclass(frozen=True)
class SourceUnit:
    """One acquired source file."""

    path: str      # repository-relative path, used as the compiler key
    filename: str  # last path segment
    text: str
    raw: str | None = None  # encoded payload when fetched through the API


@dataclass
class SourceLocation:
    """Where a contest's sources live once the tree is listed or cloned."""

    owner: str
    repo: str
    branch: str
    entries: list[TreeEntry] = field(default_factory=list)
    root: Path | None = None


@dataclass
class AcquiredSources:
    """Everything the compile step needs for one contest."""

    units: list[SourceUnit] = field(default_factory=list)
    discovered_files: list[str] = field(default_factory=list)
    dropped: list[tuple[str, str]] = field(default_factory=list)  # [(path, reason), ...]
    project_root: Path | None = None
    compile_root: Path | None = None
    remappings: list[Remapping] = field(default_factory=list)
    remapping_lines_skipped: int = 0
    decode_failures: int = 0


def decode_blob_content(content: str) -> str:
    """Decode a base64 blob payload to text.

    GitHub wraps base64 output every 60 columns, so line breaks are removed
    first. Invalid UTF-8 sequences are replaced rather than rejected.

    Raises:
        DecodeError: If the payload is not valid base64
    """
    if not isinstance(content, str):
        raise DecodeError(f"Blob content must be a string, got {type(content).__name__}")
    cleaned = content.replace("\n", "").replace("\r", "")
    try:
        data = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 payload: {e}") from e
    return data.decode("utf-8", errors="replace")


class SourceAcquisitionStrategy(ABC):
    """Base class for acquisition strategies."""

    kind: StrategyKind
    compile_mode: str  # "single" or "project"

    @abstractmethod
    async def locate(self, owner: str, repo: str, branch: str) -> SourceLocation:
        """List the tree or clone the repository."""
        pass

    @abstractmethod
    async def acquire(self, location: SourceLocation) -> AcquiredSources:
        """Turn a location into source units."""
        pass


class DirectFetchStrategy(SourceAcquisitionStrategy):
    """Fetch and decode Solidity files one by one through the API."""

    kind = StrategyKind.DIRECT
    compile_mode = "single"

    def __init__(self, client: GitHubClient, resolver: RepositoryResolver | None = None, concurrency: int = 4):
        self.client = client
        self.resolver = resolver or RepositoryResolver(client)
        self.concurrency = max(1, concurrency)

    async def locate(self, owner: str, repo: str, branch: str) -> SourceLocation:
        entries = await self.resolver.list_tree(owner, repo, branch)
        return SourceLocation(owner=owner, repo=repo, branch=branch, entries=entries)

    async def fetch_unit(self, entry: TreeEntry) -> SourceUnit:
        """Download one blob and decode it.

        Raises:
            DecodeError: If the payload is not base64
            TransportError, AccessDeniedError: If the blob cannot be fetched
        """
        blob = await self.client.get_json(entry.url)
        if not isinstance(blob, dict) or "content" not in blob:
            raise DecodeError(f"Blob response for {entry.path} has no content")
        encoding = blob.get("encoding", "base64")
        if encoding != "base64":
            raise DecodeError(f"Unsupported blob encoding {encoding!r} for {entry.path}")
        content = blob["content"]
        return SourceUnit(
            path=entry.path,
            filename=entry.filename,
            text=decode_blob_content(content),
            raw=content,
        )

    async def acquire(self, location: SourceLocation) -> AcquiredSources:
        result = AcquiredSources(discovered_files=[e.path for e in location.entries])
        semaphore = asyncio.Semaphore(self.concurrency)

        async def fetch_one(entry: TreeEntry):
            async with semaphore:
                try:
                    return await self.fetch_unit(entry)
                except HarvestError as e:
                    return e

        outcomes = await asyncio.gather(*(fetch_one(entry) for entry in location.entries))

        for entry, outcome in zip(location.entries, outcomes):
            if isinstance(outcome, SourceUnit):
                result.units.append(outcome)
                continue
            if isinstance(outcome, DecodeError):
                result.decode_failures += 1
            result.dropped.append((entry.path, str(outcome)))
            logger.warning(
                "Dropping %s from %s/%s: %s", entry.path, location.owner, location.repo, outcome
            )

        return result


class CloneStrategy(SourceAcquisitionStrategy):
    """Clone the repository and compile its source directory as a project."""

    kind = StrategyKind.CLONE
    compile_mode = "project"

    def __init__(
        self,
        cloner: RepoCloner,
        compile_root: str = "src",
        remappings_file: str = "remappings.txt",
    ):
        self.cloner = cloner
        self.compile_root = compile_root
        self.remappings_file = remappings_file

    async def locate(self, owner: str, repo: str, branch: str) -> SourceLocation:
        root = await self.cloner.ensure_clone(owner, repo, branch)
        return SourceLocation(owner=owner, repo=repo, branch=branch, root=root)

    async def acquire(self, location: SourceLocation) -> AcquiredSources:
        if location.root is None:
            raise HarvestError(f"No working copy for {location.owner}/{location.repo}")

        root = location.root
        compile_root = root / self.compile_root
        if not compile_root.is_dir():
            raise HarvestError(
                f"{location.owner}/{location.repo} has no {self.compile_root}/ directory to compile"
            )

        result = AcquiredSources(project_root=root, compile_root=compile_root)

        try:
            for path in sorted(compile_root.rglob("*.sol")):
                if not path.is_file():
                    continue
                rel = path.relative_to(root).as_posix()
                result.discovered_files.append(rel)
                result.units.append(SourceUnit(
                    path=rel,
                    filename=path.name,
                    text=path.read_text(encoding="utf-8", errors="replace"),
                ))
        except OSError as e:
            raise SourceReadError(
                f"Cannot read sources of {location.owner}/{location.repo}: {e}"
            ) from e

        remappings_path = root / self.remappings_file
        if remappings_path.is_file():
            parsed = load_remapping_file(remappings_path)
            result.remappings = parsed.entries
            result.remapping_lines_skipped = parsed.skipped

        return result


def build_strategy(config, client: GitHubClient | None = None, cloner: RepoCloner | None = None) -> SourceAcquisitionStrategy:
    """Select the acquisition strategy named in the config."""
    kind = StrategyKind(config.strategy)

    if kind == StrategyKind.CLONE:
        cloner = cloner or RepoCloner(
            base_dir=config.clone_dir,
            timeout=config.clone_timeout,
            web_url=config.github_web_url,
        )
        return CloneStrategy(
            cloner,
            compile_root=config.compile_root,
            remappings_file=config.remappings_file,
        )

    if client is None:
        raise ValueError("The direct strategy needs a GitHub client")
    return DirectFetchStrategy(client, concurrency=config.fetch_concurrency)
