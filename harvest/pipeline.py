"""
Harvest pipeline orchestrator.

Runs each eligible contest through:
    branch lookup → tree listing / clone → source acquisition → compile → extraction

Any recoverable failure moves that contest to SKIPPED and the run carries on
with the next one.
"""

import asyncio
import json
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from .compiler.bytecode import CompiledArtifact, extract_artifacts
from .compiler.solc_runner import SolcRunner
from .config import HarvestConfig
from .contests.contest import ContestRecord, ContestRun, HarvestState
from .contests.eligibility import partition_contests, utc_now
from .contests.listing import ListingScraper
from .errors import CompileError, ContestCancelled, HarvestError
from .github.client import GitHubClient
from .github.resolver import RepositoryResolver, parse_repo_reference
from .sources.acquirer import AcquiredSources, SourceAcquisitionStrategy, build_strategy


logger = logging.getLogger(__name__)


@dataclass
class FileHarvest:
    """Compile/extraction result for one source file."""

    path: str
    filename: str
    artifacts: list[CompiledArtifact] = field(default_factory=list)
    error: str | None = None

    @property
    def bytecodes(self) -> list[tuple[str, str]]:
        return [a.as_tuple() for a in self.artifacts]

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "filename": self.filename,
            "error": self.error,
            "contracts": [{"name": a.contract, "bytecode": a.bytecode} for a in self.artifacts],
        }


@dataclass
class ContestOutcome:
    """Everything the pipeline learned about one contest."""

    contest: ContestRecord
    run: ContestRun
    strategy: str
    owner: str | None = None
    repo: str | None = None
    branch: str | None = None
    discovered_files: list[str] = field(default_factory=list)
    dropped_files: list[tuple[str, str]] = field(default_factory=list)
    files: list[FileHarvest] = field(default_factory=list)

    @property
    def state(self) -> HarvestState:
        return self.run.state

    @property
    def skip_reason(self) -> str | None:
        return self.run.skip_reason

    @property
    def bytecodes(self) -> list[tuple[str, str]]:
        """All (contract, bytecode) pairs across files."""
        return [pair for f in self.files for pair in f.bytecodes]

    @property
    def repository(self) -> str:
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return self.contest.repo or "-"

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest_id": self.contest.contest_id,
            "slug": self.contest.slug,
            "sponsor": self.contest.sponsor,
            "repo": self.contest.repo,
            "end_time": self.contest.end_time,
            "strategy": self.strategy,
            "repository": self.repository,
            "branch": self.branch,
            "run": self.run.to_dict(),
            "discovered_files": self.discovered_files,
            "dropped_files": [{"path": p, "reason": r} for p, r in self.dropped_files],
            "files": [f.to_dict() for f in self.files],
        }


@dataclass
class HarvestReport:
    """Result of a full run."""

    outcomes: list[ContestOutcome] = field(default_factory=list)
    diagnostics: Counter = field(default_factory=Counter)
    listing_error: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> list[ContestOutcome]:
        return [o for o in self.outcomes if o.state == HarvestState.EXTRACTED]

    @property
    def skipped(self) -> list[ContestOutcome]:
        return [o for o in self.outcomes if o.state == HarvestState.SKIPPED]

    @property
    def total_contracts(self) -> int:
        return sum(len(o.bytecodes) for o in self.outcomes)

    def summary(self) -> str:
        """Generate a summary string."""
        lines = [
            "Harvest Results:",
            f"  Contests: {len(self.outcomes)}",
            f"  Extracted: {len(self.succeeded)}",
            f"  Skipped: {len(self.skipped)}",
            f"  Contracts with bytecode: {self.total_contracts}",
        ]
        if self.diagnostics:
            lines.append(f"  Diagnostics: {dict(sorted(self.diagnostics.items()))}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "listing_error": self.listing_error,
            "diagnostics": dict(self.diagnostics),
            "contests": [o.to_dict() for o in self.outcomes],
        }


class HarvestPipeline:
    """Sequences discovery, acquisition, compilation and extraction."""

    def __init__(
        self,
        config: HarvestConfig,
        client: GitHubClient | None = None,
        scraper: ListingScraper | None = None,
        compiler: SolcRunner | None = None,
        strategy: SourceAcquisitionStrategy | None = None,
    ):
        """Initialize the pipeline.

        Components that are not injected are built from the config when the
        pipeline is entered with ``async with``.
        """
        self.config = config
        self.client = client
        self.scraper = scraper
        self.compiler = compiler or SolcRunner.from_config(config)
        self.strategy = strategy
        self.diagnostics: Counter = Counter()
        self._owned: list = []
        self._listing_error: str | None = None
        self._cancelled = asyncio.Event()

    async def __aenter__(self):
        # Client first: a missing token must fail before anything is opened
        if self.client is None:
            self.client = GitHubClient.from_config(self.config)
            await self.client.__aenter__()
            self._owned.append(self.client)
        if self.scraper is None:
            self.scraper = ListingScraper(
                self.config.listing_url,
                timeout=self.config.request_timeout,
                user_agent=self.config.user_agent,
            )
            await self.scraper.__aenter__()
            self._owned.append(self.scraper)
        if self.strategy is None:
            self.strategy = build_strategy(self.config, client=self.client)
        return self

    async def __aexit__(self, *args):
        while self._owned:
            await self._owned.pop().__aexit__(None, None, None)

    @property
    def resolver(self) -> RepositoryResolver:
        if self.client is None:
            raise RuntimeError("Pipeline not initialized. Use async with")
        return RepositoryResolver(self.client)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Abandon remaining stages of every contest not yet finished."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _checkpoint(self) -> None:
        if self._cancelled.is_set():
            raise ContestCancelled("cancelled")

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discover(self, now: datetime | None = None) -> list[ContestRecord]:
        """Fetch the listing and keep the eligible contests."""
        if self.scraper is None:
            raise RuntimeError("Pipeline not initialized. Use async with")

        listing = await self.scraper.fetch_listing()
        self.diagnostics["dropped_records"] += listing.dropped
        if listing.error:
            self.diagnostics["listing_errors"] += 1

        kept, excluded = partition_contests(
            listing.contests,
            now=now or utc_now(),
            public_only=self.config.public_only,
        )
        self.diagnostics["excluded_contests"] += len(excluded)
        logger.info(
            "Listing has %d contest(s), %d eligible for harvesting",
            len(listing.contests), len(kept),
        )
        self._listing_error = listing.error
        return kept

    # ------------------------------------------------------------------
    # Per-contest processing
    # ------------------------------------------------------------------

    async def harvest_contest(self, contest: ContestRecord) -> ContestOutcome:
        """Run one contest through the pipeline. Never raises for recoverable failures."""
        run = ContestRun(contest_label=contest.label)
        outcome = ContestOutcome(contest=contest, run=run, strategy=self.strategy.kind.value)

        try:
            await self._harvest(contest, outcome)
        except HarvestError as e:
            reason = f"{type(e).__name__}: {e}"
            if isinstance(e, CompileError):
                self.diagnostics["compile_failures"] += 1
            run.skip(reason)
            self.diagnostics["skipped_contests"] += 1
            logger.warning(
                "Skipping contest %s (%s) at %s: %s",
                contest.label, outcome.repository, run.skipped_from.value, reason,
            )
        except asyncio.TimeoutError:
            run.skip("timed out")
            self.diagnostics["skipped_contests"] += 1
            logger.warning("Skipping contest %s (%s): timed out", contest.label, outcome.repository)

        return outcome

    async def _harvest(self, contest: ContestRecord, outcome: ContestOutcome) -> None:
        run = outcome.run

        owner, repo = parse_repo_reference(contest.repo or "", self.config.default_owner)
        outcome.owner, outcome.repo = owner, repo
        logger.info("Contest %s (sponsor %s): %s/%s", contest.label, contest.sponsor or "-", owner, repo)

        self._checkpoint()
        outcome.branch = await self.resolver.resolve_default_branch(owner, repo)
        run.transition_to(HarvestState.BRANCH_RESOLVED)

        self._checkpoint()
        location = await self.strategy.locate(owner, repo, outcome.branch)
        run.transition_to(HarvestState.TREE_RESOLVED)

        self._checkpoint()
        sources = await self.strategy.acquire(location)
        outcome.discovered_files = sources.discovered_files
        outcome.dropped_files = sources.dropped
        self.diagnostics["decode_failures"] += sources.decode_failures
        self.diagnostics["dropped_files"] += len(sources.dropped)
        self.diagnostics["dropped_remapping_lines"] += sources.remapping_lines_skipped
        if not sources.units:
            raise HarvestError(f"No Solidity sources acquired for {owner}/{repo}")
        run.transition_to(HarvestState.SOURCE_ACQUIRED)

        self._checkpoint()
        if self.strategy.compile_mode == "project":
            files = await self._compile_project(sources)
        else:
            files = await self._compile_each(outcome, sources)
        run.transition_to(HarvestState.COMPILED)

        outcome.files = files
        for f in files:
            if f.error is None and not f.artifacts:
                logger.info("No contracts in %s produced bytecode", f.path)
        run.transition_to(HarvestState.EXTRACTED)
        logger.info(
            "Contest %s: %d contract(s) with bytecode from %d file(s)",
            contest.label, len(outcome.bytecodes), len(files),
        )

    async def _compile_each(self, outcome: ContestOutcome, sources: AcquiredSources) -> list[FileHarvest]:
        """Compile every unit on its own; fail only if all of them fail."""
        files = []
        for unit in sources.units:
            self._checkpoint()
            harvest = FileHarvest(path=unit.path, filename=unit.filename)
            try:
                contracts = await self.compiler.compile_source_async(unit.path, unit.text)
            except CompileError as e:
                harvest.error = str(e)
                self.diagnostics["file_compile_failures"] += 1
                logger.warning("Compile failed for %s in %s: %s", unit.path, outcome.repository, e)
            else:
                harvest.artifacts = extract_artifacts(contracts, unit.path)
            files.append(harvest)

        if files and all(f.error is not None for f in files):
            raise CompileError(f"All {len(files)} file(s) failed to compile")
        return files

    async def _compile_project(self, sources: AcquiredSources) -> list[FileHarvest]:
        """Compile the whole source tree at once and extract per file."""
        contracts = await self.compiler.compile_project_async(
            sources.project_root,
            {unit.path: unit.text for unit in sources.units},
            sources.remappings,
        )
        return [
            FileHarvest(
                path=unit.path,
                filename=unit.filename,
                artifacts=extract_artifacts(contracts, unit.path),
            )
            for unit in sources.units
        ]

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(self, only: Iterable[str] | None = None, now: datetime | None = None) -> HarvestReport:
        """Discover contests and harvest each of them.

        Args:
            only: Restrict to contests whose id, slug or uid is listed
            now: Reference instant for eligibility
        """
        report = HarvestReport()
        self._listing_error = None

        contests = await self.discover(now=now)
        report.listing_error = self._listing_error

        if only:
            wanted = {str(w) for w in only}
            contests = [
                c for c in contests
                if {str(c.contest_id), c.slug, c.uid} & wanted
            ]

        report.outcomes = await self.harvest_all(contests)
        report.diagnostics = self.diagnostics
        report.finished_at = datetime.now()
        return report

    async def harvest_all(self, contests: list[ContestRecord]) -> list[ContestOutcome]:
        """Harvest contests, at most ``contest_concurrency`` at a time."""
        if self.config.contest_concurrency <= 1:
            return [await self._harvest_or_cancel(c) for c in contests]

        semaphore = asyncio.Semaphore(self.config.contest_concurrency)

        async def bounded(contest: ContestRecord) -> ContestOutcome:
            async with semaphore:
                return await self._harvest_or_cancel(contest)

        return list(await asyncio.gather(*(bounded(c) for c in contests)))

    async def _harvest_or_cancel(self, contest: ContestRecord) -> ContestOutcome:
        if self._cancelled.is_set():
            run = ContestRun(contest_label=contest.label)
            run.skip("ContestCancelled: cancelled")
            self.diagnostics["skipped_contests"] += 1
            return ContestOutcome(contest=contest, run=run, strategy=self.strategy.kind.value)
        return await self.harvest_contest(contest)


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-") or "contest"


def save_results(report: HarvestReport, output_dir: Path) -> dict[str, Path]:
    """Save a harvest report to files.

    Args:
        report: The report to save
        output_dir: Directory to save files in

    Returns:
        Dict mapping file type to path
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {}

    report_path = output_dir / "harvest_report.json"
    with open(report_path, "w") as f:
        json.dump(report.to_dict(), f, indent=2)
    paths["report"] = report_path

    for outcome in report.outcomes:
        if not outcome.bytecodes:
            continue
        name = _safe_name(f"{outcome.contest.label}-{outcome.repo or 'repo'}")
        bytecode_path = output_dir / f"{name}.bytecode.json"
        contracts = {
            item.path: {a.contract: a.bytecode for a in item.artifacts}
            for item in outcome.files
            if item.artifacts
        }
        with open(bytecode_path, "w") as f:
            json.dump(contracts, f, indent=2)
        paths[name] = bytecode_path

    return paths
