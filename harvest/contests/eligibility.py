"""
Eligibility filter for harvested contests.

A single "now" is sampled per filtering pass so the result is a pure function
of the records and that clock reading.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable

from .contest import ContestRecord


logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def exclusion_reason(contest: ContestRecord, now: datetime, public_only: bool = True) -> str | None:
    """Why a contest is out of scope, or None if it is in scope."""
    end = contest.end_instant
    if end is None:
        return "no end time"
    if not end > now:
        return "ended"
    if public_only and not contest.is_public:
        return f"code access {contest.code_access or 'unknown'}"
    return None


def partition_contests(
    contests: Iterable[ContestRecord],
    now: datetime | None = None,
    public_only: bool = True,
) -> tuple[list[ContestRecord], list[tuple[ContestRecord, str]]]:
    """Split contests into (kept, [(excluded, reason), ...])."""
    if now is None:
        now = utc_now()

    kept = []
    excluded = []
    for contest in contests:
        reason = exclusion_reason(contest, now, public_only)
        if reason is None:
            kept.append(contest)
        else:
            excluded.append((contest, reason))
            logger.debug("Excluding contest %s: %s", contest.label, reason)
    return kept, excluded


def filter_contests(
    contests: Iterable[ContestRecord],
    now: datetime | None = None,
    public_only: bool = True,
) -> list[ContestRecord]:
    """Return the contests to harvest.

    Args:
        contests: Records from the listing extractor
        now: Reference instant. Sampled once when omitted.
        public_only: Also require public code access (the stricter filter)
    """
    kept, _ = partition_contests(contests, now=now, public_only=public_only)
    return kept
