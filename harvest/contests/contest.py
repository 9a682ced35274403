"""
Contest record and per-contest harvest state machine.

State Machine:
    DISCOVERED → BRANCH_RESOLVED → TREE_RESOLVED → SOURCE_ACQUIRED → COMPILED → EXTRACTED
         └──────────────┴────────────────┴───────────────┴──────────────┴──→ SKIPPED
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    TypeAdapter,
    ValidationError,
)


class SponsorData(BaseModel):
    """Sponsor block embedded in each contest."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: str | None = None
    uid: str | None = None
    image: str | None = None
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image_url"))
    link: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class ContestRecord(BaseModel):
    """A contest harvested from the listing payload.

    The listing mixes camelCase and snake_case spellings for a few keys, so
    both are accepted. ``sponsor_data`` is required; records without it are
    structurally invalid and get dropped by the extractor.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    # Identity
    contest_id: NonNegativeInt | None = Field(default=None, validation_alias=AliasChoices("contest_id", "contestid"))
    uid: str | None = None
    slug: str | None = None
    title: str | None = None
    sponsor: str | None = None
    sponsor_data: SponsorData

    # Code
    repo: str | None = None
    findings_repo: str | None = Field(default=None, validation_alias=AliasChoices("findings_repo", "findingsRepo"))
    code_access: str | None = Field(default=None, validation_alias=AliasChoices("code_access", "codeAccess"))

    # Timeline
    start_time: str | None = None
    end_time: str | None = None
    status: str | None = None

    # Classification
    contest_type: str | None = Field(default=None, validation_alias=AliasChoices("type", "contest_type"))
    audit_type: str | None = None
    league: str | None = None
    details: str | None = None
    hide: bool | None = None

    # Awards (opaque to the pipeline)
    amount: str | None = None
    formatted_amount: str | None = None
    award_coin: str | None = None
    total_award_pool: NonNegativeInt | None = None
    hm_award_pool: NonNegativeInt | None = None
    qa_award_pool: NonNegativeInt | None = None
    gas_award_pool: NonNegativeInt | None = None

    @property
    def end_instant(self) -> datetime | None:
        """End time as an aware datetime, or None if missing or malformed."""
        return parse_instant(self.end_time)

    @property
    def start_instant(self) -> datetime | None:
        return parse_instant(self.start_time)

    @property
    def is_public(self) -> bool:
        return self.code_access == "public"

    def is_active(self, now: datetime) -> bool:
        """Active iff the end time is strictly after ``now``.

        A record whose end time cannot be parsed is never active.
        """
        end = self.end_instant
        return end is not None and end > now

    def is_eligible(self, now: datetime) -> bool:
        """Active and publicly accessible."""
        return self.is_active(now) and self.is_public

    @property
    def label(self) -> str:
        """Short identifier for log and table output."""
        if self.contest_id is not None:
            return str(self.contest_id)
        return self.slug or self.uid or self.title or "unknown"

    def __str__(self) -> str:
        return f"ContestRecord({self.label}, sponsor={self.sponsor}, repo={self.repo})"


_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(?:\.(?P<fraction>\d+))?(?:[Zz]|[+-]\d{2}:\d{2})$"
)
_INSTANT = TypeAdapter(AwareDatetime)


def parse_instant(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp into an aware datetime.

    Any number of fractional-second digits is accepted; digits past
    microseconds are dropped. Returns None for missing values, malformed
    values, and timestamps without a UTC offset.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    match = _RFC3339.match(text)
    if match is None:
        return None
    fraction = match.group("fraction")
    if fraction and len(fraction) > 6:
        start = match.start("fraction")
        text = text[:start + 6] + text[match.end("fraction"):]
    try:
        return _INSTANT.validate_python(text)
    except ValidationError:
        return None


class HarvestState(Enum):
    """Per-contest pipeline states."""
    DISCOVERED = "discovered"            # Listed and eligible
    BRANCH_RESOLVED = "branch_resolved"  # Default branch known
    TREE_RESOLVED = "tree_resolved"      # File tree listed or repository cloned
    SOURCE_ACQUIRED = "source_acquired"  # Sources decoded / read from disk
    COMPILED = "compiled"                # Compiler produced an artifact map
    EXTRACTED = "extracted"              # Bytecode pulled out of the artifacts
    SKIPPED = "skipped"                  # Recoverable failure, terminal


# Valid state transitions
STATE_TRANSITIONS = {
    HarvestState.DISCOVERED: [HarvestState.BRANCH_RESOLVED, HarvestState.SKIPPED],
    HarvestState.BRANCH_RESOLVED: [HarvestState.TREE_RESOLVED, HarvestState.SKIPPED],
    HarvestState.TREE_RESOLVED: [HarvestState.SOURCE_ACQUIRED, HarvestState.SKIPPED],
    HarvestState.SOURCE_ACQUIRED: [HarvestState.COMPILED, HarvestState.SKIPPED],
    HarvestState.COMPILED: [HarvestState.EXTRACTED, HarvestState.SKIPPED],
    HarvestState.EXTRACTED: [],
    HarvestState.SKIPPED: [],
}


class InvalidStateTransition(Exception):
    """Invalid state transition attempted."""
    pass


@dataclass
class ContestRun:
    """Tracks one contest's progress through the pipeline."""

    contest_label: str
    state: HarvestState = HarvestState.DISCOVERED
    state_history: list[tuple[str, str]] = field(default_factory=list)  # [(state, timestamp), ...]
    skip_reason: str | None = None
    skipped_from: HarvestState | None = None

    def transition_to(self, new_state: HarvestState) -> None:
        """Transition to a new state.

        Raises:
            InvalidStateTransition: If the transition is not valid
        """
        valid_transitions = STATE_TRANSITIONS.get(self.state, [])

        if new_state not in valid_transitions:
            raise InvalidStateTransition(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in valid_transitions]}"
            )

        self.state_history.append((self.state.value, datetime.now().isoformat()))
        self.state = new_state

    def skip(self, reason: str) -> None:
        """Move to SKIPPED, remembering where and why."""
        skipped_from = self.state
        self.transition_to(HarvestState.SKIPPED)
        self.skipped_from = skipped_from
        self.skip_reason = reason

    def can_transition_to(self, new_state: HarvestState) -> bool:
        return new_state in STATE_TRANSITIONS.get(self.state, [])

    @property
    def is_terminal(self) -> bool:
        return not STATE_TRANSITIONS.get(self.state)

    @property
    def succeeded(self) -> bool:
        return self.state == HarvestState.EXTRACTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "contest": self.contest_label,
            "state": self.state.value,
            "state_history": self.state_history,
            "skip_reason": self.skip_reason,
            "skipped_from": self.skipped_from.value if self.skipped_from else None,
        }
