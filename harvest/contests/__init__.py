"""
Contest discovery.

- Contest records and the per-contest harvest state machine
- Listing page extraction (Next.js streaming payload)
- Eligibility filtering (active, optionally public)
"""

from .contest import (
    ContestRecord,
    ContestRun,
    HarvestState,
    InvalidStateTransition,
    SponsorData,
    parse_instant,
)
from .eligibility import filter_contests, partition_contests
from .listing import ListingParse, ListingScraper, extract_contests, parse_listing

__all__ = [
    # Contest
    "ContestRecord",
    "ContestRun",
    "HarvestState",
    "InvalidStateTransition",
    "SponsorData",
    "parse_instant",
    # Eligibility
    "filter_contests",
    "partition_contests",
    # Listing
    "ListingParse",
    "ListingScraper",
    "extract_contests",
    "parse_listing",
]
