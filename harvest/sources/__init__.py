"""
Source acquisition: API fetch or clone, plus import remappings.
"""

from .acquirer import (
    AcquiredSources,
    CloneStrategy,
    DirectFetchStrategy,
    SourceAcquisitionStrategy,
    SourceLocation,
    SourceUnit,
    StrategyKind,
    build_strategy,
    decode_blob_content,
)
from .clone import RepoCloner
from .remappings import Remapping, parse_remapping_lines, read_remappings

__all__ = [
    "AcquiredSources",
    "CloneStrategy",
    "DirectFetchStrategy",
    "SourceAcquisitionStrategy",
    "SourceLocation",
    "SourceUnit",
    "StrategyKind",
    "build_strategy",
    "decode_blob_content",
    "RepoCloner",
    "Remapping",
    "parse_remapping_lines",
    "read_remappings",
]
