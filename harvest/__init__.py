"""
Contract harvesting for audit contests.

Finds open contests, pulls their Solidity sources from GitHub (file by file
or by cloning), compiles them and returns per-contract deployable bytecode.
"""

from .config import HarvestConfig
from .pipeline import ContestOutcome, FileHarvest, HarvestPipeline, HarvestReport, save_results

__all__ = [
    "HarvestConfig",
    "HarvestPipeline",
    "HarvestReport",
    "ContestOutcome",
    "FileHarvest",
    "save_results",
]
