"""
Compilation through solc and bytecode extraction.
"""

from .bytecode import CompiledArtifact, extract_artifacts, extract_bytecodes, is_unlinked, normalize_bytecode
from .solc_runner import DEFAULT_OUTPUT_SELECTION, SolcRunner

__all__ = [
    "CompiledArtifact",
    "DEFAULT_OUTPUT_SELECTION",
    "SolcRunner",
    "extract_artifacts",
    "extract_bytecodes",
    "is_unlinked",
    "normalize_bytecode",
]
