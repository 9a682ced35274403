"""
Bytecode extraction from compiler output.

Works on the ``contracts`` section of solc's standard-JSON output:
``{source key: {contract name: {"evm": {"bytecode": {"object": "..."}}}}}``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger(__name__)


# __$<34 hex chars>$__ (solc >= 0.5) or __<path:Name padded with _>__ (older)
LIBRARY_PLACEHOLDER = re.compile(r"__\$[0-9a-fA-F]{34}\$__|__\S+?__")


@dataclass(frozen=True)
class CompiledArtifact:
    """Linked deployable bytecode for one contract."""

    contract: str
    bytecode: str  # lower-case hex, no 0x prefix

    def as_tuple(self) -> tuple[str, str]:
        return (self.contract, self.bytecode)


def is_unlinked(obj: str) -> bool:
    """True if the bytecode still references an unresolved library."""
    return bool(LIBRARY_PLACEHOLDER.search(obj))


def normalize_bytecode(obj: Any) -> str | None:
    """Return hex bytecode ready for use, or None if it is not usable.

    Unusable means: missing, empty (interfaces, abstract contracts),
    unlinked, or not valid hex.
    """
    if not isinstance(obj, str):
        return None
    text = obj.strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if not text:
        return None
    if is_unlinked(text):
        return None
    try:
        return bytes.fromhex(text).hex()
    except ValueError:
        logger.debug("Bytecode object is not valid hex: %r", text[:40])
        return None


def _bytecode_object(artifact: Any) -> Any:
    if not isinstance(artifact, dict):
        return None
    evm = artifact.get("evm") or {}
    bytecode = evm.get("bytecode") if isinstance(evm, dict) else None
    if isinstance(bytecode, dict):
        if bytecode.get("linkReferences"):
            return None
        return bytecode.get("object")
    return bytecode


def extract_artifacts(contracts: dict, key: str) -> list[CompiledArtifact]:
    """Collect usable bytecode for every contract registered under ``key``."""
    artifacts = []
    for name, artifact in (contracts.get(key) or {}).items():
        bytecode = normalize_bytecode(_bytecode_object(artifact))
        if bytecode is None:
            logger.debug("%s:%s produced no linked bytecode", key, name)
            continue
        artifacts.append(CompiledArtifact(contract=name, bytecode=bytecode))
    return artifacts


def extract_bytecodes(contracts: dict, key: str) -> list[tuple[str, str]] | None:
    """Return ``[(contract name, hex bytecode), ...]`` for one source.

    Returns None when no contract in the source produced linked bytecode.
    That is a normal outcome (interfaces, libraries needing linking), not an
    error.
    """
    artifacts = extract_artifacts(contracts, key)
    if not artifacts:
        return None
    return [a.as_tuple() for a in artifacts]
