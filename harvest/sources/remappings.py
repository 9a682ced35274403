"""
Import remapping resolution.

Reads ``alias=relative/path`` lines (Foundry's remappings.txt) and rewrites
each right-hand side against the directory holding the file, never against
the current working directory.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from ..errors import DecodeError, SourceReadError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Remapping:
    """An import alias and the absolute path it stands for."""

    name: str
    path: str

    def to_solc(self) -> str:
        """Render in the compiler's ``prefix=target`` form."""
        return f"{self.name}={self.path}"


@dataclass
class RemappingParse:
    entries: list[Remapping] = field(default_factory=list)
    skipped: int = 0


def parse_remapping_lines(lines: Iterable[str], base_dir: str) -> RemappingParse:
    """Parse remapping lines relative to ``base_dir``.

    Blank lines are ignored. Lines that do not contain exactly one ``=`` are
    skipped and counted. Order and duplicate aliases are preserved.
    """
    result = RemappingParse()
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        parts = line.split("=")
        if len(parts) != 2:
            result.skipped += 1
            logger.debug("Skipping malformed remapping line: %r", line)
            continue
        name, relative = parts
        result.entries.append(Remapping(name=name, path=f"{base_dir}{os.sep}{relative}"))
    return result


def load_remapping_file(path: Path | str) -> RemappingParse:
    """Read a remapping file, keeping the count of skipped lines.

    Targets are resolved against the file's absolute directory, so a
    relative ``path`` still yields absolute remappings.

    Raises:
        SourceReadError: If the file cannot be read
        DecodeError: If the file is not valid UTF-8
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"{path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise SourceReadError(f"Cannot read {path}: {e}") from e
    parsed = parse_remapping_lines(text.splitlines(), str(path.parent.absolute()))
    if parsed.skipped:
        logger.warning("Skipped %d malformed line(s) in %s", parsed.skipped, path)
    return parsed


def read_remappings(path: Path | str) -> list[Remapping]:
    """Read a remapping file into absolute remappings."""
    return load_remapping_file(path).entries
