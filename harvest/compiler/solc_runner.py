"""
Solidity compiler wrapper.

Drives solc through py-solc-x's standard-JSON interface and returns the
``contracts`` section of the output. Two modes:

- compile_source: one named source, default settings
- compile_project: every source under a project's compile root, via-IR,
  with import remappings
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable

import solcx
from solcx.exceptions import (
    SolcError,
    SolcInstallationError,
    SolcNotInstalled,
    UnsupportedVersionError,
)

from ..errors import CompileError
from ..sources.remappings import Remapping


logger = logging.getLogger(__name__)


DEFAULT_OUTPUT_SELECTION = {
    "*": {
        "*": ["abi", "evm.bytecode", "evm.deployedBytecode", "evm.methodIdentifiers"],
    }
}

_SOLCX_ERRORS = (SolcError, SolcNotInstalled, SolcInstallationError, UnsupportedVersionError)


class SolcRunner:
    """Runs solc and returns artifact maps."""

    def __init__(
        self,
        solc_version: str | None = None,
        install_missing: bool = False,
        timeout: float = 120.0,
        via_ir: bool = True,
    ):
        """Initialize the runner.

        Args:
            solc_version: Version to compile with. Uses solcx's active version if None.
            install_missing: Download the pinned version if it is not installed
            timeout: Maximum seconds for one compiler invocation (async wrappers)
            via_ir: Request the via-IR pipeline for project compiles
        """
        self.solc_version = solc_version
        self.install_missing = install_missing
        self.timeout = timeout
        self.via_ir = via_ir
        self._checked = False

    @classmethod
    def from_config(cls, config) -> "SolcRunner":
        return cls(
            solc_version=config.solc_version,
            install_missing=config.install_solc,
            timeout=config.compile_timeout,
            via_ir=config.via_ir,
        )

    def is_available(self) -> tuple[bool, str]:
        """Check that a usable solc is installed.

        Returns:
            Tuple of (available, version_or_error)
        """
        try:
            if self.solc_version:
                installed = [str(v) for v in solcx.get_installed_solc_versions()]
                if self.solc_version not in installed:
                    if not self.install_missing:
                        return False, f"solc {self.solc_version} not installed (installed: {installed or 'none'})"
                    return True, f"{self.solc_version} (will be installed)"
                return True, self.solc_version
            return True, str(solcx.get_solc_version())
        except _SOLCX_ERRORS as e:
            return False, str(e)

    def _ensure_version(self) -> None:
        if self._checked or not self.solc_version:
            return
        installed = [str(v) for v in solcx.get_installed_solc_versions()]
        if self.solc_version not in installed:
            if not self.install_missing:
                raise CompileError(f"solc {self.solc_version} is not installed")
            logger.info("Installing solc %s", self.solc_version)
            try:
                solcx.install_solc(self.solc_version)
            except _SOLCX_ERRORS as e:
                raise CompileError(f"Could not install solc {self.solc_version}: {e}") from e
        self._checked = True

    def build_source_input(self, key: str, text: str) -> dict[str, Any]:
        """Standard-JSON input for a single source with default settings."""
        return {
            "language": "Solidity",
            "sources": {key: {"content": text}},
            "settings": {"outputSelection": DEFAULT_OUTPUT_SELECTION},
        }

    def build_project_input(
        self,
        sources: dict[str, str],
        remappings: Iterable[Remapping] = (),
    ) -> dict[str, Any]:
        """Standard-JSON input for a whole project."""
        settings: dict[str, Any] = {
            "outputSelection": DEFAULT_OUTPUT_SELECTION,
            "remappings": [r.to_solc() for r in remappings],
        }
        if self.via_ir:
            settings["viaIR"] = True
            settings["optimizer"] = {"enabled": True, "runs": 200}
        return {
            "language": "Solidity",
            "sources": {key: {"content": text} for key, text in sources.items()},
            "settings": settings,
        }

    def _compile(self, input_data: dict, base_path: Path | None = None) -> dict[str, dict]:
        self._ensure_version()
        kwargs: dict[str, Any] = {}
        if self.solc_version:
            kwargs["solc_version"] = self.solc_version
        if base_path is not None:
            kwargs["base_path"] = str(base_path)
            kwargs["allow_paths"] = str(base_path)

        try:
            output = solcx.compile_standard(input_data, **kwargs)
        except _SOLCX_ERRORS as e:
            message = str(e).strip().splitlines()
            raise CompileError(message[0] if message else "solc failed") from e

        warnings = [err for err in output.get("errors", []) if err.get("severity") == "warning"]
        if warnings:
            logger.debug("solc reported %d warning(s)", len(warnings))
        return output.get("contracts", {})

    def compile_source(self, key: str, text: str) -> dict[str, dict]:
        """Compile one source text.

        Returns:
            Artifact map keyed by source key, then contract name

        Raises:
            CompileError: If solc rejects the source or cannot run
        """
        return self._compile(self.build_source_input(key, text))

    def compile_project(
        self,
        project_root: Path,
        sources: dict[str, str],
        remappings: Iterable[Remapping] = (),
    ) -> dict[str, dict]:
        """Compile a project's sources together.

        Args:
            project_root: Repository root; imports are resolved below it
            sources: Root-relative path to source text
            remappings: Import remappings with absolute targets

        Raises:
            CompileError: If solc rejects the project or cannot run
        """
        if not sources:
            raise CompileError(f"No Solidity sources to compile under {project_root}")
        input_data = self.build_project_input(sources, remappings)
        return self._compile(input_data, base_path=Path(project_root))

    async def _in_thread(self, func, *args) -> dict[str, dict]:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise CompileError(f"solc timed out after {self.timeout}s") from None

    async def compile_source_async(self, key: str, text: str) -> dict[str, dict]:
        return await self._in_thread(self.compile_source, key, text)

    async def compile_project_async(
        self,
        project_root: Path,
        sources: dict[str, str],
        remappings: Iterable[Remapping] = (),
    ) -> dict[str, dict]:
        return await self._in_thread(self.compile_project, project_root, sources, list(remappings))
