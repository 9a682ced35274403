"""
Runtime configuration.

Built once at startup from the environment (the entry point loads .env first)
and handed to every component that needs credentials, paths or limits.

Environment variables:
    GITHUB_PA_TOKEN            GitHub token (GITHUB_TOKEN is accepted too)
    TRAWLER_LISTING_URL        Contest listing page
    TRAWLER_STRATEGY           direct | clone
    TRAWLER_PUBLIC_ONLY        Only harvest contests with public code access
    TRAWLER_CLONE_DIR          Where clones are cached
    TRAWLER_SOLC_VERSION       Pin a solc version (e.g. 0.8.24)
    ... see HarvestConfig.from_env for the full list
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping

from .errors import ConfigError, MissingTokenError


STRATEGIES = ("direct", "clone")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _default_home() -> Path:
    return Path.home() / ".trawler"


@dataclass(frozen=True)
class HarvestConfig:
    """All settings for one harvest run."""

    github_token: str | None = None
    listing_url: str = "https://code4rena.com/audits"
    github_api_url: str = "https://api.github.com"
    github_web_url: str = "https://github.com"
    default_owner: str = "code-423n4"
    user_agent: str = "trawler/0.1"

    # Source acquisition
    strategy: str = "direct"
    public_only: bool = True
    clone_dir: Path = field(default_factory=lambda: _default_home() / "repos")
    compile_root: str = "src"
    remappings_file: str = "remappings.txt"

    # Timeouts (seconds)
    request_timeout: float = 30.0
    clone_timeout: float = 300.0
    compile_timeout: float = 120.0

    # Retry policy
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0

    # Concurrency and rate limiting
    fetch_concurrency: int = 4
    contest_concurrency: int = 1
    rate_limit_requests: int = 60
    rate_limit_window: float = 60.0

    # Compiler
    solc_version: str | None = None
    install_solc: bool = False
    via_ir: bool = True

    # Output
    output_dir: Path = field(default_factory=lambda: _default_home() / "output")
    log_level: str = "INFO"

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ConfigError(f"Unknown strategy: {self.strategy}. Available: {list(STRATEGIES)}")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be at least 1")
        for name in ("fetch_concurrency", "contest_concurrency", "rate_limit_requests"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be at least 1")
        for name in ("request_timeout", "clone_timeout", "compile_timeout", "rate_limit_window"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "HarvestConfig":
        """Create a config from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ
        kwargs: dict = {}

        token = env.get("GITHUB_PA_TOKEN") or env.get("GITHUB_TOKEN")
        if token:
            kwargs["github_token"] = token.strip()

        strings = {
            "TRAWLER_LISTING_URL": "listing_url",
            "TRAWLER_GITHUB_API_URL": "github_api_url",
            "TRAWLER_GITHUB_WEB_URL": "github_web_url",
            "TRAWLER_DEFAULT_OWNER": "default_owner",
            "TRAWLER_USER_AGENT": "user_agent",
            "TRAWLER_STRATEGY": "strategy",
            "TRAWLER_COMPILE_ROOT": "compile_root",
            "TRAWLER_REMAPPINGS_FILE": "remappings_file",
            "TRAWLER_SOLC_VERSION": "solc_version",
            "TRAWLER_LOG_LEVEL": "log_level",
        }
        for var, name in strings.items():
            if env.get(var):
                kwargs[name] = env[var].strip()

        floats = {
            "TRAWLER_REQUEST_TIMEOUT": "request_timeout",
            "TRAWLER_CLONE_TIMEOUT": "clone_timeout",
            "TRAWLER_COMPILE_TIMEOUT": "compile_timeout",
            "TRAWLER_BACKOFF_BASE": "backoff_base",
            "TRAWLER_BACKOFF_MAX": "backoff_max",
            "TRAWLER_RATE_LIMIT_WINDOW": "rate_limit_window",
        }
        for var, name in floats.items():
            if env.get(var):
                kwargs[name] = _parse_number(var, env[var], float)

        ints = {
            "TRAWLER_MAX_ATTEMPTS": "max_attempts",
            "TRAWLER_FETCH_CONCURRENCY": "fetch_concurrency",
            "TRAWLER_CONTEST_CONCURRENCY": "contest_concurrency",
            "TRAWLER_RATE_LIMIT": "rate_limit_requests",
        }
        for var, name in ints.items():
            if env.get(var):
                kwargs[name] = _parse_number(var, env[var], int)

        bools = {
            "TRAWLER_PUBLIC_ONLY": "public_only",
            "TRAWLER_INSTALL_SOLC": "install_solc",
            "TRAWLER_VIA_IR": "via_ir",
        }
        for var, name in bools.items():
            if env.get(var):
                kwargs[name] = _parse_bool(var, env[var])

        paths = {
            "TRAWLER_CLONE_DIR": "clone_dir",
            "TRAWLER_OUTPUT_DIR": "output_dir",
        }
        for var, name in paths.items():
            if env.get(var):
                kwargs[name] = Path(env[var]).expanduser().resolve()

        if "strategy" in kwargs:
            kwargs["strategy"] = kwargs["strategy"].lower()

        return cls(**kwargs)

    def with_overrides(self, **overrides) -> "HarvestConfig":
        """Return a copy with the given fields replaced (None values are ignored)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def require_token(self) -> str:
        """Return the GitHub token or fail.

        Raises:
            MissingTokenError: If no token is configured
        """
        if not self.github_token:
            raise MissingTokenError(
                "GitHub token not configured. Set GITHUB_PA_TOKEN in the environment or .env"
            )
        return self.github_token


def _parse_number(var: str, raw: str, kind: type):
    try:
        return kind(raw.strip())
    except ValueError:
        raise ConfigError(f"{var} must be a number, got {raw!r}") from None


def _parse_bool(var: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{var} must be a boolean, got {raw!r}")
