"""Tests for runtime configuration."""

from pathlib import Path

import pytest

from harvest.config import HarvestConfig
from harvest.errors import ConfigError, MissingTokenError


class TestFromEnv:
    """Reading settings from the environment."""

    def test_defaults(self):
        config = HarvestConfig.from_env({})
        assert config.github_token is None
        assert config.strategy == "direct"
        assert config.public_only is True
        assert config.default_owner == "code-423n4"
        assert config.listing_url == "https://code4rena.com/audits"
        assert config.via_ir is True

    def test_token(self):
        assert HarvestConfig.from_env({"GITHUB_PA_TOKEN": " ghp_abc \n"}).github_token == "ghp_abc"
        assert HarvestConfig.from_env({"GITHUB_TOKEN": "ghp_fallback"}).github_token == "ghp_fallback"
        both = {"GITHUB_PA_TOKEN": "primary", "GITHUB_TOKEN": "secondary"}
        assert HarvestConfig.from_env(both).github_token == "primary"

    def test_typed_values(self):
        config = HarvestConfig.from_env({
            "TRAWLER_STRATEGY": "Clone",
            "TRAWLER_PUBLIC_ONLY": "false",
            "TRAWLER_MAX_ATTEMPTS": "5",
            "TRAWLER_REQUEST_TIMEOUT": "12.5",
            "TRAWLER_CLONE_DIR": "/tmp/trawler-clones",
            "TRAWLER_SOLC_VERSION": "0.8.24",
            "TRAWLER_VIA_IR": "no",
        })
        assert config.strategy == "clone"
        assert config.public_only is False
        assert config.max_attempts == 5
        assert config.request_timeout == 12.5
        assert config.clone_dir == Path("/tmp/trawler-clones").resolve()
        assert config.solc_version == "0.8.24"
        assert config.via_ir is False

    def test_relative_paths_are_resolved(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = HarvestConfig.from_env({"TRAWLER_CLONE_DIR": "repos", "TRAWLER_OUTPUT_DIR": "out/../results"})
        assert config.clone_dir == tmp_path / "repos"
        assert config.clone_dir.is_absolute()
        assert config.output_dir == tmp_path / "results"

    def test_empty_values_are_ignored(self):
        config = HarvestConfig.from_env({"TRAWLER_STRATEGY": "", "TRAWLER_MAX_ATTEMPTS": ""})
        assert config.strategy == "direct"
        assert config.max_attempts == 3

    def test_bad_number(self):
        with pytest.raises(ConfigError, match="TRAWLER_MAX_ATTEMPTS"):
            HarvestConfig.from_env({"TRAWLER_MAX_ATTEMPTS": "three"})

    def test_bad_bool(self):
        with pytest.raises(ConfigError, match="TRAWLER_PUBLIC_ONLY"):
            HarvestConfig.from_env({"TRAWLER_PUBLIC_ONLY": "maybe"})

    def test_unknown_strategy(self):
        with pytest.raises(ConfigError, match="Unknown strategy"):
            HarvestConfig.from_env({"TRAWLER_STRATEGY": "ftp"})


class TestValidation:
    """Field validation and helpers."""

    def test_limits(self):
        with pytest.raises(ConfigError):
            HarvestConfig(max_attempts=0)
        with pytest.raises(ConfigError):
            HarvestConfig(fetch_concurrency=0)
        with pytest.raises(ConfigError):
            HarvestConfig(compile_timeout=0)

    def test_require_token(self):
        with pytest.raises(MissingTokenError):
            HarvestConfig().require_token()
        assert HarvestConfig(github_token="t").require_token() == "t"

    def test_missing_token_is_a_config_error(self):
        assert issubclass(MissingTokenError, ConfigError)

    def test_with_overrides_ignores_none(self):
        base = HarvestConfig(github_token="t")
        assert base.with_overrides(strategy=None) is base
        changed = base.with_overrides(strategy="clone", public_only=False, output_dir=None)
        assert changed.strategy == "clone"
        assert changed.public_only is False
        assert changed.output_dir == base.output_dir
        assert base.strategy == "direct"

    def test_overrides_are_validated(self):
        with pytest.raises(ConfigError):
            HarvestConfig().with_overrides(strategy="svn")
