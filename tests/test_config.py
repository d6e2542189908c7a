from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from depresolve.config import (
    ResolverConfig,
    _parse_section,
    _pyproject_has_section,
    _read_toml,
    discover_config_file,
    load_config,
)
from depresolve.exceptions import ConfigError


@pytest.mark.unit
class TestResolverConfig:
    """Tests for ResolverConfig dataclass."""

    def test_default_initialization(self) -> None:
        config = ResolverConfig()

        assert config.index_url == "https://pypi.org/pypi"
        assert config.max_concurrency == 10
        assert config.max_retries == 3
        assert config.allow_prereleases is False
        assert config.python_version is None
        assert config.max_backtracks == 100
        assert config.source_path is None

    def test_to_log_dict(self) -> None:
        config = ResolverConfig(max_concurrency=4, source_path=Path("/x/depresolve.toml"))

        data = config.to_log_dict()

        assert data["max_concurrency"] == 4
        assert "source_path" not in data
        assert set(data) == {
            "index_url",
            "max_concurrency",
            "request_timeout",
            "max_retries",
            "cache_ttl",
            "cache_dir",
            "allow_prereleases",
            "python_version",
            "max_backtracks",
        }

    def test_merged_applies_non_none(self) -> None:
        """CLI flags left unset must not clobber file settings."""
        config = ResolverConfig(max_concurrency=4, allow_prereleases=True)

        merged = config.merged(max_concurrency=None, allow_prereleases=False, max_retries=0)

        assert merged.max_concurrency == 4
        assert merged.allow_prereleases is False
        assert merged.max_retries == 0
        assert config.max_retries == 3


@pytest.mark.unit
class TestDiscoverConfigFile:
    """Tests for discover_config_file function."""

    def test_explicit_path_priority(self, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text("[depresolve]\n", encoding="utf-8")
        (tmp_path / "depresolve.toml").write_text("[depresolve]\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            result = discover_config_file(config_file)

        assert result == config_file.resolve()

    def test_explicit_path_not_found_raises_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            discover_config_file(tmp_path / "nonexistent.toml")

        assert "not found" in str(exc_info.value).lower()

    def test_discovers_own_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "depresolve.toml"
        config_file.write_text("[depresolve]\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config_file

    def test_discovers_pyproject_toml_with_section(self, tmp_path: Path) -> None:
        config_file = tmp_path / "pyproject.toml"
        config_file.write_text("[tool.depresolve]\nmax_retries = 1\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config_file

    def test_ignores_pyproject_toml_without_section(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[tool.other]\nkey = 'value'\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None

    def test_returns_none_when_no_config_found(self, tmp_path: Path) -> None:
        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None

    def test_precedence_order(self, tmp_path: Path) -> None:
        own_toml = tmp_path / "depresolve.toml"
        own_toml.write_text("[depresolve]\n", encoding="utf-8")
        (tmp_path / "pyproject.toml").write_text("[tool.depresolve]\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == own_toml


@pytest.mark.unit
class TestPyprojectHasSection:
    """Tests for _pyproject_has_section."""

    def test_true_when_section_exists(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text("[tool.depresolve]\ncache_ttl = 60\n", encoding="utf-8")

        assert _pyproject_has_section(path) is True

    def test_false_when_section_missing(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text("[project]\nname = 'x'\n", encoding="utf-8")

        assert _pyproject_has_section(path) is False

    def test_false_on_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text("[tool.depresolve\n", encoding="utf-8")

        assert _pyproject_has_section(path) is False


@pytest.mark.unit
class TestReadToml:
    """Tests for _read_toml."""

    def test_reads_valid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "depresolve.toml"
        path.write_text("[depresolve]\nmax_retries = 2\n", encoding="utf-8")

        assert _read_toml(path) == {"depresolve": {"max_retries": 2}}

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "depresolve.toml"
        path.write_text("max_retries = = 2\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            _read_toml(path)

        assert "Invalid TOML in depresolve.toml" in exc_info.value.message

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _read_toml(tmp_path / "absent.toml")

        assert "Cannot read configuration file" in exc_info.value.message


@pytest.mark.unit
class TestParseSection:
    """Tests for _parse_section validation."""

    def test_empty_section(self) -> None:
        assert _parse_section({}, config_path="x.toml") == ResolverConfig()

    def test_all_options(self) -> None:
        config = _parse_section(
            {
                "index_url": "https://mirror.example.org/pypi",
                "max_concurrency": 32,
                "request_timeout": 5,
                "max_retries": 0,
                "cache_ttl": 600,
                "cache_dir": "~/resolver-cache",
                "allow_prereleases": True,
                "python_version": "3.9",
                "max_backtracks": 10,
            },
            config_path="x.toml",
        )

        assert config.index_url == "https://mirror.example.org/pypi"
        assert config.max_concurrency == 32
        assert config.request_timeout == 5.0
        assert isinstance(config.request_timeout, float)
        assert config.cache_ttl == 600.0
        assert config.cache_dir == Path("~/resolver-cache").expanduser()
        assert config.allow_prereleases is True
        assert config.python_version == "3.9"
        assert config.max_backtracks == 10

    def test_unknown_keys(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"workers": 4, "colour": True}, config_path="x.toml")

        assert exc_info.value.message == "Unknown configuration keys: colour, workers"

    def test_wrong_type(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"allow_prereleases": "yes"}, config_path="x.toml")

        assert exc_info.value.option == "allow_prereleases"
        assert "must be bool, got str" in exc_info.value.message

    def test_bool_rejected_for_int(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({"max_retries": True}, config_path="x.toml")

        assert "max_retries must be int, got bool" in exc_info.value.message

    @pytest.mark.parametrize(
        "option, value, expected",
        [
            ("max_concurrency", 0, "max_concurrency must be between 1 and 64, got 0"),
            ("max_concurrency", 65, "max_concurrency must be between 1 and 64, got 65"),
            ("max_retries", -1, "max_retries must be >= 0, got -1"),
            ("request_timeout", 0, "request_timeout must be > 0, got 0"),
            ("cache_ttl", -5.0, "cache_ttl must be >= 0, got -5.0"),
        ],
    )
    def test_out_of_range(self, option: str, value, expected: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            _parse_section({option: value}, config_path="x.toml")

        assert exc_info.value.message == expected


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_no_config_found(self, tmp_path: Path) -> None:
        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config == ResolverConfig()

    def test_loads_own_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "depresolve.toml"
        path.write_text("[depresolve]\nmax_concurrency = 4\n", encoding="utf-8")

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config.max_concurrency == 4
        assert config.source_path == path

    def test_loads_pyproject_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text(
            "[project]\nname = 'app'\n\n[tool.depresolve]\nallow_prereleases = true\n",
            encoding="utf-8",
        )

        with patch("depresolve.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config.allow_prereleases is True

    def test_loads_explicit_path(self, tmp_path: Path) -> None:
        path = tmp_path / "ci.toml"
        path.write_text("[depresolve]\npython_version = '3.8'\n", encoding="utf-8")

        config = load_config(path)

        assert config.python_version == "3.8"
        assert config.source_path == path.resolve()

    def test_empty_section(self, tmp_path: Path) -> None:
        path = tmp_path / "depresolve.toml"
        path.write_text("# nothing yet\n", encoding="utf-8")

        config = load_config(path)

        assert config.max_concurrency == 10
        assert config.source_path == path.resolve()

    def test_invalid_value_reports_path(self, tmp_path: Path) -> None:
        path = tmp_path / "depresolve.toml"
        path.write_text("[depresolve]\nmax_concurrency = 1000\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.details["path"] == str(path.resolve())
