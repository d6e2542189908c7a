"""Configuration file loader for depresolve.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``depresolve.toml`` — settings under ``[depresolve]`` table
- ``pyproject.toml`` — settings under ``[tool.depresolve]`` table

Discovery order:

1. Explicit path from ``--config`` or ``DEPRESOLVE_CONFIG``
2. ``depresolve.toml`` in current directory
3. ``pyproject.toml`` with ``[tool.depresolve]`` section

Configuration precedence: defaults < config file < CLI args.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``depresolve.toml``)::

    [depresolve]
    index_url = "https://pypi.org/pypi"
    max_concurrency = 16
    cache_ttl = 3600
    allow_prereleases = false
"""

from __future__ import annotations

import tomli as tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, Union
from dataclasses import dataclass, field, fields, replace

from depresolve.constants import (
    DEFAULT_ALLOW_PRERELEASES,
    DEFAULT_CACHE_TTL,
    DEFAULT_INDEX_URL,
    DEFAULT_MAX_BACKTRACKS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    MAX_CONCURRENCY,
    MIN_CONCURRENCY,
)
from depresolve.exceptions import ConfigError
from depresolve.utils.logger import get_logger

logger = get_logger("config")

_SECTION = "depresolve"


@dataclass
class ResolverConfig:
    """Parsed and validated depresolve configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        index_url: Base URL of the PyPI-compatible JSON API.
        max_concurrency: Maximum number of in-flight index requests.
        request_timeout: Per-request timeout in seconds.
        max_retries: Retries for transient fetch failures.
        cache_ttl: Lifetime of cached metadata in seconds.
        cache_dir: Override for the on-disk cache root.
        allow_prereleases: Consider pre-releases during resolution.
        python_version: Target Python version; ``None`` means the running
            interpreter.
        max_backtracks: Re-selection limit per package per run.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    index_url: str = DEFAULT_INDEX_URL
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    request_timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    cache_ttl: float = DEFAULT_CACHE_TTL
    cache_dir: Optional[Path] = None
    allow_prereleases: bool = DEFAULT_ALLOW_PRERELEASES
    python_version: Optional[str] = None
    max_backtracks: int = DEFAULT_MAX_BACKTRACKS

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    def merged(self, **overrides: Any) -> "ResolverConfig":
        """Return a copy with every non-``None`` override applied.

        Used to layer CLI flags on top of file settings.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {
            f.name: getattr(self, f.name) for f in fields(self) if f.name != "source_path"
        }


# Option name -> accepted TOML types
_OPTION_TYPES: Dict[str, Tuple[Type[Any], ...]] = {
    "index_url": (str,),
    "max_concurrency": (int,),
    "request_timeout": (int, float),
    "max_retries": (int,),
    "cache_ttl": (int, float),
    "cache_dir": (str,),
    "allow_prereleases": (bool,),
    "python_version": (str,),
    "max_backtracks": (int,),
}


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Search order:

    1. ``explicit_path`` (from ``--config`` or ``DEPRESOLVE_CONFIG``)
    2. ``depresolve.toml`` in current directory
    3. ``pyproject.toml`` with ``[tool.depresolve]`` section in current directory

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = explicit_path.resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    cwd = Path.cwd()

    own_toml = cwd / f"{_SECTION}.toml"
    if own_toml.is_file():
        logger.debug("Found %s: %s", own_toml.name, own_toml)
        return own_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.is_file() and _pyproject_has_section(pyproject_toml):
        logger.debug("Found [tool.%s] in pyproject.toml: %s", _SECTION, pyproject_toml)
        return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_section(path: Path) -> bool:
    """Check if pyproject.toml contains a ``[tool.depresolve]`` section.

    Parse errors are ignored here; an unreadable pyproject simply does not
    count as a configuration source.
    """
    try:
        raw = _read_toml(path)
    except ConfigError:
        return False
    return _SECTION in raw.get("tool", {})


def load_config(config_path: Optional[Path] = None) -> ResolverConfig:
    """Load and validate depresolve configuration.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Returns:
        Validated :class:`ResolverConfig` with values from file or defaults.

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return ResolverConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get(_SECTION, {})
    else:
        section = raw.get(_SECTION, {})

    if not section:
        logger.debug("Config file found but no %s section, using defaults", _SECTION)
        return ResolverConfig(source_path=resolved)

    config = _parse_section(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


def _parse_section(
    section: Dict[str, Any],
    *,
    config_path: str,
) -> ResolverConfig:
    """Parse and validate the ``[depresolve]`` / ``[tool.depresolve]`` table.

    Rejects unknown keys, type mismatches and out-of-range values.
    """
    unknown = set(section) - set(_OPTION_TYPES)
    if unknown:
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            config_path=config_path,
        )

    values: Dict[str, Any] = {}
    for option, value in section.items():
        expected = _OPTION_TYPES[option]
        # bool is a subclass of int; only accept it where asked for
        if not isinstance(value, expected) or (
            isinstance(value, bool) and bool not in expected
        ):
            names = " or ".join(t.__name__ for t in expected)
            raise ConfigError(
                f"{option} must be {names}, got {type(value).__name__}",
                config_path=config_path,
                option=option,
            )
        values[option] = value

    _check_range(values, "max_concurrency", MIN_CONCURRENCY, MAX_CONCURRENCY, config_path)
    _check_range(values, "max_retries", 0, None, config_path)
    _check_range(values, "max_backtracks", 0, None, config_path)
    _check_range(values, "request_timeout", 0, None, config_path, exclusive=True)
    _check_range(values, "cache_ttl", 0, None, config_path)

    if "cache_dir" in values:
        values["cache_dir"] = Path(values["cache_dir"]).expanduser()
    if "request_timeout" in values:
        values["request_timeout"] = float(values["request_timeout"])
    if "cache_ttl" in values:
        values["cache_ttl"] = float(values["cache_ttl"])

    return ResolverConfig(**values)


def _check_range(
    values: Dict[str, Any],
    option: str,
    minimum: Union[int, float],
    maximum: Optional[Union[int, float]],
    config_path: str,
    *,
    exclusive: bool = False,
) -> None:
    if option not in values:
        return
    value = values[option]
    too_low = value <= minimum if exclusive else value < minimum
    if too_low or (maximum is not None and value > maximum):
        bound = f"> {minimum}" if exclusive else f">= {minimum}"
        if maximum is not None:
            bound = f"between {minimum} and {maximum}"
        raise ConfigError(
            f"{option} must be {bound}, got {value}",
            config_path=config_path,
            option=option,
        )
