"""
Centralized constants for depresolve.

This module defines immutable configuration values used across depresolve,
including index endpoints, network and retry settings, cache layout, resolver
limits, and logging formats. All values are intended to be treated as
read-only.
"""

from typing import Final

# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------

#: HTTP User-Agent template used for outbound requests.
USER_AGENT_TEMPLATE: Final[str] = "depresolve/{version}"

# ---------------------------------------------------------------------------
# Package index endpoints
# ---------------------------------------------------------------------------

#: Base URL of the PyPI-compatible JSON API.
DEFAULT_INDEX_URL: Final[str] = "https://pypi.org/pypi"

#: Release listing endpoint, relative to the index URL.
PACKAGE_ENDPOINT: Final[str] = "{index}/{package}/json"

#: Per-release metadata endpoint, relative to the index URL.
RELEASE_ENDPOINT: Final[str] = "{index}/{package}/{version}/json"

# ---------------------------------------------------------------------------
# Fetch configuration
# ---------------------------------------------------------------------------

#: Per-request timeout in seconds.
DEFAULT_TIMEOUT: Final[float] = 10.0

#: Retries after the first attempt for transient failures.
DEFAULT_MAX_RETRIES: Final[int] = 3

#: Maximum number of in-flight index requests.
DEFAULT_MAX_CONCURRENCY: Final[int] = 10

#: Accepted range for the configured concurrency limit.
MIN_CONCURRENCY: Final[int] = 1
MAX_CONCURRENCY: Final[int] = 64

#: Base delay (seconds) of the exponential retry backoff.
DEFAULT_BACKOFF_BASE: Final[float] = 0.5

#: Upper bound (seconds) on a single backoff delay.
DEFAULT_BACKOFF_MAX: Final[float] = 8.0

# ---------------------------------------------------------------------------
# Cache configuration
# ---------------------------------------------------------------------------

#: Lifetime of a cached release listing, in seconds (24 hours).
DEFAULT_CACHE_TTL: Final[float] = 24 * 60 * 60

#: Lifetime of a cached "package does not exist" entry, in seconds.
DEFAULT_NEGATIVE_TTL: Final[float] = 60 * 60

#: Directory name under the user cache root.
CACHE_DIR_NAME: Final[str] = "depresolve"

#: Versioned suffix; bump to invalidate every persisted entry.
CACHE_SCHEMA_DIR: Final[str] = "metadata-v1"

#: Schema number stored inside every cache file.
CACHE_SCHEMA_VERSION: Final[int] = 1

# ---------------------------------------------------------------------------
# Resolver configuration
# ---------------------------------------------------------------------------

#: Maximum number of times a single package may be re-selected in one run.
DEFAULT_MAX_BACKTRACKS: Final[int] = 100

#: Allow pre-release candidates by default.
DEFAULT_ALLOW_PRERELEASES: Final[bool] = False

# ---------------------------------------------------------------------------
# Lock file
# ---------------------------------------------------------------------------

#: Format version written into generated lock files.
LOCKFILE_VERSION: Final[str] = "1"

#: Largest lock or cache file that will be read back, in bytes (10 MB).
MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024

# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

#: Timestamp format for verbose logging.
LOG_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

#: Default log format (non-verbose).
LOG_DEFAULT_FORMAT: Final[str] = "%(levelname)s: %(message)s"

#: Verbose log format including timestamp and logger name.
LOG_VERBOSE_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
