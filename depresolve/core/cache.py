"""Two-tier metadata cache for depresolve.

Release listings and per-release documents fetched from the index are kept
in an in-memory mapping backed by one JSON file per key on disk. Every
entry carries its write timestamp and TTL; expired entries are treated as
absent so the caller refetches and replaces them wholesale.

The disk tier is strictly best effort. Corrupt files, permission errors
and schema mismatches surface internally as :class:`CacheIOError`, are
logged, and are reported to the caller as a plain miss.

Typical usage::

    cache = MetadataCache()
    cache.put("requests", releases)
    cache.get("requests")            # -> [ReleaseMetadata, ...]
    cache.invalidate("requests")     # explicit refresh
"""

from __future__ import annotations

import os
import json
import time
import threading
from pathlib import Path
from urllib.parse import quote
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from depresolve.constants import (
    CACHE_DIR_NAME,
    CACHE_SCHEMA_DIR,
    CACHE_SCHEMA_VERSION,
    DEFAULT_CACHE_TTL,
    DEFAULT_NEGATIVE_TTL,
)
from depresolve.exceptions import CacheIOError, DepResolveError, FileOperationError
from depresolve.models.release import ReleaseMetadata
from depresolve.models.requirement import normalize_name
from depresolve.utils.filesystem import (
    atomic_write_text,
    iter_files,
    remove_file,
    safe_read_file,
)
from depresolve.utils.logger import get_logger

logger = get_logger("cache")

__all__ = ["CacheEntry", "CacheStats", "MetadataCache", "cache_key", "default_cache_dir"]

_SUFFIX = ".json"


# ---------------------------------------------------------------------------
# Keys and locations
# ---------------------------------------------------------------------------


def cache_key(name: str, version: Optional[str] = None) -> str:
    """Build a cache key: ``name`` for listings, ``name==version`` for releases.

    Example::

        >>> cache_key("Flask_Login")
        'flask-login'
        >>> cache_key("Flask", "3.0.0")
        'flask==3.0.0'
    """
    if version is None and "==" in name:
        name, version = name.split("==", 1)
    normalized = normalize_name(name)
    return normalized if version is None else f"{normalized}=={version.strip()}"


def default_cache_dir() -> Path:
    """Return the versioned on-disk cache root.

    ``$DEPRESOLVE_CACHE_DIR`` wins, then ``$XDG_CACHE_HOME/depresolve``,
    then ``~/.cache/depresolve``. The schema suffix is always appended.
    """
    override = os.environ.get("DEPRESOLVE_CACHE_DIR")
    if override:
        base = Path(override).expanduser()
    else:
        xdg = os.environ.get("XDG_CACHE_HOME")
        root = Path(xdg).expanduser() if xdg else Path.home() / ".cache"
        base = root / CACHE_DIR_NAME
    return base / CACHE_SCHEMA_DIR


# ---------------------------------------------------------------------------
# Entries and statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheEntry:
    """A cached release list, or a negative marker, with its freshness.

    Attributes:
        key: Cache key the entry was stored under.
        releases: Cached releases; empty for negative entries.
        fetched_at: Clock value at write time.
        ttl: Lifetime in seconds.
        missing: True when the index reported the key as not found.
    """

    key: str
    releases: Tuple[ReleaseMetadata, ...] = ()
    fetched_at: float = 0.0
    ttl: float = DEFAULT_CACHE_TTL
    missing: bool = False

    def is_expired(self, now: float) -> bool:
        return now - self.fetched_at >= self.ttl

    def to_json(self) -> Dict[str, Any]:
        return {
            "schema": CACHE_SCHEMA_VERSION,
            "key": self.key,
            "fetched_at": self.fetched_at,
            "ttl": self.ttl,
            "missing": self.missing,
            "releases": [release.to_json() for release in self.releases],
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Rebuild an entry written by :meth:`to_json`.

        Raises:
            ValueError: Schema version mismatch.
            KeyError, TypeError: Malformed document.
        """
        if not isinstance(data, dict):
            raise TypeError(f"cache document must be an object, got {type(data).__name__}")
        if data.get("schema") != CACHE_SCHEMA_VERSION:
            raise ValueError(f"unsupported cache schema {data.get('schema')!r}")
        return cls(
            key=str(data["key"]),
            releases=tuple(ReleaseMetadata.from_json(item) for item in data["releases"]),
            fetched_at=float(data["fetched_at"]),
            ttl=float(data["ttl"]),
            missing=bool(data.get("missing", False)),
        )


@dataclass
class CacheStats:
    """Counters describing cache effectiveness.

    ``hits`` includes ``disk_hits`` (entries promoted from disk).
    """

    hits: int = 0
    misses: int = 0
    disk_hits: int = 0
    expired: int = 0
    writes: int = 0
    errors: int = 0
    entries: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class MetadataCache:
    """In-memory + on-disk store of release metadata with TTL expiry.

    Reads never take a lock; writers to the same key are serialized with a
    per-key :class:`threading.Lock`. Concurrent writers for one key race
    harmlessly since they store equivalent freshly fetched data.

    Args:
        cache_dir: On-disk root. Defaults to :func:`default_cache_dir`.
        ttl: Lifetime of positive entries in seconds.
        negative_ttl: Lifetime of "not found" entries in seconds.
        persist: When False the cache is memory-only.
        clock: Time source, injectable for tests.
    """

    def __init__(
        self,
        cache_dir: Optional[Union[str, Path]] = None,
        *,
        ttl: float = DEFAULT_CACHE_TTL,
        negative_ttl: float = DEFAULT_NEGATIVE_TTL,
        persist: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(cache_dir) if cache_dir is not None else default_cache_dir()
        self.ttl = ttl
        self.negative_ttl = negative_ttl
        self.persist = persist
        self._clock = clock

        self._memory: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._stats = CacheStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[List[ReleaseMetadata]]:
        """Return the cached releases for *key*, or None on miss.

        Negative entries also read as None; use :meth:`lookup` to tell a
        known-missing package apart from an uncached one.
        """
        entry = self.lookup(key)
        if entry is None or entry.missing:
            return None
        return list(entry.releases)

    def lookup(self, key: str) -> Optional[CacheEntry]:
        """Return the unexpired entry for *key* from memory or disk."""
        key = cache_key(key)
        now = self._clock()

        entry = self._memory.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                self._stats.hits += 1
                return entry
            self._stats.expired += 1
            self._drop_memory(key, entry)

        if self.persist:
            try:
                disk_entry = self._read_disk(key)
            except CacheIOError as exc:
                self._stats.errors += 1
                logger.warning("Ignoring unreadable cache entry for %s: %s", key, exc)
                disk_entry = None

            if disk_entry is not None:
                if not disk_entry.is_expired(now):
                    with self._lock_for(key):
                        self._memory[key] = disk_entry
                    self._stats.hits += 1
                    self._stats.disk_hits += 1
                    return disk_entry
                self._stats.expired += 1

        self._stats.misses += 1
        return None

    def put(self, key: str, releases: Iterable[ReleaseMetadata]) -> CacheEntry:
        """Store *releases* under *key* in both tiers."""
        key = cache_key(key)
        entry = CacheEntry(
            key=key,
            releases=tuple(releases),
            fetched_at=self._clock(),
            ttl=self.ttl,
        )
        self._store(entry)
        return entry

    def put_missing(self, key: str) -> CacheEntry:
        """Remember that the index has no document for *key*."""
        key = cache_key(key)
        entry = CacheEntry(
            key=key,
            fetched_at=self._clock(),
            ttl=self.negative_ttl,
            missing=True,
        )
        self._store(entry)
        return entry

    def invalidate(self, key: str) -> bool:
        """Remove *key* from both tiers. Returns True if anything was removed.

        Invalidating a package name also removes its per-release entries.
        """
        key = cache_key(key)
        removed = False

        with self._lock_for(key):
            removed = self._memory.pop(key, None) is not None or removed
            removed = self._remove_disk(key) or removed

        if "==" not in key:
            prefix = f"{key}=="
            for other in [k for k in self._memory if k.startswith(prefix)]:
                with self._lock_for(other):
                    removed = self._memory.pop(other, None) is not None or removed
            for path in self._disk_files():
                if path.name.startswith(quote(prefix, safe="")):
                    removed = self._remove_path(path) or removed

        if removed:
            logger.debug("Invalidated cache entry %s", key)
        return removed

    def clear(self) -> int:
        """Drop every entry from both tiers. Returns the number of files removed."""
        with self._locks_guard:
            self._memory.clear()
        removed = 0
        for path in self._disk_files():
            if self._remove_path(path):
                removed += 1
        logger.info("Cleared %d cached document(s) from %s", removed, self.root)
        return removed

    def stats(self) -> CacheStats:
        """Return a snapshot of the counters."""
        snapshot = CacheStats(**self._stats.to_dict())
        snapshot.entries = len(self._memory)
        return snapshot

    def disk_entries(self) -> int:
        """Count entries persisted under :attr:`root`."""
        return sum(1 for _ in self._disk_files())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            with self._locks_guard:
                lock = self._locks.setdefault(key, threading.Lock())
        return lock

    def _store(self, entry: CacheEntry) -> None:
        with self._lock_for(entry.key):
            self._memory[entry.key] = entry
            self._stats.writes += 1
            if not self.persist:
                return
            try:
                self._write_disk(entry)
            except CacheIOError as exc:
                self._stats.errors += 1
                logger.warning("Could not persist cache entry %s: %s", entry.key, exc)

    def _drop_memory(self, key: str, stale: CacheEntry) -> None:
        with self._lock_for(key):
            # A writer may have replaced the stale entry meanwhile
            if self._memory.get(key) is stale:
                del self._memory[key]

    def _path_for(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}{_SUFFIX}"

    def _disk_files(self) -> List[Path]:
        if not self.persist:
            return []
        return list(iter_files(self.root, suffix=_SUFFIX))

    def _read_disk(self, key: str) -> Optional[CacheEntry]:
        path = self._path_for(key)
        try:
            if not path.is_file():
                return None
            entry = CacheEntry.from_json(json.loads(safe_read_file(path)))
        except (
            OSError,
            FileOperationError,
            DepResolveError,
            ValueError,
            KeyError,
            TypeError,
            AttributeError,
        ) as exc:
            raise CacheIOError(
                "Corrupt or unreadable cache file",
                path=str(path),
                original_error=exc,
            ) from exc
        if entry.key != key:
            raise CacheIOError(
                f"Cache file holds {entry.key!r}, expected {key!r}",
                path=str(path),
            )
        return entry

    def _write_disk(self, entry: CacheEntry) -> None:
        path = self._path_for(entry.key)
        try:
            atomic_write_text(path, json.dumps(entry.to_json(), sort_keys=True))
        except FileOperationError as exc:
            raise CacheIOError(
                "Failed to write cache file",
                path=str(path),
                original_error=exc,
            ) from exc

    def _remove_disk(self, key: str) -> bool:
        if not self.persist:
            return False
        return self._remove_path(self._path_for(key))

    def _remove_path(self, path: Path) -> bool:
        try:
            return remove_file(path)
        except FileOperationError as exc:
            self._stats.errors += 1
            logger.warning("Could not remove cache file %s: %s", path, exc)
            return False
