"""Concurrent, cache-first metadata fetcher for depresolve.

:class:`MetadataFetcher` turns a batch of package names into a stream of
:class:`FetchResult` objects delivered in completion order:

1. Cache hits (including remembered "not found" answers) are yielded first
   and never take a concurrency slot.
2. Each miss becomes one task. The task waits on the fetcher's
   :class:`asyncio.Semaphore` before touching the network, so at most
   ``max_concurrency`` requests are ever in flight.
3. Transient failures (timeouts, connection errors, 5xx, 429) are retried
   with exponential backoff; the slot is released while backing off.
4. Successful answers are written to the cache before they are yielded.

A failure is attributed to its own package as a :class:`FetchError`
result; other fetches in the same batch are unaffected.

Typical usage::

    async with HTTPClient() as client:
        fetcher = MetadataFetcher(PyPIIndex(client), MetadataCache())
        async for result in fetcher.fetch_all(["flask", "click"]):
            print(result.name, len(result.releases), result.error)
"""

from __future__ import annotations

import random
import asyncio
from dataclasses import dataclass
from typing import (
    Any,
    AsyncGenerator,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    Tuple,
)

from depresolve.constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
)
from depresolve.core.cache import CacheEntry, MetadataCache, cache_key
from depresolve.exceptions import DepResolveError, FetchError, NetworkError
from depresolve.models.release import ReleaseMetadata
from depresolve.utils.logger import get_logger, get_package_logger

logger = get_logger("fetcher")

__all__ = ["Cache", "Fetcher", "FetchResult", "Index", "MetadataFetcher"]


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class Index(Protocol):
    """Source of release metadata (the package index or a test double)."""

    async def fetch_package(self, name: str) -> List[ReleaseMetadata]: ...

    async def fetch_release(self, name: str, version: str) -> ReleaseMetadata: ...


class Cache(Protocol):
    """Storage consulted before, and populated after, every fetch."""

    def lookup(self, key: str) -> Optional[CacheEntry]: ...

    def put(self, key: str, releases: Iterable[ReleaseMetadata]) -> Any: ...

    def put_missing(self, key: str) -> Any: ...

    def invalidate(self, key: str) -> bool: ...


@dataclass(frozen=True)
class FetchResult:
    """Outcome of fetching one key.

    Attributes:
        name: Cache key: a package name, or ``name==version`` for a
            per-release document.
        releases: Releases on success, newest first.
        error: The per-package failure, if any.
        from_cache: Whether the answer came from the cache.
        attempts: Network attempts made (0 for cache answers).
    """

    name: str
    releases: Tuple[ReleaseMetadata, ...] = ()
    error: Optional[FetchError] = None
    from_cache: bool = False
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class Fetcher(Protocol):
    """What the resolver needs from a fetcher."""

    def fetch_all(self, names: Iterable[str]) -> AsyncGenerator[FetchResult, None]: ...

    def fetch_releases(self, pins: Iterable[str]) -> AsyncGenerator[FetchResult, None]: ...


_FetchOne = Callable[[str], Awaitable[Sequence[ReleaseMetadata]]]


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class MetadataFetcher:
    """Bounded-concurrency, retrying, cache-first fetcher.

    Args:
        index: Where release metadata comes from.
        cache: Cache to consult and populate. Defaults to a memory-only
            :class:`MetadataCache`.
        max_concurrency: Upper bound on in-flight index requests.
        request_timeout: Per-attempt timeout in seconds.
        max_retries: Retries after the first attempt for transient errors.
        backoff_base: First retry delay in seconds; doubles per attempt.
        backoff_max: Ceiling on a single retry delay.
        jitter: Upper bound of the random delay added to each backoff.
        refresh: Invalidate each key before its first lookup, forcing a
            network fetch.
        sleep: Coroutine used for backoff delays, injectable for tests.
    """

    def __init__(
        self,
        index: Index,
        cache: Optional[Cache] = None,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        request_timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        jitter: float = 0.3,
        refresh: bool = False,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.index = index
        self.cache: Cache = cache if cache is not None else MetadataCache(persist=False)
        self.max_concurrency = max_concurrency
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.jitter = jitter
        self.refresh = refresh
        self._sleep = sleep

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._refreshed: Set[str] = set()

        # Instrumentation
        self.in_flight = 0
        self.peak_in_flight = 0
        self.requests = 0

    # ------------------------------------------------------------------
    # Public streams
    # ------------------------------------------------------------------

    def fetch_all(self, names: Iterable[str]) -> AsyncGenerator[FetchResult, None]:
        """Stream release listings for *names* in completion order.

        Closing the returned generator early cancels outstanding requests.
        """
        return self._stream(names, self._fetch_listing)

    def fetch_releases(self, pins: Iterable[str]) -> AsyncGenerator[FetchResult, None]:
        """Stream per-release documents for ``name==version`` *pins*."""
        return self._stream(pins, self._fetch_release)

    # ------------------------------------------------------------------
    # Streaming core
    # ------------------------------------------------------------------

    async def _stream(
        self,
        keys: Iterable[str],
        fetch_one: _FetchOne,
    ) -> AsyncGenerator[FetchResult, None]:
        unique: List[str] = []
        for key in keys:
            key = cache_key(key)
            if key not in unique:
                unique.append(key)

        misses: List[str] = []
        for key in unique:
            cached = self._from_cache(key)
            if cached is None:
                misses.append(key)
            else:
                yield cached

        if not misses:
            return

        tasks = [
            asyncio.ensure_future(self._fetch_with_retry(key, fetch_one))
            for key in misses
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            # Abandoned by the consumer (cancellation or early exit)
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                logger.debug("Abandoning %d in-flight fetch(es)", len(pending))
                await asyncio.gather(*pending, return_exceptions=True)

    def _from_cache(self, key: str) -> Optional[FetchResult]:
        if self.refresh and key not in self._refreshed:
            self._refreshed.add(key)
            self.cache.invalidate(key)
            return None

        entry = self.cache.lookup(key)
        if entry is None:
            return None
        if entry.missing:
            return FetchResult(
                name=key,
                error=FetchError(
                    f"Package '{key}' not found on the index (cached)",
                    package_name=key,
                    not_found=True,
                    status_code=404,
                ),
                from_cache=True,
            )
        return FetchResult(name=key, releases=tuple(entry.releases), from_cache=True)

    async def _fetch_with_retry(self, key: str, fetch_one: _FetchOne) -> FetchResult:
        """Fetch one key, retrying transient failures, and record the outcome."""
        plog = get_package_logger("fetcher", key)
        attempts = 0

        while True:
            attempts += 1
            releases, error = await self._attempt(key, fetch_one)

            if error is None:
                self.cache.put(key, releases)
                plog.debug("Fetched %d release(s) in %d attempt(s)", len(releases), attempts)
                return FetchResult(name=key, releases=releases, attempts=attempts)

            if error.status_code == 404:
                self.cache.put_missing(key)
                plog.info("Not found on the index")
                return FetchResult(
                    name=key,
                    error=FetchError(
                        f"Package '{key}' not found on the index",
                        package_name=key,
                        attempts=attempts,
                        not_found=True,
                        url=error.url,
                        status_code=404,
                    ),
                    attempts=attempts,
                )

            if not error.transient or attempts > self.max_retries:
                plog.warning("Giving up after %d attempt(s): %s", attempts, error.message)
                return FetchResult(
                    name=key,
                    error=FetchError(
                        f"Failed to fetch metadata for '{key}': {error.message}",
                        package_name=key,
                        attempts=attempts,
                        url=error.url,
                        status_code=error.status_code,
                    ),
                    attempts=attempts,
                )

            delay = self._backoff(attempts - 1)
            plog.warning(
                "Transient failure (%d/%d), retrying in %.2fs: %s",
                attempts,
                self.max_retries + 1,
                delay,
                error.message,
            )
            await self._sleep(delay)

    async def _attempt(
        self,
        key: str,
        fetch_one: _FetchOne,
    ) -> Tuple[Tuple[ReleaseMetadata, ...], Optional[NetworkError]]:
        """Run one gated request; return ``(releases, None)`` or ``((), error)``."""
        async with self._semaphore:
            self.in_flight += 1
            self.requests += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            try:
                releases = await asyncio.wait_for(fetch_one(key), self.request_timeout)
            except asyncio.TimeoutError:
                return (), NetworkError(
                    f"Request timed out after {self.request_timeout}s",
                    transient=True,
                )
            except NetworkError as exc:
                return (), exc
            except (DepResolveError, ValueError, TypeError, KeyError, AttributeError) as exc:
                return (), NetworkError(f"Malformed index response: {exc}")
            finally:
                self.in_flight -= 1
        return tuple(releases), None

    def _backoff(self, retry: int) -> float:
        delay = min(self.backoff_max, self.backoff_base * (2**retry))
        if self.jitter > 0:
            delay += random.uniform(0.0, self.jitter)
        return delay

    # ------------------------------------------------------------------
    # Index adapters
    # ------------------------------------------------------------------

    async def _fetch_listing(self, key: str) -> Sequence[ReleaseMetadata]:
        return await self.index.fetch_package(key)

    async def _fetch_release(self, key: str) -> Sequence[ReleaseMetadata]:
        name, _, version = key.partition("==")
        return [await self.index.fetch_release(name, version)]

