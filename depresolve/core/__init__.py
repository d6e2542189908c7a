"""
Core functionality exports for depresolve.

This module provides convenient access to the core subsystems of depresolve.
Importing from here keeps user-facing imports clean and stable:

    from depresolve.core import MetadataCache, MetadataFetcher, Resolver
"""

from __future__ import annotations

from depresolve.core.cache import CacheEntry, CacheStats, MetadataCache
from depresolve.core.index import PyPIIndex
from depresolve.core.fetcher import Cache, Fetcher, FetchResult, Index, MetadataFetcher
from depresolve.core.resolver import Resolver, build_environment
from depresolve.core.lockfile import LockFile, read_lockfile, write_lockfile

__all__ = [
    "Cache",
    "CacheEntry",
    "CacheStats",
    "MetadataCache",
    "PyPIIndex",
    "Fetcher",
    "FetchResult",
    "Index",
    "MetadataFetcher",
    "Resolver",
    "build_environment",
    "LockFile",
    "read_lockfile",
    "write_lockfile",
]
