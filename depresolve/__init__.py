"""
depresolve — dependency resolution core for Python packages

depresolve turns top-level requirement strings into a consistent,
installable set of pinned versions. It queries a PyPI-compatible JSON
index under bounded concurrency, caches metadata locally with TTL-based
expiry, and reports unsatisfiable requirements as a structured conflict
naming the packages and requirement chains involved.

Features include:
    • PEP 440 versions with lenient parsing of real-world index data
    • PEP 508 requirements with extras and environment markers
    • Two-tier (memory + disk) metadata cache
    • Concurrent, retrying metadata fetches
    • Backtracking resolution with cycle handling
    • Lock files for reproducible installs
"""

from __future__ import annotations

from depresolve.__version__ import __version__

# ---------------------------------------------------------------------------
# Package Metadata
# ---------------------------------------------------------------------------

__author__ = "depresolve Contributors"
__license__ = "Apache-2.0"
__description__ = "Dependency resolution and metadata acquisition for Python packages."

__all__ = [
    "__version__",
]
