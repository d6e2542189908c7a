"""
Unified data model exports for depresolve.

This module re-exports all core data models to provide a stable and
convenient public API. Users can import models directly from
``depresolve.models`` instead of individual submodules.

Example:
    >>> from depresolve.models import Requirement, Version, Conflict
"""

from __future__ import annotations

from depresolve.models.version import (
    Constraint,
    Version,
    compare,
    parse_constraints,
    parse_version,
    satisfies,
    satisfies_all,
)
from depresolve.models.requirement import Requirement, normalize_name, parse_requirement
from depresolve.models.release import ReleaseMetadata, sort_releases
from depresolve.models.conflict import Conflict, ConflictCause
from depresolve.models.resolution import (
    InstallItem,
    PackageState,
    Resolution,
    ResolutionNode,
)

__all__ = [
    "Version",
    "Constraint",
    "compare",
    "parse_version",
    "parse_constraints",
    "satisfies",
    "satisfies_all",
    "Requirement",
    "normalize_name",
    "parse_requirement",
    "ReleaseMetadata",
    "sort_releases",
    "Conflict",
    "ConflictCause",
    "InstallItem",
    "PackageState",
    "Resolution",
    "ResolutionNode",
]
