"""
Resolution result models for depresolve.

These types describe the outcome of one resolver run: which version was
selected for each package, why, and what an installer needs to fetch it.
Nodes reference each other only by package name.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from depresolve.models.release import ReleaseMetadata
from depresolve.models.requirement import Requirement
from depresolve.models.version import Version

__all__ = [
    "PackageState",
    "ResolutionNode",
    "InstallItem",
    "Resolution",
]


class PackageState(Enum):
    """Lifecycle of a package within one resolution run."""

    UNSEEN = "unseen"
    PENDING = "pending"  # Metadata fetch issued
    CANDIDATES_KNOWN = "candidates_known"
    SELECTED = "selected"
    CONFLICTED = "conflicted"


@dataclass
class ResolutionNode:
    """The selection made for one package.

    Attributes:
        name: Normalized package name.
        release: Selected release.
        requirements: Requirements that justified the selection.
        parents: Names of the packages that required this one; empty for
            packages required only by the roots.
        extras: Extras requested on this package.
        sequence: Order in which the selection was made during the run.
    """

    name: str
    release: ReleaseMetadata
    requirements: Tuple[Requirement, ...] = ()
    parents: Tuple[str, ...] = ()
    extras: FrozenSet[str] = frozenset()
    sequence: int = 0

    @property
    def version(self) -> Version:
        return self.release.version

    @property
    def pin(self) -> str:
        return self.release.pin


@dataclass(frozen=True)
class InstallItem:
    """What an installer needs for one resolved package."""

    name: str
    version: str
    url: Optional[str] = None
    sha256: Optional[str] = None
    filename: Optional[str] = None

    def to_json(self) -> Dict[str, Optional[str]]:
        return {
            "name": self.name,
            "version": self.version,
            "url": self.url,
            "sha256": self.sha256,
            "filename": self.filename,
        }


@dataclass
class Resolution:
    """Complete, installable result of a resolver run.

    Attributes:
        pins: Map of package name to selected version.
        nodes: Map of package name to its :class:`ResolutionNode`.
        roots: The root requirements that were resolved.
        rounds: Number of fetch/settle rounds performed.
        backtracks: Number of re-selections made along the way.
    """

    pins: Dict[str, Version]
    nodes: Dict[str, ResolutionNode]
    roots: Tuple[Requirement, ...] = ()
    rounds: int = 0
    backtracks: int = 0
    python_version: Optional[str] = field(default=None, repr=False)

    def install_plan(self) -> List[InstallItem]:
        """Return the hand-off list for the installer, sorted by name."""
        return [
            InstallItem(
                name=name,
                version=node.release.version.text or str(node.release.version),
                url=node.release.url,
                sha256=node.release.sha256,
                filename=node.release.filename,
            )
            for name, node in sorted(self.nodes.items())
        ]

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "packages": {
                item.name: {
                    "version": item.version,
                    "url": item.url,
                    "sha256": item.sha256,
                    "required_by": list(self.nodes[item.name].parents),
                }
                for item in self.install_plan()
            },
            "rounds": self.rounds,
            "backtracks": self.backtracks,
        }

    def summary(self) -> str:
        """Generate a human-readable summary of the resolution.

        Example::

            >>> print(resolution.summary())
            Resolved 3 package(s) in 2 round(s), 0 backtrack(s):
              • click==8.1.7
              • flask==3.0.0
              ...
        """
        lines = [
            f"Resolved {len(self.pins)} package(s) in {self.rounds} round(s), "
            f"{self.backtracks} backtrack(s):"
        ]
        for item in self.install_plan():
            lines.append(f"  • {item.name}=={item.version}")
        return "\n".join(lines)
