"""
Dependency conflict data models for depresolve.

A :class:`Conflict` describes a package for which no available version
satisfies every requirement placed on it, together with the requirements
responsible and the chain of selections that introduced each of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from depresolve.models.requirement import Requirement, normalize_name


@dataclass(frozen=True)
class ConflictCause:
    """One requirement contributing to a conflict.

    Args:
        requirement: The requirement placed on the conflicted package.
        parent: ``name==version`` of the selection that declared it, or
            ``None`` for a root requirement.
        chain: Selections from a root down to *parent*, as ``name==version``.
    """

    requirement: Requirement
    parent: Optional[str] = None
    chain: Tuple[str, ...] = ()

    @property
    def parent_name(self) -> Optional[str]:
        if self.parent is None:
            return None
        return self.parent.split("==", 1)[0]

    def to_display_string(self) -> str:
        """Return a human-readable description of the cause."""
        source = self.parent or "<root>"
        return f"{source} requires {self.requirement}"

    def to_json(self) -> Dict[str, Any]:
        return {
            "requirement": str(self.requirement),
            "parent": self.parent,
            "chain": list(self.chain),
        }


@dataclass(frozen=True)
class Conflict:
    """Represents an unsatisfiable set of requirements on one package.

    Args:
        package: Name of the conflicted package.
        causes: Requirements whose intersection admits no candidate.
        available: Versions of the package that were considered.
        cycle: Whether a dependency cycle forced the final tightening.
    """

    package: str
    causes: Tuple[ConflictCause, ...] = ()
    available: Tuple[str, ...] = ()
    cycle: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "package", normalize_name(self.package))

    @property
    def requirements(self) -> Tuple[Requirement, ...]:
        return tuple(cause.requirement for cause in self.causes)

    @property
    def involved_packages(self) -> FrozenSet[str]:
        """Every package named by this conflict, including chain members."""
        names = {self.package}
        for cause in self.causes:
            if cause.parent_name:
                names.add(cause.parent_name)
            names.update(pin.split("==", 1)[0] for pin in cause.chain)
        return frozenset(names)

    def to_display_string(self) -> str:
        """Return a multi-line, human-readable description."""
        header = (
            f"Dependency cycle through {self.package} cannot be satisfied:"
            if self.cycle
            else f"No version of {self.package} satisfies all requirements:"
        )
        lines: List[str] = [header]
        for cause in self.causes:
            lines.append(f"  - {cause.to_display_string()}")
            if len(cause.chain) > 1:
                lines.append(f"    via {' -> '.join(cause.chain)}")
        if self.available:
            lines.append(f"  available: {', '.join(self.available)}")
        return "\n".join(lines)

    def to_short_string(self) -> str:
        """Return a compact conflict summary."""
        specs = ", ".join(
            f"{cause.parent_name or 'root'} needs {cause.requirement.specifier or '*'}"
            for cause in self.causes
        )
        return f"{self.package}: {specs}"

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "package": self.package,
            "cycle": self.cycle,
            "causes": [cause.to_json() for cause in self.causes],
            "available": list(self.available),
        }

    def __str__(self) -> str:
        return self.to_display_string()
