"""
Requirement data model for depresolve.

This module defines an immutable representation of a single PEP 508
requirement (``name[extras] constraints ; marker``). Parsing of the outer
syntax is delegated to ``packaging``; the version bounds are converted to
:class:`~depresolve.models.version.Constraint` objects so that they can be
evaluated against leniently parsed index versions.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Mapping, Optional, Tuple, FrozenSet

from packaging.markers import Marker, UndefinedEnvironmentName
from packaging.requirements import InvalidRequirement as _PackagingInvalidRequirement
from packaging.requirements import Requirement as _PackagingRequirement
from packaging.utils import canonicalize_name

from depresolve.exceptions import InvalidRequirement
from depresolve.models.version import Constraint, Version, satisfies_all

__all__ = ["Requirement", "parse_requirement", "normalize_name"]


def normalize_name(name: str) -> str:
    """Normalize a package name according to PEP 503."""
    return str(canonicalize_name(name))


@lru_cache(maxsize=1024)
def _compile_marker(text: str) -> Marker:
    return Marker(text)


@dataclass(frozen=True)
class Requirement:
    """
    A package name plus the versions acceptable for it.

    Attributes:
        name: Normalized package name.
        constraints: Conjunction of version constraints; empty means any.
        extras: Optional extras requested from the package.
        markers: Environment marker expression (PEP 508), if any.
        url: Direct URL reference, carried through for display only.
    """

    name: str
    constraints: Tuple[Constraint, ...] = ()
    extras: FrozenSet[str] = frozenset()
    markers: Optional[str] = None
    url: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))
        object.__setattr__(
            self, "extras", frozenset(normalize_name(e) for e in self.extras)
        )

    @property
    def specifier(self) -> str:
        """Constraints rendered as a comma-separated specifier string."""
        return ",".join(str(c) for c in self.constraints)

    @property
    def names_prerelease(self) -> bool:
        """Whether any constraint explicitly names a pre-release."""
        return any(
            c.version.is_prerelease and c.operator != "!=" for c in self.constraints
        )

    @property
    def is_exact_pin(self) -> bool:
        """Whether this requirement pins one version with ``==`` or ``===``."""
        return any(
            c.operator in ("==", "===") and not c.wildcard for c in self.constraints
        )

    def is_satisfied_by(self, version: Version) -> bool:
        """Return ``True`` if *version* meets every constraint."""
        return satisfies_all(version, self.constraints)

    def applies_to(
        self,
        environment: Mapping[str, str],
        extras: Iterable[str] = (),
    ) -> bool:
        """Evaluate the environment marker.

        The marker is evaluated once per requested extra (and once with no
        extra), so dependencies guarded by ``extra == "name"`` only apply
        when that extra was asked for.

        Args:
            environment: Marker variables (``python_version``,
                ``sys_platform``, ...).
            extras: Extras requested on the package declaring this
                dependency.
        """
        if not self.markers:
            return True

        marker = _compile_marker(self.markers)
        for extra in ("", *sorted(extras)):
            env = dict(environment)
            env["extra"] = extra
            try:
                if marker.evaluate(env):
                    return True
            except UndefinedEnvironmentName:
                return False
        return False

    def to_string(self) -> str:
        """Render the canonical PEP 508 representation."""
        requirement = self.name
        if self.extras:
            requirement += f"[{','.join(sorted(self.extras))}]"
        if self.url:
            requirement += f" @ {self.url}"
        elif self.constraints:
            requirement += self.specifier
        if self.markers:
            requirement += f" ; {self.markers}"
        return requirement

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Requirement({self.to_string()!r})"


def parse_requirement(text: str) -> Requirement:
    """Parse a PEP 508 requirement string.

    Args:
        text: Requirement text such as ``"requests[socks]>=2.25,<3"``.

    Returns:
        The parsed :class:`Requirement`.

    Raises:
        InvalidRequirement: The text is empty or not valid PEP 508.

    Example::

        >>> req = parse_requirement("Flask_Login>=0.6 ; python_version >= '3.8'")
        >>> req.name, req.specifier
        ('flask-login', '>=0.6')
    """
    stripped = (text or "").strip()
    if not stripped:
        raise InvalidRequirement("Requirement string is empty", requirement=text)

    try:
        parsed = _PackagingRequirement(stripped)
    except _PackagingInvalidRequirement as exc:
        raise InvalidRequirement(
            f"Invalid requirement: {exc}",
            requirement=stripped,
        ) from exc

    constraints = tuple(
        Constraint.build(spec.operator, spec.version)
        for spec in sorted(parsed.specifier, key=str)
    )

    return Requirement(
        name=parsed.name,
        constraints=constraints,
        extras=frozenset(parsed.extras),
        markers=str(parsed.marker) if parsed.marker is not None else None,
        url=parsed.url,
    )
