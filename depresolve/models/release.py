"""
Release metadata model for depresolve.

A :class:`ReleaseMetadata` describes one published version of a package as
reported by the index. Instances are immutable; when a richer document
becomes available (for example the per-release endpoint supplying the
dependency list) a new instance is built with :func:`dataclasses.replace`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from packaging.specifiers import InvalidSpecifier, SpecifierSet

from depresolve.exceptions import InvalidRequirement
from depresolve.models.requirement import Requirement, normalize_name, parse_requirement
from depresolve.models.version import Version, parse_version
from depresolve.utils.logger import get_logger

logger = get_logger("models.release")

__all__ = ["ReleaseMetadata", "sort_releases", "parse_dependencies"]


@dataclass(frozen=True)
class ReleaseMetadata:
    """One published version of a package.

    Attributes:
        name: Normalized package name.
        version: Parsed release version.
        dependencies: Declared dependencies, or ``None`` when the index
            listing did not include them and the per-release document has
            not been fetched yet.
        requires_python: ``Requires-Python`` specifier, if declared.
        url: Download URL of the chosen distribution file.
        sha256: SHA-256 digest of that file.
        filename: File name of that distribution file.
        upload_time: ISO-8601 upload timestamp.
        yanked: Whether every file of this release is yanked.
    """

    name: str
    version: Version
    dependencies: Optional[Tuple[Requirement, ...]] = None
    requires_python: Optional[str] = None
    url: Optional[str] = None
    sha256: Optional[str] = None
    filename: Optional[str] = None
    upload_time: Optional[str] = None
    yanked: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalize_name(self.name))

    @property
    def source_key(self) -> str:
        """Stable secondary identifier used to break version ties."""
        return self.filename or self.url or ""

    @property
    def pin(self) -> str:
        return f"{self.name}=={self.version.text or self.version}"

    def sort_key(self) -> Tuple[Version, str]:
        return (self.version, self.source_key)

    def is_python_compatible(self, python_version: Optional[str]) -> bool:
        """Check whether this release supports *python_version*.

        Missing or malformed ``requires_python`` is treated as compatible,
        matching pip's permissive behaviour.
        """
        if not self.requires_python or not python_version:
            return True
        try:
            return python_version in SpecifierSet(self.requires_python)
        except InvalidSpecifier:
            return True

    def with_dependencies(self, dependencies: Iterable[Requirement]) -> "ReleaseMetadata":
        """Return a copy carrying *dependencies*."""
        return replace(self, dependencies=tuple(dependencies))

    # ------------------------------------------------------------------
    # Serialization (disk cache and lock files)
    # ------------------------------------------------------------------

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "name": self.name,
            "version": self.version.text or str(self.version),
            "dependencies": (
                None
                if self.dependencies is None
                else [str(dep) for dep in self.dependencies]
            ),
            "requires_python": self.requires_python,
            "url": self.url,
            "sha256": self.sha256,
            "filename": self.filename,
            "upload_time": self.upload_time,
            "yanked": self.yanked,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReleaseMetadata":
        """Rebuild an instance produced by :meth:`to_json`.

        Raises:
            KeyError: A required field is missing.
            TypeError: A field has the wrong shape.
        """
        if not isinstance(data, dict):
            raise TypeError(f"release must be an object, got {type(data).__name__}")
        raw_deps = data.get("dependencies")
        dependencies = None if raw_deps is None else parse_dependencies(raw_deps)
        return cls(
            name=data["name"],
            version=parse_version(data["version"]),
            dependencies=dependencies,
            requires_python=data.get("requires_python"),
            url=data.get("url"),
            sha256=data.get("sha256"),
            filename=data.get("filename"),
            upload_time=data.get("upload_time"),
            yanked=bool(data.get("yanked", False)),
        )


def parse_dependencies(raw: Sequence[str]) -> Tuple[Requirement, ...]:
    """Parse ``requires_dist`` entries, skipping malformed ones.

    A bad entry in upstream metadata fails only that entry; it is logged
    at DEBUG and the rest of the list is kept.
    """
    if isinstance(raw, str):
        raise TypeError("dependencies must be a list of strings")

    parsed: List[Requirement] = []
    for entry in raw:
        try:
            parsed.append(parse_requirement(entry))
        except InvalidRequirement as exc:
            logger.debug("Skipping unparseable dependency %r: %s", entry, exc)
    return tuple(parsed)


def sort_releases(releases: Iterable[ReleaseMetadata]) -> List[ReleaseMetadata]:
    """Return *releases* newest first, ties broken by source identifier."""
    return sorted(releases, key=ReleaseMetadata.sort_key, reverse=True)
