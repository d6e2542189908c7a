"""Lock file support for depresolve.

A lock file records a :class:`Resolution` as JSON so an installer can
reproduce it without resolving again::

    {
      "version": "1",
      "generated_at": "2024-01-01T00:00:00+00:00",
      "python_version": "3.11.4",
      "roots": ["flask>=3"],
      "packages": {
        "flask": {"version": "3.0.0", "url": "...", "sha256": "...",
                  "filename": "...", "required_by": []}
      }
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from depresolve.constants import LOCKFILE_VERSION
from depresolve.exceptions import FileOperationError
from depresolve.models.resolution import InstallItem, Resolution
from depresolve.utils.filesystem import atomic_write_text, safe_read_file, validate_path
from depresolve.utils.logger import get_logger

logger = get_logger("lockfile")

__all__ = ["LockedPackage", "LockFile", "render_lockfile", "write_lockfile", "read_lockfile"]


@dataclass(frozen=True)
class LockedPackage:
    """One pinned package as recorded in a lock file."""

    item: InstallItem
    required_by: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.item.name

    @property
    def version(self) -> str:
        return self.item.version


@dataclass
class LockFile:
    """Parsed contents of a lock file."""

    packages: Dict[str, LockedPackage] = field(default_factory=dict)
    roots: Tuple[str, ...] = ()
    python_version: Optional[str] = None
    generated_at: Optional[str] = None
    version: str = LOCKFILE_VERSION

    @property
    def pins(self) -> Dict[str, str]:
        return {name: pkg.version for name, pkg in sorted(self.packages.items())}

    def install_plan(self) -> List[InstallItem]:
        return [pkg.item for _, pkg in sorted(self.packages.items())]


def render_lockfile(resolution: Resolution, *, now: Optional[datetime] = None) -> str:
    """Serialize *resolution* to lock file text."""
    generated = (now or datetime.now(timezone.utc)).isoformat()
    packages: Dict[str, Any] = {}
    for item in resolution.install_plan():
        entry = item.to_json()
        del entry["name"]
        entry["required_by"] = list(resolution.nodes[item.name].parents)
        packages[item.name] = entry

    document = {
        "version": LOCKFILE_VERSION,
        "generated_at": generated,
        "python_version": resolution.python_version,
        "roots": [str(root) for root in resolution.roots],
        "packages": packages,
    }
    return json.dumps(document, indent=2, sort_keys=True) + "\n"


def write_lockfile(
    resolution: Resolution,
    path: Union[str, Path],
    *,
    now: Optional[datetime] = None,
) -> Path:
    """Atomically write *resolution* to *path*.

    Raises:
        FileOperationError: The file could not be written.
    """
    target = atomic_write_text(validate_path(path), render_lockfile(resolution, now=now))
    logger.info("Wrote lock file with %d package(s) to %s", len(resolution.pins), target)
    return target


def read_lockfile(path: Union[str, Path]) -> LockFile:
    """Load a lock file written by :func:`write_lockfile`.

    Raises:
        FileOperationError: The file is missing, unreadable, malformed, or
            has an unsupported format version.
    """
    text = safe_read_file(path)
    try:
        data = json.loads(text)
        if data.get("version") != LOCKFILE_VERSION:
            raise ValueError(f"unsupported lock file version {data.get('version')!r}")

        packages = {
            name: LockedPackage(
                item=InstallItem(
                    name=name,
                    version=str(entry["version"]),
                    url=entry.get("url"),
                    sha256=entry.get("sha256"),
                    filename=entry.get("filename"),
                ),
                required_by=tuple(entry.get("required_by") or ()),
            )
            for name, entry in data["packages"].items()
        }
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise FileOperationError(
            f"Invalid lock file: {exc}",
            file_path=str(path),
            operation="read",
            original_error=exc,
        ) from exc

    return LockFile(
        packages=packages,
        roots=tuple(data.get("roots") or ()),
        python_version=data.get("python_version"),
        generated_at=data.get("generated_at"),
        version=data["version"],
    )
