"""PyPI JSON API client for depresolve.

Maps the two PyPI JSON endpoints onto :class:`ReleaseMetadata`:

* ``{index}/{name}/json`` lists every release. PyPI only reports
  ``requires_dist`` for the latest release, so all other releases are built
  with ``dependencies=None``.
* ``{index}/{name}/{version}/json`` describes one release, including its
  dependency list.

Transport errors propagate unchanged as :class:`NetworkError` so the
fetcher can decide whether to retry.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from depresolve.constants import DEFAULT_INDEX_URL, PACKAGE_ENDPOINT, RELEASE_ENDPOINT
from depresolve.exceptions import InvalidVersion
from depresolve.models.release import ReleaseMetadata, parse_dependencies, sort_releases
from depresolve.models.requirement import normalize_name
from depresolve.models.version import Version, parse_version
from depresolve.utils.http import HTTPClient
from depresolve.utils.logger import get_logger

logger = get_logger("index")

__all__ = ["PyPIIndex", "parse_package_document", "parse_release_document"]


class PyPIIndex:
    """Read release metadata from a PyPI-compatible JSON index.

    Args:
        http_client: Shared :class:`HTTPClient` owning the connection pool.
        index_url: Base URL of the JSON API.
    """

    def __init__(self, http_client: HTTPClient, index_url: str = DEFAULT_INDEX_URL) -> None:
        self.http_client = http_client
        self.index_url = index_url.rstrip("/")

    def package_url(self, name: str) -> str:
        return PACKAGE_ENDPOINT.format(index=self.index_url, package=normalize_name(name))

    def release_url(self, name: str, version: str) -> str:
        return RELEASE_ENDPOINT.format(
            index=self.index_url,
            package=normalize_name(name),
            version=version,
        )

    async def fetch_package(self, name: str) -> List[ReleaseMetadata]:
        """Return every installable release of *name*, newest first."""
        data = await self.http_client.get_json(self.package_url(name))
        return parse_package_document(name, data)

    async def fetch_release(self, name: str, version: str) -> ReleaseMetadata:
        """Return the full metadata of one release, dependencies included."""
        data = await self.http_client.get_json(self.release_url(name, version))
        return parse_release_document(name, version, data)


# ---------------------------------------------------------------------------
# Document parsing
# ---------------------------------------------------------------------------


def parse_package_document(name: str, data: Dict[str, Any]) -> List[ReleaseMetadata]:
    """Transform a ``/{name}/json`` response into release metadata.

    Phantom versions with no uploaded files are skipped. A release whose
    files are all yanked is kept but flagged.
    """
    info = data.get("info") or {}
    releases = data.get("releases") or {}

    latest = info.get("version")
    latest_deps = parse_dependencies(info.get("requires_dist") or [])

    result: List[ReleaseMetadata] = []
    for version_text, files in releases.items():
        if not files:
            continue
        try:
            version = parse_version(version_text)
        except InvalidVersion:
            logger.debug("Skipping blank version in %s listing", name)
            continue

        is_latest = version_text == latest
        requires_python = _first_requires_python(files)
        if requires_python is None and is_latest:
            requires_python = info.get("requires_python")

        result.append(
            _build_release(
                name,
                version_text,
                files,
                dependencies=latest_deps if is_latest else None,
                requires_python=requires_python,
                version=version,
            )
        )

    return sort_releases(result)


def parse_release_document(
    name: str,
    version_text: str,
    data: Dict[str, Any],
) -> ReleaseMetadata:
    """Transform a ``/{name}/{version}/json`` response into one release."""
    info = data.get("info") or {}
    files = data.get("urls") or []
    return _build_release(
        name,
        info.get("version") or version_text,
        files,
        dependencies=parse_dependencies(info.get("requires_dist") or []),
        requires_python=info.get("requires_python") or _first_requires_python(files),
    )


def _build_release(
    name: str,
    version_text: str,
    files: Sequence[Dict[str, Any]],
    *,
    dependencies: Optional[Sequence[Any]],
    requires_python: Optional[str],
    version: Optional[Version] = None,
) -> ReleaseMetadata:
    chosen = _choose_file(files)
    return ReleaseMetadata(
        name=name,
        version=version if version is not None else parse_version(version_text),
        dependencies=None if dependencies is None else tuple(dependencies),
        requires_python=requires_python or None,
        url=chosen.get("url"),
        sha256=(chosen.get("digests") or {}).get("sha256"),
        filename=chosen.get("filename"),
        upload_time=chosen.get("upload_time_iso_8601") or chosen.get("upload_time"),
        yanked=bool(files) and all(f.get("yanked", False) for f in files),
    )


def _choose_file(files: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Pick the distribution file handed to the installer.

    Non-yanked files win over yanked ones, wheels over sdists, and ties go
    to the lexicographically smallest filename so the choice is stable.
    """
    if not files:
        return {}

    def rank(file_info: Dict[str, Any]) -> Any:
        return (
            bool(file_info.get("yanked", False)),
            file_info.get("packagetype") != "bdist_wheel",
            file_info.get("filename") or "",
        )

    return min(files, key=rank)


def _first_requires_python(files: Sequence[Dict[str, Any]]) -> Optional[str]:
    # Most releases are uniform; the first declaration is representative
    for file_info in files:
        if file_info.get("requires_python"):
            return str(file_info["requires_python"])
    return None
