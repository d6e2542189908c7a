"""Shared fixtures for the depresolve test suite.

Provides an in-memory package index so the fetcher and resolver can be
exercised end to end without network access.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Generator, Iterable, List, Mapping, Optional

import pytest

from depresolve.exceptions import NetworkError
from depresolve.models.release import ReleaseMetadata, parse_dependencies
from depresolve.models.requirement import normalize_name
from depresolve.models.version import parse_version
from depresolve.utils.console import reconfigure_console

#: ``{name: {version: dependencies}}``; ``None`` dependencies mean the
#: listing omits them and they must be fetched per release.
IndexLayout = Mapping[str, Mapping[str, Optional[Iterable[str]]]]


def make_release(
    name: str,
    version: str,
    dependencies: Optional[Iterable[str]] = (),
    *,
    requires_python: Optional[str] = None,
    yanked: bool = False,
) -> ReleaseMetadata:
    """Build a release the way the index parser would."""
    normalized = normalize_name(name).replace("-", "_")
    return ReleaseMetadata(
        name=name,
        version=parse_version(version),
        dependencies=None if dependencies is None else parse_dependencies(list(dependencies)),
        requires_python=requires_python,
        url=f"https://files.example.org/{normalized}-{version}-py3-none-any.whl",
        sha256=f"{normalized}-{version}-digest",
        filename=f"{normalized}-{version}-py3-none-any.whl",
        yanked=yanked,
    )


class FakeIndex:
    """In-memory stand-in for :class:`depresolve.core.index.PyPIIndex`.

    Args:
        packages: Listing per package name.
        release_documents: Full per-release documents keyed ``name==version``.
        delay: Seconds each request takes.
    """

    def __init__(
        self,
        packages: Dict[str, List[ReleaseMetadata]],
        *,
        release_documents: Optional[Dict[str, ReleaseMetadata]] = None,
        delay: float = 0.0,
    ) -> None:
        self.packages = packages
        self.release_documents = release_documents or {}
        self.delay = delay
        self.package_calls: List[str] = []
        self.release_calls: List[str] = []
        self.active = 0
        self.peak_active = 0

    async def _request(self) -> None:
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1

    async def fetch_package(self, name: str) -> List[ReleaseMetadata]:
        self.package_calls.append(name)
        await self._request()
        if name not in self.packages:
            raise NetworkError(f"Resource not found: {name}", status_code=404)
        return list(self.packages[name])

    async def fetch_release(self, name: str, version: str) -> ReleaseMetadata:
        key = f"{name}=={version}"
        self.release_calls.append(key)
        await self._request()
        if key not in self.release_documents:
            raise NetworkError(f"Resource not found: {key}", status_code=404)
        return self.release_documents[key]


def build_index(layout: IndexLayout, **kwargs: object) -> FakeIndex:
    """Create a :class:`FakeIndex` from a ``{name: {version: deps}}`` layout.

    Releases listed without dependencies get a per-release document with
    an empty dependency list unless one is supplied.
    """
    packages: Dict[str, List[ReleaseMetadata]] = {}
    documents: Dict[str, ReleaseMetadata] = dict(kwargs.pop("release_documents", None) or {})  # type: ignore[arg-type]
    for name, versions in layout.items():
        key = normalize_name(name)
        packages[key] = [make_release(key, v, deps) for v, deps in versions.items()]
        for release in packages[key]:
            documents.setdefault(release.pin, release.with_dependencies(()))
    return FakeIndex(packages, release_documents=documents, **kwargs)  # type: ignore[arg-type]


@pytest.fixture
def release_factory() -> Callable[..., ReleaseMetadata]:
    """Return :func:`make_release`."""
    return make_release


@pytest.fixture
def index_factory() -> Callable[..., FakeIndex]:
    """Return :func:`build_index`."""
    return build_index


@pytest.fixture(autouse=True)
def reset_depresolve_logging() -> Generator[None, None, None]:
    """Keep logger configuration from leaking between tests."""
    yield
    root_logger = logging.getLogger("depresolve")
    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    root_logger.propagate = True
    reconfigure_console()
