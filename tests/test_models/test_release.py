"""Unit tests for depresolve.models.release."""

from __future__ import annotations

import pytest

from depresolve.models.release import ReleaseMetadata, parse_dependencies, sort_releases
from depresolve.models.requirement import parse_requirement
from depresolve.models.version import parse_version


@pytest.mark.unit
class TestReleaseMetadata:
    """Tests for ReleaseMetadata."""

    def test_name_normalized(self) -> None:
        release = ReleaseMetadata(name="Flask_Login", version=parse_version("0.6.3"))

        assert release.name == "flask-login"
        assert release.pin == "flask-login==0.6.3"

    def test_pin_keeps_original_version_text(self) -> None:
        release = ReleaseMetadata(name="pkg", version=parse_version("1.0-final"))

        assert release.pin == "pkg==1.0-final"

    @pytest.mark.parametrize(
        "requires_python, python_version, expected",
        [
            (">=3.8", "3.11.4", True),
            (">=3.12", "3.11.4", False),
            ("<3", "3.11", False),
            (None, "3.11", True),
            (">=3.8", None, True),
            ("not a specifier", "3.11", True),
        ],
    )
    def test_python_compatibility(
        self, requires_python, python_version, expected: bool
    ) -> None:
        release = ReleaseMetadata(
            name="pkg",
            version=parse_version("1.0"),
            requires_python=requires_python,
        )

        assert release.is_python_compatible(python_version) is expected

    def test_with_dependencies_returns_copy(self, release_factory) -> None:
        release = release_factory("pkg", "1.0", None)

        enriched = release.with_dependencies([parse_requirement("click")])

        assert release.dependencies is None
        assert [dep.name for dep in enriched.dependencies] == ["click"]
        assert enriched.version == release.version

    def test_json_round_trip(self, release_factory) -> None:
        release = release_factory(
            "flask", "3.0.0", ["click>=8.1", "asgiref>=3.2; extra == 'async'"],
            requires_python=">=3.8",
        )

        assert ReleaseMetadata.from_json(release.to_json()) == release

    def test_json_keeps_unknown_dependencies(self, release_factory) -> None:
        release = release_factory("flask", "2.0.0", None)

        assert release.to_json()["dependencies"] is None
        assert ReleaseMetadata.from_json(release.to_json()).dependencies is None

    def test_from_json_requires_version(self) -> None:
        with pytest.raises(KeyError):
            ReleaseMetadata.from_json({"name": "pkg"})


@pytest.mark.unit
class TestParseDependencies:
    """Tests for parse_dependencies."""

    def test_bad_entries_skipped(self) -> None:
        deps = parse_dependencies(["click>=8", "!!broken!!", "itsdangerous"])

        assert [dep.name for dep in deps] == ["click", "itsdangerous"]

    def test_string_rejected(self) -> None:
        with pytest.raises(TypeError):
            parse_dependencies("click>=8")


@pytest.mark.unit
class TestSortReleases:
    """Tests for sort_releases."""

    def test_newest_first(self, release_factory) -> None:
        releases = [release_factory("pkg", v) for v in ("1.0", "2.0rc1", "1.10", "1.2")]

        assert [r.version.text for r in sort_releases(releases)] == [
            "2.0rc1",
            "1.10",
            "1.2",
            "1.0",
        ]

    def test_equal_versions_ordered_by_source(self) -> None:
        a = ReleaseMetadata(name="pkg", version=parse_version("1.0"), filename="a.whl")
        b = ReleaseMetadata(name="pkg", version=parse_version("1.0.0"), filename="b.whl")

        assert sort_releases([a, b]) == [b, a]
        assert sort_releases([b, a]) == [b, a]
