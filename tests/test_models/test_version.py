"""Unit tests for depresolve.models.version.

Test Coverage:
- PEP 440 parsing and lenient parsing of non-conforming strings
- Total ordering, including pre/post/dev releases and epochs
- Each comparison operator, wildcards and compatible release
- Exclusive bounds and their pre-/post-release rules
- Constraint list parsing
"""

from __future__ import annotations

import itertools

import pytest

from depresolve.exceptions import InvalidRequirement, InvalidVersion
from depresolve.models.version import (
    Constraint,
    Version,
    compare,
    parse_constraints,
    parse_version,
    satisfies,
    satisfies_all,
)

V = parse_version

#: Strictly increasing versions.
ORDERED = [
    "1.0.dev0",
    "1.0a1",
    "1.0a2.dev1",
    "1.0a2",
    "1.0b1",
    "1.0rc1",
    "1.0",
    "1.0.post1.dev0",
    "1.0.post1",
    "1.0.1",
    "1.1",
    "2.0",
    "1!0.1",
]


# ============================================================================
# Parsing
# ============================================================================


@pytest.mark.unit
class TestParseVersion:
    """Tests for parse_version."""

    def test_pep440_fields(self) -> None:
        version = V("1!2.3.4rc5.post6.dev7+local.1")

        assert version.epoch == 1
        assert version.release == (2, 3, 4)
        assert version.pre == ("rc", 5)
        assert version.post == 6
        assert version.dev == 7
        assert version.local == "local.1"
        assert version.text == "1!2.3.4rc5.post6.dev7+local.1"

    def test_normalized_spellings(self) -> None:
        assert V("1.0-alpha.2").pre == ("a", 2)
        assert V("1.0.preview1").pre == ("rc", 1)
        assert V("1.0-r3").post == 3

    def test_lenient_parsing(self) -> None:
        version = V("1.0-beta-final-2")

        assert version.release == (1, 0)
        assert version.pre == ("b", 0)
        assert version.text == "1.0-beta-final-2"

    def test_lenient_leading_v_and_garbage(self) -> None:
        assert V("v2.5-custom").release == (2, 5)
        assert V("nightly").release == ()

    def test_version_passthrough(self) -> None:
        version = V("1.0")
        assert parse_version(version) is version

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_rejected(self, text) -> None:
        with pytest.raises(InvalidVersion):
            parse_version(text)

    def test_str_round_trip(self) -> None:
        for text in ORDERED:
            assert V(str(V(text))) == V(text)


# ============================================================================
# Ordering
# ============================================================================


@pytest.mark.unit
class TestOrdering:
    """Tests for the total order on versions."""

    def test_strictly_increasing(self) -> None:
        for lower, higher in zip(ORDERED, ORDERED[1:]):
            assert V(lower) < V(higher), (lower, higher)

    def test_sort_is_stable_under_shuffle(self) -> None:
        expected = [V(t) for t in ORDERED]
        for permutation in itertools.islice(itertools.permutations(ORDERED), 50):
            assert sorted(V(t) for t in permutation) == expected

    def test_trailing_zeros_equal(self) -> None:
        assert V("1.0") == V("1.0.0") == V("1")
        assert hash(V("1.0")) == hash(V("1.0.0"))

    def test_local_label_ignored(self) -> None:
        assert V("1.0+abc") == V("1.0")

    def test_compare(self) -> None:
        assert compare(V("1.0"), V("2.0")) == -1
        assert compare(V("2.0"), V("1.0")) == 1
        assert compare(V("1.0"), V("1.0.0")) == 0

    def test_antisymmetry_and_transitivity(self) -> None:
        versions = [V(t) for t in ORDERED]
        for a, b in itertools.product(versions, repeat=2):
            assert compare(a, b) == -compare(b, a)
        for a, b, c in itertools.combinations(versions, 3):
            assert compare(a, c) == -1


# ============================================================================
# Constraints
# ============================================================================


@pytest.mark.unit
class TestConstraint:
    """Tests for Constraint evaluation."""

    @pytest.mark.parametrize(
        "constraint, version, expected",
        [
            ("==1.0", "1.0.0", True),
            ("==1.0", "1.0.1", False),
            ("!=1.0", "1.0.1", True),
            ("<=1.0", "1.0", True),
            (">=1.0", "0.9", False),
            ("==1.2.*", "1.2.9", True),
            ("==1.2.*", "1.3", False),
            ("!=1.2.*", "1.3", True),
            ("===1.0", "1.0", True),
            ("===1.0", "1.0.0", False),
        ],
    )
    def test_operators(self, constraint: str, version: str, expected: bool) -> None:
        assert satisfies(V(version), Constraint.parse(constraint)) is expected

    @pytest.mark.parametrize("bound", ORDERED)
    def test_greater_equal_is_monotonic(self, bound: str) -> None:
        """Test anything newer than a version admitted by >= is admitted too."""
        constraint = Constraint.parse(f">={bound}")
        versions = [V(t) for t in ORDERED]
        for lower, higher in itertools.combinations(versions, 2):
            if satisfies(lower, constraint):
                assert satisfies(higher, constraint)
        assert satisfies(V(bound), constraint)

    @pytest.mark.parametrize(
        "version, expected",
        [
            ("1.4.2", True),
            ("1.4.9", True),
            ("1.5", False),
            ("1.4.1", False),
            ("2.0", False),
        ],
    )
    def test_compatible_release(self, version: str, expected: bool) -> None:
        assert satisfies(V(version), Constraint.parse("~=1.4.2")) is expected

    def test_compatible_release_desugars(self) -> None:
        parts = Constraint.parse("~=2.2").desugar()

        assert [str(p) for p in parts] == [">=2.2", "<3"]

    def test_compatible_release_needs_two_segments(self) -> None:
        with pytest.raises(InvalidRequirement):
            Constraint.parse("~=1")

    def test_less_than_excludes_own_prereleases(self) -> None:
        bound = Constraint.parse("<2.0")

        assert not satisfies(V("2.0a1"), bound)
        assert satisfies(V("1.9"), bound)
        assert satisfies(V("1.9rc1"), bound)

    def test_less_than_prerelease_bound(self) -> None:
        assert satisfies(V("2.0a1"), Constraint.parse("<2.0b1"))

    def test_greater_than_excludes_own_postreleases(self) -> None:
        bound = Constraint.parse(">1.0")

        assert not satisfies(V("1.0.post1"), bound)
        assert satisfies(V("1.0.1"), bound)

    def test_wildcard_only_with_equality(self) -> None:
        with pytest.raises(InvalidRequirement):
            Constraint.parse(">=1.*")

    @pytest.mark.parametrize("text", ["1.0", "==", "~= ", ""])
    def test_malformed(self, text: str) -> None:
        with pytest.raises(InvalidRequirement):
            Constraint.parse(text)

    def test_unknown_operator(self) -> None:
        with pytest.raises(InvalidRequirement):
            Constraint("=>", V("1.0"))

    def test_str_keeps_original_text(self) -> None:
        assert str(Constraint.parse(">= 1.0-beta")) == ">=1.0-beta"


@pytest.mark.unit
class TestParseConstraints:
    """Tests for parse_constraints and satisfies_all."""

    @pytest.mark.parametrize("text", [None, "", "  ", "*"])
    def test_any_version(self, text) -> None:
        assert parse_constraints(text) == ()

    def test_conjunction(self) -> None:
        constraints = parse_constraints(">=1.0, <2.0, !=1.5")

        assert len(constraints) == 3
        assert satisfies_all(V("1.4"), constraints)
        assert not satisfies_all(V("1.5"), constraints)
        assert not satisfies_all(V("2.0"), constraints)

    def test_empty_conjunction_admits_everything(self) -> None:
        assert satisfies_all(V("0.0.1a1"), ())

    def test_bad_entry(self) -> None:
        with pytest.raises(InvalidRequirement):
            parse_constraints(">=1.0,,<2")

    def test_version_objects_are_hashable(self) -> None:
        assert len({V("1.0"), V("1.0.0"), Version(release=(1,))}) == 1
