"""
Version and constraint model for depresolve.

Versions are parsed strictly per PEP 440 when possible (via ``packaging``)
and leniently otherwise, because real index data contains plenty of
non-conforming release names. Every function here is pure: no I/O, no shared
state, safe to call from any task or thread.
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass, field
from functools import cached_property, total_ordering
from typing import Iterable, Optional, Tuple, Union

from packaging.version import InvalidVersion as _PackagingInvalidVersion
from packaging.version import Version as _PackagingVersion

from depresolve.exceptions import InvalidRequirement, InvalidVersion

__all__ = [
    "Version",
    "Constraint",
    "parse_version",
    "parse_constraints",
    "compare",
    "satisfies",
    "satisfies_all",
]

#: Spellings accepted for each pre-release phase.
_PRE_ALIASES = {
    "a": "a",
    "alpha": "a",
    "b": "b",
    "beta": "b",
    "c": "rc",
    "rc": "rc",
    "pre": "rc",
    "preview": "rc",
}
_POST_ALIASES = frozenset({"post", "rev", "r"})
_PHASE_RANK = {"a": 0, "b": 1, "rc": 2}

_LEADING_RELEASE = re.compile(r"^(\d+(?:[.\-_]\d+)*)")
_TOKENS = re.compile(r"[a-z]+|\d+")

_OPERATORS = ("===", "~=", "==", "!=", "<=", ">=", "<", ">")
_CONSTRAINT_RE = re.compile(r"^\s*(===|~=|==|!=|<=|>=|<|>)\s*(\S+?)\s*$")


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A parsed version with a total order matching PEP 440.

    Equality and ordering ignore the local segment (``+local``), and
    release segments are compared with missing components treated as zero,
    so ``1.0 == 1.0.0``.

    Attributes:
        epoch: Version epoch (``N!`` prefix).
        release: Numeric release components.
        pre: Pre-release phase and number, e.g. ``("rc", 1)``.
        post: Post-release number.
        dev: Development release number.
        local: Local version label.
        text: The text this version was parsed from.
    """

    epoch: int = 0
    release: Tuple[int, ...] = ()
    pre: Optional[Tuple[str, int]] = None
    post: Optional[int] = None
    dev: Optional[int] = None
    local: Optional[str] = None
    text: str = field(default="", repr=False)

    @cached_property
    def _key(self) -> Tuple[object, ...]:
        release = list(self.release)
        while release and release[-1] == 0:
            release.pop()

        # dev-only releases sort before any pre-release of the same release
        if self.pre is None and self.post is None and self.dev is not None:
            pre_key: Tuple[int, int] = (-1, 0)
        elif self.pre is None:
            pre_key = (len(_PHASE_RANK), 0)
        else:
            pre_key = (_PHASE_RANK[self.pre[0]], self.pre[1])

        post_key = -1 if self.post is None else self.post
        dev_key = sys.maxsize if self.dev is None else self.dev
        return (self.epoch, tuple(release), pre_key, post_key, dev_key)

    @property
    def is_prerelease(self) -> bool:
        return self.pre is not None or self.dev is not None

    @property
    def is_postrelease(self) -> bool:
        return self.post is not None

    def release_prefix(self, length: int) -> Tuple[int, ...]:
        """Return the first *length* release components, zero-padded."""
        padded = self.release + (0,) * max(0, length - len(self.release))
        return padded[:length]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        parts = []
        if self.epoch:
            parts.append(f"{self.epoch}!")
        parts.append(".".join(str(n) for n in self.release) or "0")
        if self.pre is not None:
            parts.append(f"{self.pre[0]}{self.pre[1]}")
        if self.post is not None:
            parts.append(f".post{self.post}")
        if self.dev is not None:
            parts.append(f".dev{self.dev}")
        if self.local:
            parts.append(f"+{self.local}")
        return "".join(parts)


def parse_version(text: Union[str, Version]) -> Version:
    """Parse *text* into a :class:`Version`.

    PEP 440 input is parsed exactly. Anything else that is not blank is
    parsed on a best-effort basis: the leading numeric run becomes the
    release, and recognisable pre/post/dev markers are picked up from the
    remainder.

    Raises:
        InvalidVersion: *text* is empty or whitespace only.

    Example::

        >>> parse_version("2.0.0rc1").pre
        ('rc', 1)
        >>> parse_version("1.0-beta.2")
        Version(epoch=0, release=(1, 0), pre=('b', 2), post=None, dev=None, local=None)
    """
    if isinstance(text, Version):
        return text
    if text is None or not str(text).strip():
        raise InvalidVersion("Version string is empty", text=text)

    stripped = str(text).strip()
    try:
        parsed = _PackagingVersion(stripped)
    except _PackagingInvalidVersion:
        return _parse_lenient(stripped)

    return Version(
        epoch=parsed.epoch,
        release=tuple(parsed.release),
        pre=parsed.pre,
        post=parsed.post,
        dev=parsed.dev,
        local=parsed.local,
        text=stripped,
    )


def _parse_lenient(text: str) -> Version:
    """Best-effort parse of a non-PEP 440 version string."""
    lowered = text.lower()
    if lowered.startswith("v"):
        lowered = lowered[1:]

    main, _, local = lowered.partition("+")

    match = _LEADING_RELEASE.match(main)
    if match:
        release = tuple(int(n) for n in re.split(r"[.\-_]", match.group(1)))
        rest = main[match.end():]
    else:
        release = ()
        rest = main

    pre: Optional[Tuple[str, int]] = None
    post: Optional[int] = None
    dev: Optional[int] = None

    tokens = _TOKENS.findall(rest)
    index = 0
    while index < len(tokens):
        token = tokens[index]
        following = tokens[index + 1] if index + 1 < len(tokens) else None
        number = int(following) if following is not None and following.isdigit() else None
        consumed = 2 if number is not None else 1

        if token in _PRE_ALIASES and pre is None:
            pre = (_PRE_ALIASES[token], number or 0)
        elif token in _POST_ALIASES and post is None:
            post = number or 0
        elif token == "dev" and dev is None:
            dev = number or 0
        else:
            consumed = 1
        index += consumed

    return Version(
        release=release,
        pre=pre,
        post=post,
        dev=dev,
        local=local or None,
        text=text,
    )


def compare(a: Version, b: Version) -> int:
    """Return -1, 0 or 1 as *a* sorts before, equal to, or after *b*."""
    if a < b:
        return -1
    if b < a:
        return 1
    return 0


@dataclass(frozen=True)
class Constraint:
    """A single ``operator`` + ``version`` bound.

    Attributes:
        operator: One of ``==``, ``!=``, ``<``, ``<=``, ``>``, ``>=``,
            ``~=`` or ``===``.
        version: The bound.
        wildcard: ``True`` for prefix matches such as ``==1.2.*``.
    """

    operator: str
    version: Version
    wildcard: bool = False

    def __post_init__(self) -> None:
        if self.operator not in _OPERATORS:
            raise InvalidRequirement(f"Unknown operator {self.operator!r}")
        if self.wildcard and self.operator not in ("==", "!="):
            raise InvalidRequirement(
                f"Wildcard not allowed with {self.operator!r}",
                requirement=str(self),
            )
        if self.operator == "~=" and len(self.version.release) < 2:
            raise InvalidRequirement(
                "Compatible release needs at least two release segments",
                requirement=str(self),
            )

    @classmethod
    def parse(cls, text: str) -> "Constraint":
        """Parse one constraint such as ``">=1.0"`` or ``"==2.*"``."""
        match = _CONSTRAINT_RE.match(text)
        if not match:
            raise InvalidRequirement(f"Invalid constraint {text!r}", requirement=text)
        return cls.build(match.group(1), match.group(2))

    @classmethod
    def build(cls, operator: str, version_text: str) -> "Constraint":
        """Create a constraint from an operator and raw version text."""
        wildcard = version_text.endswith(".*")
        if wildcard:
            version_text = version_text[:-2]
        try:
            version = parse_version(version_text)
        except InvalidVersion as exc:
            raise InvalidRequirement(
                f"Constraint {operator!r} has no version",
                requirement=operator,
            ) from exc
        return cls(operator, version, wildcard)

    def desugar(self) -> Tuple["Constraint", ...]:
        """Expand ``~=`` into its ``>=`` and ``<`` bounds.

        ``~=1.4.2`` becomes ``>=1.4.2, <1.5``. Other operators are returned
        unchanged.
        """
        if self.operator != "~=":
            return (self,)
        prefix = self.version.release[:-1]
        bound = Version(
            epoch=self.version.epoch,
            release=prefix[:-1] + (prefix[-1] + 1,),
        )
        upper = Version(bound.epoch, bound.release, text=str(bound))
        return (
            Constraint(">=", self.version),
            Constraint("<", upper),
        )

    def contains(self, candidate: Version) -> bool:
        """Return ``True`` if *candidate* satisfies this constraint."""
        op = self.operator

        if op == "~=":
            return all(part.contains(candidate) for part in self.desugar())
        if op == "===":
            return (candidate.text or str(candidate)).lower() == (
                self.version.text or str(self.version)
            ).lower()
        if op == "==":
            return self._matches(candidate)
        if op == "!=":
            return not self._matches(candidate)
        if op == "<=":
            return candidate <= self.version
        if op == ">=":
            return candidate >= self.version
        if op == "<":
            if not candidate < self.version:
                return False
            # <V never admits pre-releases of V itself unless V is one
            return not (
                candidate.is_prerelease
                and not self.version.is_prerelease
                and _same_release(candidate, self.version)
            )
        # op == ">"
        if not candidate > self.version:
            return False
        return not (
            candidate.is_postrelease
            and not self.version.is_postrelease
            and _same_release(candidate, self.version)
        )

    def _matches(self, candidate: Version) -> bool:
        if not self.wildcard:
            return candidate == self.version
        length = len(self.version.release)
        return (
            candidate.epoch == self.version.epoch
            and candidate.release_prefix(length) == self.version.release
        )

    def __str__(self) -> str:
        version = self.version.text or str(self.version)
        return f"{self.operator}{version}{'.*' if self.wildcard else ''}"


def _same_release(a: Version, b: Version) -> bool:
    length = max(len(a.release), len(b.release))
    return a.epoch == b.epoch and a.release_prefix(length) == b.release_prefix(length)


def parse_constraints(text: Optional[str]) -> Tuple[Constraint, ...]:
    """Parse a comma-separated constraint list.

    Empty text and ``"*"`` mean "any version" and yield an empty tuple.

    Raises:
        InvalidRequirement: One of the entries is malformed.
    """
    if text is None:
        return ()
    stripped = text.strip()
    if stripped in ("", "*"):
        return ()
    return tuple(Constraint.parse(part) for part in stripped.split(","))


def satisfies(version: Version, constraint: Constraint) -> bool:
    """Evaluate *constraint* against *version*."""
    return constraint.contains(version)


def satisfies_all(version: Version, constraints: Iterable[Constraint]) -> bool:
    """Return ``True`` if *version* satisfies every constraint."""
    return all(constraint.contains(version) for constraint in constraints)
