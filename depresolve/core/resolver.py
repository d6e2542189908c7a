"""Backtracking dependency resolver for depresolve.

The resolver turns root requirements into one selected release per
package. It works in rounds; each round:

1. fetches release listings for every newly referenced package, consuming
   the fetcher's stream in completion order;
2. settles "dirty" packages (those whose requirement set changed) in
   sorted-name order, keeping the current selection when it still
   satisfies every requirement and otherwise selecting the highest
   admissible candidate;
3. fetches per-release documents for new selections whose dependency list
   the listing did not include;
4. expands new selections in sorted-name order, turning their declared
   dependencies into requirement edges.

Packages reference each other only by name. Every decision depends on
sorted names and candidate order, never on fetch arrival order, so
repeated runs against the same metadata produce identical output.

When no candidate satisfies a package's requirements, the most recently
selected package that contributed one of them is moved to its next
candidate (its current version is rejected for the rest of the run).
If none of those can move, their own requirers are tried, walking up
towards the roots.
When nothing can move the run fails with a :class:`ResolutionConflict`,
or a :class:`CycleEscalation` when a dependency cycle forced the
unsatisfiable requirement.

Typical usage::

    resolver = Resolver(fetcher, python_version="3.11")
    resolution = await resolver.resolve(["flask>=3", "requests"])
    print(resolution.pins)
"""

from __future__ import annotations

import asyncio
import platform
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    AsyncGenerator,
    DefaultDict,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Tuple,
    Union,
)

from packaging.markers import default_environment

from depresolve.constants import DEFAULT_ALLOW_PRERELEASES, DEFAULT_MAX_BACKTRACKS
from depresolve.core.cache import cache_key
from depresolve.core.fetcher import Fetcher, FetchResult
from depresolve.exceptions import (
    CycleEscalation,
    FetchError,
    ResolutionCancelled,
    ResolutionConflict,
)
from depresolve.models.conflict import Conflict, ConflictCause
from depresolve.models.release import ReleaseMetadata, sort_releases
from depresolve.models.requirement import Requirement, parse_requirement
from depresolve.models.resolution import PackageState, Resolution, ResolutionNode
from depresolve.models.version import Version
from depresolve.utils.logger import get_logger

logger = get_logger("resolver")

__all__ = ["Resolver", "build_environment"]


def build_environment(
    python_version: Optional[str] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Return the marker environment used to filter dependencies.

    Starts from the running interpreter's environment and retargets the
    Python version variables when *python_version* is given.
    """
    env: Dict[str, str] = dict(default_environment())
    if python_version:
        env["python_version"] = ".".join(python_version.split(".")[:2])
        env["python_full_version"] = python_version
    if overrides:
        env.update(overrides)
    return env


# ---------------------------------------------------------------------------
# Per-run state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Edge:
    """One requirement placed on a package, and who placed it."""

    requirement: Requirement
    parent: Optional[str] = None
    parent_version: Optional[Version] = None
    cyclic: bool = False

    @property
    def parent_pin(self) -> Optional[str]:
        if self.parent is None or self.parent_version is None:
            return None
        return f"{self.parent}=={self.parent_version.text or self.parent_version}"


class _ResolutionRun:
    """Mutable state of a single :meth:`Resolver.resolve` call."""

    def __init__(self) -> None:
        self.edges: DefaultDict[str, List[_Edge]] = defaultdict(list)
        self.candidates: Dict[str, List[ReleaseMetadata]] = {}
        self.nodes: Dict[str, ResolutionNode] = {}
        self.states: Dict[str, PackageState] = {}
        self.rejected: DefaultDict[str, Set[Version]] = defaultdict(set)
        self.reselections: DefaultDict[str, int] = defaultdict(int)
        self.failures: Dict[str, FetchError] = {}
        self.dirty: Set[str] = set()
        self.unexpanded: Set[str] = set()
        self.sequence = 0
        self.rounds = 0
        self.backtracks = 0

    def state(self, name: str) -> PackageState:
        return self.states.get(name, PackageState.UNSEEN)

    def add_edge(self, name: str, edge: _Edge) -> None:
        self.edges[name].append(edge)
        self.dirty.add(name)

    def retract_children(self, parent: str) -> None:
        """Remove every edge placed by *parent* and mark the targets dirty."""
        for name, edges in self.edges.items():
            kept = [edge for edge in edges if edge.parent != parent]
            if len(kept) != len(edges):
                self.edges[name] = kept
                self.dirty.add(name)

    def pending_names(self) -> List[str]:
        return sorted(
            name
            for name, edges in self.edges.items()
            if edges and self.state(name) is PackageState.UNSEEN
        )

    def path(self, name: str) -> Set[str]:
        """Names on the selection path from a root down to *name*.

        Follows the first requirer of each package; the walk stops at a
        root requirement or at a name already on the path.
        """
        seen: Set[str] = set()
        current: Optional[str] = name
        while current is not None and current not in seen:
            seen.add(current)
            edges = self.edges.get(current)
            current = edges[0].parent if edges else None
        return seen

    def chain(self, name: Optional[str]) -> Tuple[str, ...]:
        """Selected pins from a root down to *name*."""
        pins: List[str] = []
        seen: Set[str] = set()
        current = name
        while current is not None and current not in seen:
            seen.add(current)
            node = self.nodes.get(current)
            pins.append(node.pin if node is not None else current)
            edges = self.edges.get(current)
            current = edges[0].parent if edges else None
        return tuple(reversed(pins))


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class Resolver:
    """Resolve root requirements against metadata served by a fetcher.

    Args:
        fetcher: Any object satisfying the :class:`Fetcher` contract.
        allow_prereleases: Consider pre-releases even when a final release
            is admissible.
        python_version: Target interpreter version for ``Requires-Python``
            and environment markers. Defaults to the running interpreter.
        environment: Extra marker variables overriding the defaults.
        max_backtracks: How many times a single package may be re-selected
            before the run gives up on it.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        allow_prereleases: bool = DEFAULT_ALLOW_PRERELEASES,
        python_version: Optional[str] = None,
        environment: Optional[Mapping[str, str]] = None,
        max_backtracks: int = DEFAULT_MAX_BACKTRACKS,
    ) -> None:
        self.fetcher = fetcher
        self.allow_prereleases = allow_prereleases
        self.python_version = python_version or platform.python_version()
        self.environment = build_environment(self.python_version, environment)
        self.max_backtracks = max_backtracks

    async def resolve(
        self,
        roots: Iterable[Union[str, Requirement]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Resolution:
        """Resolve *roots* into a complete, installable :class:`Resolution`.

        Raises:
            InvalidRequirement: A root requirement string is malformed.
            ResolutionConflict: Some package has no admissible version.
            CycleEscalation: A dependency cycle forced an unsatisfiable
                requirement.
            FetchError: Metadata for a required package was unavailable.
            ResolutionCancelled: *cancel_event* was set.
        """
        root_requirements = tuple(
            parse_requirement(root) if isinstance(root, str) else root
            for root in roots
        )
        run = _ResolutionRun()

        for requirement in root_requirements:
            if requirement.applies_to(self.environment):
                run.add_edge(requirement.name, _Edge(requirement))
            else:
                logger.info("Skipping %s: marker does not match", requirement)

        logger.info("Resolving %d root requirement(s)", len(root_requirements))

        while True:
            self._check_cancelled(cancel_event)

            pending = run.pending_names()
            settleable = any(name in run.candidates for name in run.dirty)
            if not pending and not settleable and not run.unexpanded:
                break

            run.rounds += 1
            logger.debug(
                "Round %d: %d to fetch, %d dirty, %d to expand",
                run.rounds,
                len(pending),
                len(run.dirty),
                len(run.unexpanded),
            )

            if pending:
                await self._fetch_listings(run, pending, cancel_event)
            self._settle_dirty(run)
            await self._fetch_missing_dependencies(run, cancel_event)
            self._expand_selections(run)

        self._raise_for_failures(run)
        return self._build_resolution(run, root_requirements)

    # ------------------------------------------------------------------
    # Fetch phases
    # ------------------------------------------------------------------

    async def _fetch_listings(
        self,
        run: _ResolutionRun,
        names: List[str],
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        for name in names:
            run.states[name] = PackageState.PENDING

        async for result in self._consume(self.fetcher.fetch_all(names), cancel_event):
            name = result.name
            if result.error is not None:
                logger.warning("Metadata for %s unavailable: %s", name, result.error.message)
                run.failures[name] = result.error
                run.states[name] = PackageState.CONFLICTED
                continue
            run.candidates[name] = sort_releases(result.releases)
            run.states[name] = PackageState.CANDIDATES_KNOWN
            logger.debug("%s: %d candidate(s)", name, len(result.releases))

    async def _fetch_missing_dependencies(
        self,
        run: _ResolutionRun,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        pins = sorted(
            cache_key(run.nodes[name].pin)
            for name in run.unexpanded
            if run.nodes[name].release.dependencies is None
        )
        if not pins:
            return

        async for result in self._consume(self.fetcher.fetch_releases(pins), cancel_event):
            name = result.name.partition("==")[0]
            if result.error is not None or not result.releases:
                logger.warning("Dependencies of %s unavailable", result.name)
                run.failures[result.name] = result.error or FetchError(
                    f"Empty release document for {result.name}",
                    package_name=result.name,
                )
                continue
            full = result.releases[0]
            node = run.nodes.get(name)
            if node is not None and node.version != full.version:
                logger.warning(
                    "Release document for %s describes %s", result.name, full.version
                )
                run.failures[result.name] = FetchError(
                    f"Release document for {result.name} describes {full.version}",
                    package_name=result.name,
                )
                continue
            self._attach_dependencies(run, name, full)

    async def _consume(
        self,
        stream: AsyncGenerator[FetchResult, None],
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncGenerator[FetchResult, None]:
        try:
            async for result in stream:
                self._check_cancelled(cancel_event)
                yield result
        finally:
            await stream.aclose()

    @staticmethod
    def _attach_dependencies(
        run: _ResolutionRun,
        name: str,
        full: ReleaseMetadata,
    ) -> None:
        deps = full.dependencies or ()
        node = run.nodes.get(name)
        if node is not None and node.version == full.version:
            node.release = node.release.with_dependencies(deps)
        candidates = run.candidates.get(name, [])
        for index, release in enumerate(candidates):
            if release.version == full.version and release.dependencies is None:
                candidates[index] = release.with_dependencies(deps)

    # ------------------------------------------------------------------
    # Settling
    # ------------------------------------------------------------------

    def _settle_dirty(self, run: _ResolutionRun) -> None:
        deferred: Set[str] = set()
        while run.dirty:
            name = min(run.dirty)
            run.dirty.discard(name)
            if name in run.failures:
                continue
            if name not in run.candidates:
                deferred.add(name)
                continue
            self._settle(run, name)
        run.dirty |= deferred

    def _settle(self, run: _ResolutionRun, name: str) -> None:
        edges = run.edges.get(name) or []
        node = run.nodes.get(name)

        if not edges:
            if node is not None:
                logger.debug("Dropping %s: no longer required", node.pin)
                del run.nodes[name]
                run.retract_children(name)
                run.unexpanded.discard(name)
            run.states[name] = PackageState.CANDIDATES_KNOWN
            return

        requirements = tuple(edge.requirement for edge in edges)
        parents = tuple(dict.fromkeys(e.parent for e in edges if e.parent is not None))
        extras: FrozenSet[str] = frozenset().union(*(r.extras for r in requirements))

        if node is not None and self._still_valid(run, node, requirements):
            node.requirements = requirements
            node.parents = parents
            if not extras <= node.extras:
                node.extras = node.extras | extras
                run.unexpanded.add(name)
            run.states[name] = PackageState.SELECTED
            return

        candidate = self._best_candidate(run, name, requirements)
        if candidate is None:
            run.states[name] = PackageState.CONFLICTED
            self._backtrack_or_fail(run, name, edges)
            return

        if node is not None:
            run.reselections[name] += 1
            run.backtracks += 1
            if run.reselections[name] > self.max_backtracks:
                raise ResolutionConflict(
                    self._conflict_for(run, name, edges),
                    f"Backtracking limit ({self.max_backtracks}) exceeded for {name}",
                )
            logger.info("Re-selecting %s: %s -> %s", name, node.version, candidate.version)
            run.retract_children(name)

        run.sequence += 1
        run.nodes[name] = ResolutionNode(
            name=name,
            release=candidate,
            requirements=requirements,
            parents=parents,
            extras=extras,
            sequence=run.sequence,
        )
        run.states[name] = PackageState.SELECTED
        run.unexpanded.add(name)
        logger.debug("Selected %s", candidate.pin)

    @staticmethod
    def _still_valid(
        run: _ResolutionRun,
        node: ResolutionNode,
        requirements: Tuple[Requirement, ...],
    ) -> bool:
        if node.version in run.rejected[node.name]:
            return False
        return all(req.is_satisfied_by(node.version) for req in requirements)

    def _best_candidate(
        self,
        run: _ResolutionRun,
        name: str,
        requirements: Tuple[Requirement, ...],
        exclude: Optional[Version] = None,
    ) -> Optional[ReleaseMetadata]:
        """Return the highest admissible candidate for *name*, if any.

        Candidates are already ordered by (version, source) descending.
        """
        rejected = run.rejected[name]
        exact_pin = any(req.is_exact_pin for req in requirements)
        admissible = [
            release
            for release in run.candidates.get(name, [])
            if release.version not in rejected
            and release.version != exclude
            and (exact_pin or not release.yanked)
            and release.is_python_compatible(self.python_version)
            and all(req.is_satisfied_by(release.version) for req in requirements)
        ]
        if not admissible:
            return None

        allow_pre = self.allow_prereleases or any(
            req.names_prerelease for req in requirements
        )
        if not allow_pre:
            finals = [r for r in admissible if not r.version.is_prerelease]
            if finals:
                return finals[0]
        return admissible[0]

    # ------------------------------------------------------------------
    # Backtracking and conflicts
    # ------------------------------------------------------------------

    def _backtrack_or_fail(
        self,
        run: _ResolutionRun,
        name: str,
        edges: List[_Edge],
    ) -> None:
        for parent in self._backtrack_targets(run, edges):
            node = run.nodes[parent]
            if run.reselections[parent] >= self.max_backtracks:
                continue
            alternative = self._best_candidate(
                run,
                parent,
                node.requirements,
                exclude=node.version,
            )
            if alternative is None:
                continue

            logger.info(
                "No version of %s fits; backtracking %s away from %s",
                name,
                parent,
                node.version,
            )
            run.rejected[parent].add(node.version)
            run.dirty.add(parent)
            return

        conflict = self._conflict_for(run, name, edges)
        logger.info("Conflict: %s", conflict.to_short_string())
        if conflict.cycle:
            raise CycleEscalation(conflict)
        raise ResolutionConflict(conflict)

    @staticmethod
    def _backtrack_targets(run: _ResolutionRun, edges: List[_Edge]) -> List[str]:
        """Selected packages that could lift a conflict, nearest first.

        Direct requirers come first, most recently selected first. Their
        own requirers follow, one level further up at a time, so a
        conflict between siblings can move the package that pulled both
        of them in.
        """
        targets: List[str] = []
        seen: Set[str] = set()
        level = {edge.parent for edge in edges if edge.parent in run.nodes}
        while level:
            ordered = sorted(
                level,
                key=lambda parent: run.nodes[parent].sequence,
                reverse=True,
            )
            targets.extend(ordered)
            seen.update(ordered)
            level = {
                edge.parent
                for child in ordered
                for edge in run.edges.get(child, ())
                if edge.parent in run.nodes and edge.parent not in seen
            }
        return targets

    def _conflict_for(
        self,
        run: _ResolutionRun,
        name: str,
        edges: List[_Edge],
    ) -> Conflict:
        causes = tuple(
            ConflictCause(
                requirement=edge.requirement,
                parent=edge.parent_pin,
                chain=run.chain(edge.parent) if edge.parent else (),
            )
            for edge in edges
        )
        available = tuple(
            release.version.text or str(release.version)
            for release in run.candidates.get(name, [])
        )
        return Conflict(
            package=name,
            causes=causes,
            available=available,
            cycle=any(edge.cyclic for edge in edges),
        )

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def _expand_selections(self, run: _ResolutionRun) -> None:
        for name in sorted(run.unexpanded):
            node = run.nodes.get(name)
            if node is None or node.release.dependencies is None:
                # Dependency document failed; the failure is already recorded
                continue
            run.unexpanded.discard(name)
            run.retract_children(name)

            path = run.path(name)
            for requirement in node.release.dependencies:
                if not requirement.applies_to(self.environment, node.extras):
                    continue
                cyclic = requirement.name in path
                if cyclic:
                    logger.debug("Cycle: %s requires %s", node.pin, requirement)
                run.add_edge(
                    requirement.name,
                    _Edge(requirement, name, node.version, cyclic),
                )

        # Nodes whose dependency documents failed are not retried
        run.unexpanded = {
            name
            for name in run.unexpanded
            if name in run.nodes
            and cache_key(run.nodes[name].pin) not in run.failures
        }

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    @staticmethod
    def _check_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("Resolution cancelled")
            raise ResolutionCancelled("Resolution cancelled")

    @staticmethod
    def _raise_for_failures(run: _ResolutionRun) -> None:
        live: Dict[str, FetchError] = {}
        for key, error in run.failures.items():
            name, _, version = key.partition("==")
            if version:
                node = run.nodes.get(name)
                if node is not None and cache_key(node.pin) == key:
                    live[name] = error
            elif run.edges.get(name):
                live[name] = error

        if not live:
            return

        names = sorted(live)
        error = live[names[0]]
        if len(names) > 1:
            error.details["also_unavailable"] = ", ".join(names[1:])
        raise error

    def _build_resolution(
        self,
        run: _ResolutionRun,
        roots: Tuple[Requirement, ...],
    ) -> Resolution:
        nodes = {name: run.nodes[name] for name in sorted(run.nodes)}
        resolution = Resolution(
            pins={name: node.version for name, node in nodes.items()},
            nodes=nodes,
            roots=roots,
            rounds=run.rounds,
            backtracks=run.backtracks,
            python_version=self.python_version,
        )
        logger.info(
            "Resolved %d package(s) in %d round(s), %d backtrack(s)",
            len(nodes),
            run.rounds,
            run.backtracks,
        )
        return resolution
