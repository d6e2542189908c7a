"""Resolve command implementation for depresolve.

Resolves root requirements against the package index and prints the
pinned versions, optionally writing a lock file for the installer.

The command wires the core components together for one run:

1. **HTTPClient** — one shared connection pool for the whole run.
2. **MetadataCache** — two-tier cache, persisted under the user cache dir.
3. **MetadataFetcher** — cache-first, bounded-concurrency index access.
4. **Resolver** — selects one version per package or reports a conflict.

Typical usage::

    $ depresolve resolve "flask>=3" requests
    $ depresolve resolve -r requirements.txt --lock depresolve.lock
    $ depresolve resolve --format json "httpx[http2]" > pins.json
"""

from __future__ import annotations

import signal
import asyncio
import click
from pathlib import Path
from typing import List, Optional, Tuple

from depresolve.config import ResolverConfig
from depresolve.constants import MAX_CONCURRENCY, MIN_CONCURRENCY
from depresolve.context import DepResolveContext, pass_context
from depresolve.core import (
    MetadataCache,
    MetadataFetcher,
    PyPIIndex,
    Resolver,
    write_lockfile,
)
from depresolve.models import Resolution
from depresolve.utils import (
    HTTPClient,
    get_logger,
    get_raw_console,
    print_json,
    print_success,
    print_table,
    safe_read_file,
)

logger = get_logger("commands.resolve")


@click.command()
@click.argument("requirements", nargs=-1)
@click.option(
    "--requirements",
    "-r",
    "requirement_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read root requirements from a requirements file (repeatable).",
)
@click.option(
    "--pre",
    is_flag=True,
    default=None,
    help="Allow pre-release versions.",
)
@click.option(
    "--refresh",
    is_flag=True,
    help="Ignore cached metadata and refetch from the index.",
)
@click.option(
    "--python-version",
    metavar="X.Y[.Z]",
    help="Target Python version (defaults to the running interpreter).",
)
@click.option(
    "--concurrency",
    type=click.IntRange(MIN_CONCURRENCY, MAX_CONCURRENCY),
    help="Maximum number of concurrent index requests.",
)
@click.option(
    "--index-url",
    help="Base URL of a PyPI-compatible JSON API.",
)
@click.option(
    "--lock",
    "lock_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the resolution to this lock file.",
)
@click.option(
    "--format",
    "-f",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@pass_context
def resolve(
    ctx: DepResolveContext,
    requirements: Tuple[str, ...],
    requirement_files: Tuple[Path, ...],
    pre: Optional[bool],
    refresh: bool,
    python_version: Optional[str],
    concurrency: Optional[int],
    index_url: Optional[str],
    lock_path: Optional[Path],
    format: str,
) -> None:
    """Resolve REQUIREMENTS to a consistent set of pinned versions.

    Each requirement uses PEP 508 syntax, e.g. ``"requests[socks]>=2.25"``.
    CLI flags override values from the configuration file.

    Exits 1 when no consistent set exists (the conflicting requirements
    and the chains that introduced them are printed), when metadata for a
    required package cannot be fetched, and 130 when interrupted.
    """
    roots = list(requirements)
    for path in requirement_files:
        roots.extend(read_requirements_file(path))
    if not roots:
        raise click.UsageError("No requirements given.")

    config = ctx.config.merged(
        allow_prereleases=pre,
        python_version=python_version,
        max_concurrency=concurrency,
        index_url=index_url,
    )

    resolution = asyncio.run(resolve_requirements(roots, config, refresh=refresh))

    if format == "json":
        print_json(resolution.to_json())
    else:
        _print_resolution(resolution)

    if lock_path is not None:
        written = write_lockfile(resolution, lock_path)
        if format != "json":
            print_success(f"Lock file written to {written}")


# ---------------------------------------------------------------------------
# Async orchestration
# ---------------------------------------------------------------------------


async def resolve_requirements(
    roots: List[str],
    config: ResolverConfig,
    *,
    refresh: bool = False,
) -> Resolution:
    """Run one resolution with production components built from *config*.

    SIGINT/SIGTERM set the resolver's cancellation event so in-flight
    fetches are abandoned cleanly.
    """
    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)

    cache = MetadataCache(config.cache_dir, ttl=config.cache_ttl)
    async with HTTPClient(timeout=config.request_timeout) as client:
        fetcher = MetadataFetcher(
            PyPIIndex(client, config.index_url),
            cache,
            max_concurrency=config.max_concurrency,
            request_timeout=config.request_timeout,
            max_retries=config.max_retries,
            refresh=refresh,
        )
        resolver = Resolver(
            fetcher,
            allow_prereleases=config.allow_prereleases,
            python_version=config.python_version,
            max_backtracks=config.max_backtracks,
        )
        try:
            resolution = await resolver.resolve(roots, cancel_event=cancel_event)
        finally:
            logger.debug(
                "Fetch stats: %d request(s), peak %d in flight; cache %s",
                fetcher.requests,
                fetcher.peak_in_flight,
                cache.stats().to_dict(),
            )
    return resolution


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, cancel_event.set)
        except (NotImplementedError, RuntimeError, ValueError):
            # Not supported on this platform or outside the main thread
            logger.debug("Cannot install handler for signal %s", signum)


def read_requirements_file(path: Path) -> List[str]:
    """Return the requirement lines of a requirements file.

    Comments, blank lines and pip options (``-r``, ``--index-url``, ...)
    are skipped; nested files are not followed.
    """
    lines: List[str] = []
    for raw in safe_read_file(path).splitlines():
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        lines.append(line)
    return lines


def _print_resolution(resolution: Resolution) -> None:
    rows = [
        {
            "Package": item.name,
            "Version": item.version,
            "Required by": ", ".join(resolution.nodes[item.name].parents) or "<root>",
            "File": item.filename or "-",
        }
        for item in resolution.install_plan()
    ]
    print_table(
        rows,
        title="Resolved packages",
        caption=(
            f"{len(rows)} package(s), {resolution.rounds} round(s), "
            f"{resolution.backtracks} backtrack(s)"
        ),
        column_styles={
            "Package": {"style": "bold", "no_wrap": True},
            "Version": {"style": "green", "no_wrap": True},
            "File": {"style": "dim"},
        },
    )
    if not rows:
        get_raw_console().print("Nothing to resolve.")
