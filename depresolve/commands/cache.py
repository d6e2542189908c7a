"""Cache command group for depresolve.

Inspects and clears the on-disk metadata cache::

    $ depresolve cache stats
    $ depresolve cache clear            # everything (asks first)
    $ depresolve cache clear flask -y   # one package and its releases
"""

from __future__ import annotations

import click
from typing import Tuple

from depresolve.context import DepResolveContext, pass_context
from depresolve.core import MetadataCache
from depresolve.utils import confirm, get_logger, print_success, print_table, print_warning

logger = get_logger("commands.cache")


@click.group()
def cache() -> None:
    """Inspect or clear the metadata cache."""


@cache.command()
@pass_context
def stats(ctx: DepResolveContext) -> None:
    """Show where the cache lives and how many entries it holds."""
    store = MetadataCache(ctx.config.cache_dir, ttl=ctx.config.cache_ttl)
    print_table(
        [
            {"Setting": "Location", "Value": str(store.root)},
            {"Setting": "Entries on disk", "Value": store.disk_entries()},
            {"Setting": "TTL (seconds)", "Value": int(store.ttl)},
        ],
        title="Metadata cache",
    )


@cache.command()
@click.argument("names", nargs=-1)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@pass_context
def clear(ctx: DepResolveContext, names: Tuple[str, ...], yes: bool) -> None:
    """Remove cached metadata for NAMES, or for every package."""
    store = MetadataCache(ctx.config.cache_dir, ttl=ctx.config.cache_ttl)

    if names:
        removed = [name for name in names if store.invalidate(name)]
        missing = sorted(set(names) - set(removed))
        if removed:
            print_success(f"Removed cached metadata for {', '.join(removed)}")
        if missing:
            print_warning(f"Not cached: {', '.join(missing)}")
        return

    if not yes and not confirm(f"Remove all cached metadata under {store.root}?"):
        print_warning("Nothing removed")
        return

    count = store.clear()
    print_success(f"Removed {count} cached document(s)")
