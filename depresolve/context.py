"""
Per-invocation state shared between the depresolve CLI group and its
subcommands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from depresolve.config import ResolverConfig


class DepResolveContext:
    """State the ``depresolve`` group hands to every subcommand.

    Attributes:
        config_path: Configuration file in effect, explicit or discovered.
        config: Settings loaded from that file; defaults until the group
            callback has run.
        verbose: Number of ``-v`` flags given.
        color: False when ``--no-color`` was passed.
    """

    __slots__ = ("config_path", "config", "verbose", "color")

    def __init__(self) -> None:
        self.config_path: Optional[Path] = None
        self.config = ResolverConfig()
        self.verbose = 0
        self.color = True


#: Injects the :class:`DepResolveContext`, creating one if the group did not.
pass_context = click.make_pass_decorator(DepResolveContext, ensure=True)
