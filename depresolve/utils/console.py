"""
Rich console helpers for the depresolve CLI.

Everything a user reads on stdout goes through the single console held
here: status lines, result tables, conflict trees and JSON documents.
Diagnostics belong to :mod:`depresolve.utils.logger` instead, which
writes to stderr.
"""

from __future__ import annotations

import os
import sys
import json
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from rich.tree import Tree
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme
from rich.console import Console

if TYPE_CHECKING:
    from depresolve.models.conflict import Conflict

DEPRESOLVE_THEME = Theme(
    {
        "success": "bold green",
        "error": "bold red",
        "warning": "bold yellow",
        "info": "bold cyan",
        "package": "bold",
        "requirement": "bold magenta",
        "chain": "dim",
    }
)

_YES = frozenset({"y", "yes"})
_NO = frozenset({"n", "no"})

_console: Optional[Console] = None
_console_lock = threading.Lock()


def _should_use_color() -> bool:
    """Return True when stdout is a terminal and nothing asks for plain text."""
    if os.environ.get("NO_COLOR") or os.environ.get("CI"):
        return False
    try:
        return sys.stdout.isatty()
    except (AttributeError, OSError):
        return False


def _get_console() -> Console:
    global _console

    if _console is None:
        with _console_lock:
            if _console is None:
                color = _should_use_color()
                _console = Console(theme=DEPRESOLVE_THEME, no_color=not color, highlight=color)
    return _console


def reconfigure_console() -> None:
    """Forget the current console so the next call re-reads the environment."""
    global _console
    with _console_lock:
        _console = None


def get_raw_console() -> Console:
    return _get_console()


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def _status(style: str, prefix: str, message: str) -> None:
    _get_console().print(f"{prefix} {message}", style=style)


def print_success(message: str, *, prefix: str = "[OK]") -> None:
    _status("success", prefix, message)


def print_error(message: str, *, prefix: str = "[ERROR]") -> None:
    _status("error", prefix, message)


def print_warning(message: str, *, prefix: str = "[WARNING]") -> None:
    _status("warning", prefix, message)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def print_table(
    rows: List[Dict[str, Any]],
    *,
    title: Optional[str] = None,
    caption: Optional[str] = None,
    column_styles: Optional[Mapping[str, Mapping[str, Any]]] = None,
) -> None:
    """Render *rows* as a table whose columns follow the first row's keys.

    ``column_styles`` maps a column name to keyword arguments for
    :meth:`rich.table.Table.add_column` (``style``, ``no_wrap``, ...).
    Nothing is printed for an empty row list.
    """
    if not rows:
        return

    table = Table(title=title, caption=caption, header_style="bold")
    styles = column_styles or {}
    columns = list(rows[0])
    for column in columns:
        table.add_column(column, overflow="fold", **styles.get(column, {}))
    for row in rows:
        table.add_row(*(str(row.get(column, "")) for column in columns))

    _get_console().print(table)


def print_conflict(conflict: "Conflict") -> None:
    """Render a resolution conflict as a tree of requirement chains.

    Requirement text is escaped so extras such as ``[socks]`` are not read
    as Rich markup.
    """
    package = f"[package]{escape(conflict.package)}[/package]"
    if conflict.cycle:
        tree = Tree(f"[error]Dependency cycle through[/error] {package}")
    else:
        tree = Tree(
            f"[error]No version of[/error] {package} [error]satisfies all requirements[/error]"
        )

    for cause in conflict.causes:
        branch = tree.add(
            f"{escape(cause.parent or '<root>')} requires "
            f"[requirement]{escape(str(cause.requirement))}[/requirement]"
        )
        if len(cause.chain) > 1:
            branch.add(f"[chain]via {escape(' -> '.join(cause.chain))}[/chain]")

    if conflict.available:
        tree.add(f"[chain]available: {escape(', '.join(conflict.available))}[/chain]")

    _get_console().print(tree)


def print_json(data: Any) -> None:
    """Write *data* as indented JSON, bypassing Rich markup."""
    _get_console().print_json(json.dumps(data, sort_keys=True))


def confirm(message: str, *, default: bool = False) -> bool:
    """Ask a yes/no question on the console.

    Empty or unrecognised answers give *default*; Ctrl+C and EOF give False.
    """
    console = _get_console()
    choices = escape("[Y/n]" if default else "[y/N]")
    console.print(f"{message} {choices}: ", end="", style="info")

    try:
        answer = input().strip().lower()
    except (KeyboardInterrupt, EOFError):
        console.print()
        return False

    if answer in _YES:
        return True
    if answer in _NO:
        return False
    return default
