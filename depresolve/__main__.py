"""
Executable module for depresolve.

Running:
    python -m depresolve

is equivalent to:
    depresolve

The CLI is imported lazily so that a broken installation (for example a
missing ``httpx`` or ``rich``) produces a short diagnostic instead of a
traceback.
"""

from __future__ import annotations

import sys


def _print_startup_error(exc: ImportError) -> None:
    """Explain on stderr why the CLI could not be loaded."""
    lines = [
        "depresolve could not start: a required module failed to import.",
        f"Python version    : {sys.version.split()[0]}",
    ]
    try:
        from depresolve.__version__ import __version__

        lines.append(f"depresolve version: {__version__}")
    except ImportError:
        lines.append("depresolve version: <unknown>")
    lines.append("")
    lines.append(f"ImportError: {exc}")
    sys.stderr.write("\n".join(lines) + "\n")


def main() -> int:
    """Main entrypoint when executing ``python -m depresolve``.

    Returns:
        Exit code returned by the CLI, or 1 if it cannot be imported.
    """
    try:
        from depresolve.cli import main as cli_main
    except ImportError as exc:
        _print_startup_error(exc)
        return 1

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
