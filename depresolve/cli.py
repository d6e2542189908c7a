"""
Command-line interface for depresolve.

This module provides the main CLI entry point and handles global options,
configuration loading, and command registration.
"""

from __future__ import annotations

import os
import sys
import logging
from pathlib import Path
from typing import Optional

import click

from depresolve.__version__ import VERSION_STRING, __version__
from depresolve.config import load_config
from depresolve.context import DepResolveContext
from depresolve.exceptions import (
    ConfigError,
    DepResolveError,
    ResolutionCancelled,
    ResolutionConflict,
)
from depresolve.utils.console import print_conflict, print_error, print_warning
from depresolve.utils.logger import get_logger, level_for_verbosity, setup_logging

logger = get_logger("cli")

#: Exit code for a cancelled run (mirrors SIGINT).
EXIT_CANCELLED = 130


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file.",
    envvar="DEPRESOLVE_CONFIG",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (can be repeated: -v, -vv).",
)
@click.option(
    "--color/--no-color",
    default=True,
    help="Enable or disable colored output.",
    envvar="DEPRESOLVE_COLOR",
)
@click.version_option(
    version=__version__,
    prog_name="depresolve",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path],
    verbose: int,
    color: bool,
) -> None:
    """depresolve — resolve Python requirements against a package index.

    \b
    Available commands:
      depresolve resolve REQ...    Resolve requirements to pinned versions
      depresolve cache stats       Show metadata cache statistics
      depresolve cache clear       Remove cached metadata

    \b
    Examples:
      depresolve resolve "flask>=3" requests
      depresolve resolve --lock depresolve.lock -r requirements.txt
      depresolve -v resolve --pre "httpx[http2]"

    Use ``depresolve COMMAND --help`` for command-specific options.
    """
    _configure_logging(verbose)

    try:
        loaded_config = load_config(config)
    except ConfigError as exc:
        print_error(str(exc))
        raise SystemExit(1) from exc

    resolve_ctx = DepResolveContext()
    resolve_ctx.config_path = config or loaded_config.source_path
    resolve_ctx.color = color
    resolve_ctx.verbose = verbose
    resolve_ctx.config = loaded_config
    ctx.obj = resolve_ctx

    # Respect NO_COLOR for downstream libraries
    if color:
        os.environ.pop("NO_COLOR", None)
    else:
        os.environ["NO_COLOR"] = "1"

    logger.debug("Running %s", VERSION_STRING)
    logger.debug("Config path: %s", resolve_ctx.config_path)
    logger.debug("Verbosity: %s | Color: %s", verbose, color)


def _configure_logging(verbose: int) -> None:
    """Configure logging level based on verbosity flags."""
    level = level_for_verbosity(verbose)
    setup_logging(level=level, verbose=verbose >= 2)
    logger.debug("Logging initialized at %s level", logging.getLevelName(level))


# Register CLI subcommands
from depresolve.commands.cache import cache  # noqa: E402
from depresolve.commands.resolve import resolve  # noqa: E402

cli.add_command(resolve)
cli.add_command(cache)


def main() -> int:
    """Main entry point for the depresolve CLI.

    Returns:
        Exit code:
            0   Success
            1   Conflict, unavailable metadata, or other application error
            2   Usage error (Click)
            130 Cancelled or interrupted by user (Ctrl+C)
    """
    try:
        cli(standalone_mode=False)
        return 0

    except click.exceptions.Abort:
        print_warning("Operation cancelled by user")
        return EXIT_CANCELLED

    except click.ClickException as exc:
        exc.show()
        return exc.exit_code

    except ResolutionCancelled:
        print_warning("Resolution cancelled")
        return EXIT_CANCELLED

    except ResolutionConflict as exc:
        print_conflict(exc.conflict)
        logger.debug("Conflict details: %s", exc.conflict.to_json())
        return 1

    except DepResolveError as exc:
        print_error(str(exc))
        logger.debug(
            "DepResolveError details: %s",
            exc.details or "<none>",
            exc_info=True,
        )
        return 1

    except KeyboardInterrupt:
        print_warning("\nOperation cancelled by user")
        return EXIT_CANCELLED

    except Exception as exc:
        print_error(f"Unexpected error: {exc}")
        logger.exception("Unhandled exception in CLI")
        return 1


if __name__ == "__main__":
    sys.exit(main())
