"""CLI entry point.

Without arguments an interactive REPL starts; otherwise the arguments are
run as a single command, e.g. ``deltadrive upload report.pdf --replace <id>``.
"""

import os
import shlex
import sys
from typing import List, Optional

from common.logging_config import setup_logging
from cli.parser import ParseError
from cli.repl import ExitRequested, repl_loop, run_line


def run_once(argv: List[str]) -> int:
    """
    Run one command given as command-line arguments.

    Returns:
        Process exit status
    """
    try:
        output = run_line(shlex.join(argv))
    except ParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except ExitRequested:
        return 0
    if output:
        print(output)
    failed = bool(output) and (output.startswith("Error") or output.startswith("Upload failed"))
    return 1 if failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = list(sys.argv[1:] if argv is None else argv)
    debug = '--debug' in args
    if debug:
        args.remove('--debug')

    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)
    if debug:
        logger.info("Debug logging enabled")

    if args:
        logger.info(f"Running single command: {args[0]}")
        return run_once(args)

    logger.info("CLI starting...")
    try:
        repl_loop()
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")
    return 0


if __name__ == "__main__":
    sys.exit(main())
