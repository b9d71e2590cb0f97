"""Subcommand dispatcher for highlightexport.

Usage:
    highlightexport export --request request.yaml --output-dir clips/
    highlightexport check
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="highlightexport",
        description="Export tagged match segments as highlight clips.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("export", help="Export clips described by a request file")
    subparsers.add_parser("check", help="Show the ffmpeg and fonts exports would use")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "export":
        from .export_cli import main as export_main
        export_main(remaining)
    elif parsed.command == "check":
        from .export_cli import check_main
        check_main(remaining)


if __name__ == "__main__":
    main()
