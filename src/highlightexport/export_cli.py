"""CLI for exporting clips from a request manifest.

Usage:
    # Export to a directory
    highlightexport export --request playlist.yaml --output-dir exports/

    # Prompt for the directory on the terminal
    highlightexport export --request playlist.yaml

    # Print the ffmpeg commands without running them
    highlightexport export --request playlist.yaml --output-dir exports/ --dry-run

    # Show which ffmpeg and caption fonts would be used
    highlightexport check
"""

import argparse
import asyncio
import logging
import shlex
import sys

from .common import default_font_resolver
from .config import get_settings
from .errors import ExportError
from .export import export_clips
from .process import list_filters
from .request import load_request


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(
        logging, get_settings().log_level.upper(), logging.INFO,
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _prompt_directory() -> str | None:
    try:
        answer = input("Output directory (empty to cancel): ").strip()
    except EOFError:
        return None
    return answer or None


def _dry_runner(executable: str):
    async def _run(args: list[str]) -> None:
        print(f"  FFMPEG {shlex.join([executable, *args])}")

    return _run


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Export highlight clips described by a request manifest.",
    )
    parser.add_argument(
        "--request", required=True,
        help="Path to the request manifest (.yaml, .yml or .json)",
    )
    parser.add_argument(
        "--output-dir", default=None,
        help="Output directory (overrides outputDir in the manifest)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print ffmpeg commands instead of running them",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log ffmpeg diagnostics",
    )
    parsed = parser.parse_args(args)

    _configure_logging(parsed.verbose)

    try:
        request = load_request(parsed.request)
    except (ExportError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if parsed.output_dir:
        request = request.model_copy(update={"output_dir": parsed.output_dir})

    settings = get_settings()
    runner = _dry_runner(settings.resolve_ffmpeg()) if parsed.dry_run else None

    print(f"Exporting {len(request.clips)} clips ({request.export_mode})")
    result = asyncio.run(export_clips(
        request,
        prompt_output_dir=_prompt_directory,
        runner=runner,
        settings=settings,
        on_progress=lambda message: print(f"  {message}"),
    ))

    if not result.success:
        print(f"Export failed: {result.error}", file=sys.stderr)
        sys.exit(1)
    print("Done.")


def check_main(args=None):
    parser = argparse.ArgumentParser(
        description="Show the ffmpeg executable and caption fonts exports would use.",
    )
    parser.parse_args(args)

    settings = get_settings()
    executable = settings.resolve_ffmpeg()
    print(f"ffmpeg:       {executable}")
    has_drawtext = "drawtext" in asyncio.run(list_filters(executable))
    print(f"drawtext:     {'yes' if has_drawtext else 'no (captions are skipped)'}")
    print(f"temp dir:     {settings.resolve_temp_dir()}")
    fonts = default_font_resolver()
    print(f"bold font:    {fonts.resolve(bold=True) or '(ffmpeg default)'}")
    print(f"regular font: {fonts.resolve(bold=False) or '(ffmpeg default)'}")


if __name__ == "__main__":
    main()
