"""Request entry point: one export request in, one ExportResult out.

    validating -> resolving output location -> rendering -> done

Every failure along the way, from a malformed payload to a crashing
ffmpeg, ends up as ``ExportResult(success=False, error=...)``. The temp
registry is swept before the result is returned on both branches, and
no exception escapes export_clips.
"""

import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable

from .assembly import AngleSelection, ClipAssembler
from .common import FontResolver, default_font_resolver
from .config import Settings, get_settings
from .errors import (
    DualSourceMissingError,
    ExportError,
    InvalidRequestError,
    UserCancelledError,
)
from .process import Runner, list_filters, make_audio_check, make_runner
from .request import ExportRequest, ExportResult, parse_request
from .tempfiles import TempRegistry

logger = logging.getLogger(__name__)

# Asks the UI for an output directory; None means the user cancelled.
DirectoryPrompt = Callable[[], "str | None | Awaitable[str | None]"]


def validate_request(request: ExportRequest) -> None:
    if not request.source_path:
        raise InvalidRequestError("No source video: sourcePath is required")
    if not request.clips:
        raise InvalidRequestError("No clips to export")


def resolve_angles(request: ExportRequest) -> AngleSelection:
    """Work out which source(s) to render from.

    angle1 renders the primary camera. angle2 renders the secondary
    camera, falling back to the primary when there is none. all stacks
    both cameras when a secondary exists, and only insists on one when
    the request explicitly asks for dual mode.
    """
    primary, secondary = request.source_path, request.source_path2

    if request.angle_option == "angle1":
        return AngleSelection(primary)
    if request.angle_option == "angle2":
        if secondary:
            return AngleSelection(secondary, use_secondary_annotation=True)
        logger.info("[EXPORT] angle2 requested without a second source; using the primary")
        return AngleSelection(primary)

    if secondary:
        return AngleSelection(primary, secondary)
    if request.mode == "dual":
        raise DualSourceMissingError()
    return AngleSelection(primary)


async def resolve_output_dir(
    request: ExportRequest,
    prompt: DirectoryPrompt | None,
) -> Path:
    if request.output_dir:
        chosen = request.output_dir
    else:
        chosen = None
        if prompt is not None:
            chosen = prompt()
            if inspect.isawaitable(chosen):
                chosen = await chosen
        if not chosen:
            raise UserCancelledError()
    path = Path(chosen)
    path.mkdir(parents=True, exist_ok=True)
    return path


async def captions_supported(executable: str) -> bool:
    """Whether *executable* can draw caption text at all."""
    if "drawtext" in await list_filters(executable):
        return True
    logger.warning(
        f"[EXPORT] {executable} has no drawtext filter; exporting without captions"
    )
    return False


async def export_clips(
    payload: dict | ExportRequest,
    *,
    prompt_output_dir: DirectoryPrompt | None = None,
    runner: Runner | None = None,
    settings: Settings | None = None,
    fonts: FontResolver | None = None,
    on_progress: Callable[[str], None] | None = None,
    audio_check: Callable[[str], Awaitable[bool]] | None = None,
) -> ExportResult:
    """Export the clips described by *payload*.

    Args:
        payload: Raw request dict (camelCase or snake_case) or an
            already-parsed ExportRequest.
        prompt_output_dir: Called when the request carries no outputDir.
            May be sync or async; returning None/"" cancels the export.
        runner: Overrides how ffmpeg is run (tests, dry runs).
        settings: Overrides the environment-derived settings.
        fonts: Caption font resolver; defaults to the platform resolver.
        on_progress: Receives human-readable progress messages.
        audio_check: Overrides the check for a source audio track.

    Returns:
        ExportResult with success, and an error message on failure.
    """
    settings = settings or get_settings()
    temps = TempRegistry(settings.resolve_temp_dir(), prefix=settings.temp_prefix)
    try:
        async with temps:
            request = parse_request(payload)
            validate_request(request)
            angles = resolve_angles(request)
            output_dir = await resolve_output_dir(request, prompt_output_dir)

            executable = settings.resolve_ffmpeg()
            if runner is None:
                runner = make_runner(executable)
            if audio_check is None:
                audio_check = make_audio_check(executable)
            captions = True
            if request.overlay.enabled:
                captions = await captions_supported(executable)
            assembler = ClipAssembler(
                request,
                angles,
                output_dir,
                temps,
                runner,
                settings,
                fonts=fonts if fonts is not None else default_font_resolver(),
                on_progress=on_progress,
                captions=captions,
                audio_check=audio_check,
            )
            outputs = await assembler.run()
    except ExportError as e:
        logger.error(f"[EXPORT] {e.code}: {e.message}")
        return ExportResult(success=False, error=e.message)
    except Exception as e:
        logger.exception("[EXPORT] Unexpected failure")
        return ExportResult(success=False, error=str(e) or e.__class__.__name__)

    for path in outputs:
        logger.info(f"[EXPORT] Wrote {path}")
    return ExportResult(success=True)
