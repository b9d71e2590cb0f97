"""Clip assembly: per-clip renders, grouping, and concatenation.

Export modes:
  - single: every clip (by ascending start time) is rendered to a temp
    file, then all of them are concatenated into one output.
  - perInstance: each clip is rendered straight to its own named output.
  - perRow: clips are grouped by action name in first-seen order; each
    group is rendered to temp files and concatenated into one output
    per action.

Renders run one ffmpeg process at a time, in the order they will be
concatenated. Concatenation goes through ffmpeg's concat demuxer with a
temp list file, and re-encodes so clips with different codecs or
parameters still join cleanly.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from .annotations import materialize_annotation
from .common import FontResolver, sanitize_name
from .config import Settings
from .filtergraph import ClipTiming, RenderCommand, build_dual_angle, build_single_angle
from .overlays import compose_overlay_lines
from .process import Runner
from .request import ClipSpec, ExportRequest
from .tempfiles import TempKind, TempRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AngleSelection:
    """Which source(s) a request renders from.

    secondary is set only for dual-angle composition. For single-angle
    exports of the second camera, use_secondary_annotation picks the
    drawing made for that camera.
    """

    primary: str
    secondary: str | None = None
    use_secondary_annotation: bool = False

    @property
    def dual(self) -> bool:
        return self.secondary is not None


# ── Grouping and naming ──────────────────────────────────────────


def group_by_action(clips: list[ClipSpec]) -> list[tuple[str, list[ClipSpec]]]:
    """Group clips by action name, keeping first-seen group order and
    the original relative order inside each group."""
    groups: dict[str, list[ClipSpec]] = {}
    for clip in clips:
        groups.setdefault(clip.action_name, []).append(clip)
    return list(groups.items())


def order_by_start(clips: list[ClipSpec]) -> list[ClipSpec]:
    return sorted(clips, key=lambda c: c.start_time)


def name_prefix(output_file_name: str | None) -> str:
    if output_file_name and output_file_name.strip():
        return f"{sanitize_name(Path(output_file_name.strip()).stem)}_"
    return ""


def _dual_suffix(dual: bool) -> str:
    return "_dual" if dual else ""


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def instance_file_name(clip: ClipSpec, prefix: str = "", dual: bool = False) -> str:
    index = clip.action_index if clip.action_index is not None else 1
    start, end = _round_half_up(clip.start_time), _round_half_up(clip.end_time)
    return (
        f"{prefix}{sanitize_name(clip.action_name)}_{index}_{start}-{end}"
        f"{_dual_suffix(dual)}.mp4"
    )


def row_file_name(action_name: str, prefix: str = "", dual: bool = False) -> str:
    return f"{prefix}{sanitize_name(action_name)}_row{_dual_suffix(dual)}.mp4"


def combined_file_name(output_file_name: str | None, dual: bool = False) -> str:
    """Name of the single-mode output. Always a bare file name inside the
    output directory."""
    if output_file_name and output_file_name.strip():
        name = output_file_name.strip()
        if name.lower().endswith(".mp4"):
            name = name[:-4]
        return f"{sanitize_name(name)}.mp4"
    return f"combined_{int(time.time() * 1000)}{_dual_suffix(dual)}.mp4"


def build_concat_list(paths: list[Path]) -> str:
    """Concat demuxer list: one ``file '<path>'`` line per input."""
    lines = []
    for path in paths:
        escaped = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


# ── Assembler ────────────────────────────────────────────────────


class ClipAssembler:
    """Renders and joins the clips of one export request.

    Args:
        request: The validated export request.
        angles: Resolved source selection.
        output_dir: Directory final outputs are written to.
        temps: Registry for every temp file this assembler creates.
        runner: Coroutine function that runs ffmpeg with an argument list.
        settings: Encoding and layout settings.
        fonts: Caption font resolver (None: ffmpeg's default font).
        on_progress: Optional callback receiving human-readable progress.
        captions: Draw caption text. Off when the transcoder cannot.
        audio_check: Reports whether a source has an audio track (None:
            assume it does). Consulted only for clips with a freeze.
    """

    def __init__(
        self,
        request: ExportRequest,
        angles: AngleSelection,
        output_dir: str | Path,
        temps: TempRegistry,
        runner: Runner,
        settings: Settings,
        fonts: FontResolver | None = None,
        on_progress: Callable[[str], None] | None = None,
        captions: bool = True,
        audio_check: Callable[[str], Awaitable[bool]] | None = None,
    ):
        self.request = request
        self.angles = angles
        self.output_dir = Path(output_dir)
        self.temps = temps
        self.runner = runner
        self.settings = settings
        self.fonts = fonts
        self.on_progress = on_progress
        self.captions = captions
        self.audio_check = audio_check
        self._has_audio: dict[str, bool] = {}

    def _progress(self, message: str) -> None:
        logger.info(f"[EXPORT] {message}")
        if self.on_progress is not None:
            self.on_progress(message)

    async def run(self) -> list[Path]:
        """Export every clip according to the request's export mode.

        Returns:
            Paths of the final output files, in the order written.
        """
        mode = self.request.export_mode
        if mode == "perInstance":
            return await self._export_per_instance()
        if mode == "perRow":
            return await self._export_per_row()
        return await self._export_single()

    # ── Modes ──

    async def _export_single(self) -> list[Path]:
        clips = order_by_start(self.request.clips)
        output = self.output_dir / combined_file_name(
            self.request.output_file_name, self.angles.dual,
        )
        await self._render_and_join(clips, output)
        return [output]

    async def _export_per_instance(self) -> list[Path]:
        prefix = name_prefix(self.request.output_file_name)
        outputs = []
        total = len(self.request.clips)
        for i, clip in enumerate(self.request.clips, start=1):
            output = self.output_dir / instance_file_name(clip, prefix, self.angles.dual)
            self._progress(f"RENDER {i}/{total}  {clip.action_name} -> {output.name}")
            await self.render_clip(clip, output)
            outputs.append(output)
        return outputs

    async def _export_per_row(self) -> list[Path]:
        prefix = name_prefix(self.request.output_file_name)
        outputs = []
        for action_name, clips in group_by_action(self.request.clips):
            output = self.output_dir / row_file_name(action_name, prefix, self.angles.dual)
            await self._render_and_join(clips, output)
            outputs.append(output)
        return outputs

    async def _render_and_join(self, clips: list[ClipSpec], output: Path) -> None:
        renders = []
        for i, clip in enumerate(clips, start=1):
            path = self.temps.new_path("clip", ".mp4", TempKind.RENDER)
            renders.append(path)
            self._progress(f"RENDER {i}/{len(clips)}  {clip.action_name} ({clip.id})")
            await self.render_clip(clip, path)
        self._progress(f"CONCAT {len(renders)} clips -> {output.name}")
        await self.concat(renders, output)
        await self.temps.release(renders)

    # ── Steps ──

    async def _source_has_audio(self, source: str) -> bool:
        if self.audio_check is None:
            return True
        if source not in self._has_audio:
            self._has_audio[source] = await self.audio_check(source)
            if not self._has_audio[source]:
                logger.info(f"[EXPORT] {source} has no audio; freezes apply to video only")
        return self._has_audio[source]

    async def build_command(self, clip: ClipSpec) -> RenderCommand:
        """Materialize the clip's annotations and build its render command."""
        overlay = self.request.overlay
        timing = ClipTiming.from_clip(clip, self.settings.min_clip_duration)
        captioned = overlay.enabled and self.captions
        lines = compose_overlay_lines(clip, overlay) if captioned else []
        has_audio = True
        if timing.has_freeze:
            has_audio = await self._source_has_audio(self.angles.primary)
        options = dict(
            overlay_enabled=captioned,
            has_audio=has_audio,
            fonts=self.fonts,
            wrap_width=self.settings.wrap_width,
        )

        if self.angles.dual:
            ann_primary = await materialize_annotation(
                clip.annotation_png_primary, self.temps, "annotation_primary",
            )
            ann_secondary = await materialize_annotation(
                clip.annotation_png_secondary, self.temps, "annotation_secondary",
            )
            return build_dual_angle(
                self.angles.primary, self.angles.secondary, timing, lines,
                ann_primary, ann_secondary, **options,
            )

        if self.angles.use_secondary_annotation:
            data_url, label = clip.annotation_png_secondary, "annotation_secondary"
        else:
            data_url, label = clip.annotation_png_primary, "annotation_primary"
        annotation = await materialize_annotation(data_url, self.temps, label)
        return build_single_angle(self.angles.primary, timing, lines, annotation, **options)

    async def render_clip(self, clip: ClipSpec, output: Path) -> Path:
        command = await self.build_command(clip)
        await self.runner(command.args(output, self.settings.output_codec_args()))
        return output

    async def concat(self, inputs: list[Path], output: Path) -> Path:
        """Join rendered clips into *output*. The list file is always removed."""
        list_path = self.temps.new_path("concat", ".txt", TempKind.CONCAT_LIST)
        await asyncio.to_thread(
            list_path.write_text, build_concat_list(inputs), encoding="utf-8",
        )
        try:
            await self.runner([
                "-y", "-f", "concat", "-safe", "0", "-i", str(list_path),
                *self.settings.output_codec_args(),
                str(output),
            ])
        finally:
            await self.temps.release(list_path)
        return output
