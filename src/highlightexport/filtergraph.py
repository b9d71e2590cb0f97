"""Per-clip render commands: input trimming plus the filter graph.

Pipeline for one clip, in order:
  1. Trim: ``-ss``/``-t`` on every video input (duration floored).
  2. Freeze: split at freeze_at, hold the last frame of the first half
     for freeze_duration (audio gets the same split with silence), and
     join the halves again. A freeze at 0 holds the first frame and
     delays the audio instead. Sources without audio freeze video only.
  3. Annotation: the drawing is made alpha-capable, scaled to the
     current frame size and composited on top. With a freeze active it
     shows only during the hold.
  4. Caption: drawbox band plus one drawtext per overlay line.

The dual-angle variant runs steps 2-3 on each angle independently
(only the primary angle's audio is kept), scales the secondary angle
to the primary's height, stacks them side by side, and captions the
combined frame.
"""

from dataclasses import dataclass
from pathlib import Path

from .common import FontResolver, format_seconds
from .filters import Filter, FilterGraph
from .overlays import WRAP_WIDTH, OverlayLine, caption_filters

MIN_CLIP_DURATION = 0.5


# ── Timing ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ClipTiming:
    """Resolved timing of one clip, all in seconds."""

    start: float
    duration: float
    freeze_at: float | None = None
    freeze_duration: float = 0.0

    @classmethod
    def from_clip(cls, clip, min_duration: float = MIN_CLIP_DURATION) -> "ClipTiming":
        """Clamp a ClipSpec's times into something ffmpeg can render.

        Start is floored at 0, duration at *min_duration*, and freeze_at
        is clamped into [0, duration].
        """
        start = max(0.0, float(clip.start_time))
        duration = max(float(min_duration), float(clip.end_time - clip.start_time))
        freeze_at = None
        if clip.freeze_at is not None:
            freeze_at = min(max(0.0, float(clip.freeze_at)), duration)
        return cls(
            start=start,
            duration=duration,
            freeze_at=freeze_at,
            freeze_duration=float(clip.freeze_duration or 0.0),
        )

    @property
    def has_freeze(self) -> bool:
        return self.freeze_at is not None and self.freeze_duration > 0

    @property
    def freeze_window(self) -> tuple[float, float] | None:
        if not self.has_freeze:
            return None
        return self.freeze_at, self.freeze_at + self.freeze_duration

    def input_args(self, source: str | Path) -> list[str]:
        return [
            "-ss", format_seconds(self.start),
            "-t", format_seconds(self.duration),
            "-i", str(source),
        ]


# ── Render command ───────────────────────────────────────────────


@dataclass
class RenderCommand:
    """Inputs and filter graph for one ffmpeg invocation."""

    inputs: list[str]
    graph: FilterGraph

    def args(self, output: str | Path, codec_args: list[str]) -> list[str]:
        return ["-y", *self.inputs, *self.graph.command_args(), *codec_args, str(output)]


# ── Branches ─────────────────────────────────────────────────────


def _freeze_video(graph: FilterGraph, stream: str, timing: ClipTiming, tag: str) -> str:
    if timing.freeze_at <= 0:
        # Nothing precedes the freeze: hold the first frame instead.
        out = graph.fresh(f"{tag}frz")
        graph.add(
            stream,
            Filter.of("tpad", start_mode="clone", start_duration=timing.freeze_duration),
            out,
        )
        return out

    pre_src, post_src = graph.fresh(f"{tag}pre_src"), graph.fresh(f"{tag}post_src")
    graph.add(stream, Filter.of("split", 2), [pre_src, post_src])

    pre = graph.fresh(f"{tag}pre")
    graph.add(pre_src, [
        Filter.of("trim", end=timing.freeze_at),
        Filter.of("setpts", "PTS-STARTPTS"),
        Filter.of("tpad", stop_mode="clone", stop_duration=timing.freeze_duration),
    ], pre)

    post = graph.fresh(f"{tag}post")
    graph.add(post_src, [
        Filter.of("trim", start=timing.freeze_at),
        Filter.of("setpts", "PTS-STARTPTS"),
    ], post)

    out = graph.fresh(f"{tag}frz")
    graph.add([pre, post], Filter.of("concat", n=2, v=1, a=0), out)
    return out


def _freeze_audio(graph: FilterGraph, stream: str, timing: ClipTiming) -> str:
    if timing.freeze_at <= 0:
        out = graph.fresh("afrz")
        graph.add(
            stream,
            Filter.of("adelay", delays=round(timing.freeze_duration * 1000), all=1),
            out,
        )
        return out

    pre_src, post_src = graph.fresh("apre_src"), graph.fresh("apost_src")
    graph.add(stream, Filter.of("asplit", 2), [pre_src, post_src])

    pre = graph.fresh("apre")
    graph.add(pre_src, [
        Filter.of("atrim", end=timing.freeze_at),
        Filter.of("asetpts", "PTS-STARTPTS"),
        Filter.of("apad", pad_dur=timing.freeze_duration),
    ], pre)

    post = graph.fresh("apost")
    graph.add(post_src, [
        Filter.of("atrim", start=timing.freeze_at),
        Filter.of("asetpts", "PTS-STARTPTS"),
    ], post)

    out = graph.fresh("afrz")
    graph.add([pre, post], Filter.of("concat", n=2, v=0, a=1), out)
    return out


def _overlay_annotation(
    graph: FilterGraph,
    base: str,
    input_index: int,
    timing: ClipTiming,
    tag: str,
) -> str:
    ann = graph.fresh(f"{tag}ann")
    graph.add(f"{input_index}:v", Filter.of("format", "rgba"), ann)

    # scale2ref defaults to the reference (base video) dimensions.
    scaled, ref = graph.fresh(f"{tag}ann_scaled"), graph.fresh(f"{tag}ref")
    graph.add([ann, base], Filter.of("scale2ref"), [scaled, ref])

    enable = None
    window = timing.freeze_window
    if window:
        enable = f"between(t,{format_seconds(window[0])},{format_seconds(window[1])})"

    out = graph.fresh(f"{tag}annotated")
    graph.add(
        [ref, scaled],
        Filter.of("overlay", x=0, y=0, format="auto", enable=enable),
        out,
    )
    return out


def _caption(
    graph: FilterGraph,
    base: str,
    lines: list[OverlayLine],
    fonts: FontResolver | None,
    wrap_width: int,
) -> str | None:
    chain = caption_filters(lines, fonts, wrap_width)
    if not chain:
        return None
    out = graph.fresh("vcap")
    graph.add(base, chain, out)
    return out


# ── Builders ─────────────────────────────────────────────────────


def build_single_angle(
    source: str | Path,
    timing: ClipTiming,
    lines: list[OverlayLine],
    annotation: str | Path | None = None,
    *,
    overlay_enabled: bool = True,
    has_audio: bool = True,
    fonts: FontResolver | None = None,
    wrap_width: int = WRAP_WIDTH,
) -> RenderCommand:
    """Build the render command for one clip from one camera angle.

    Args:
        source: Source video path.
        timing: Resolved clip timing.
        lines: Composed caption lines (may be empty).
        annotation: Optional PNG to composite over the video.
        overlay_enabled: Whether caption text is drawn at all.
        has_audio: Whether the source has an audio track. Without one a
            freeze is applied to video only.
        fonts: Font resolver for drawtext; None uses ffmpeg's default.
        wrap_width: Character budget per caption row.

    Returns:
        RenderCommand whose graph maps the final video label and the
        freeze audio label (or the optional raw audio track).
    """
    inputs = timing.input_args(source)
    if annotation is not None:
        inputs += ["-i", str(annotation)]
    graph = FilterGraph(input_count=2 if annotation is not None else 1)

    video, audio = "0:v", None
    if timing.has_freeze:
        video = _freeze_video(graph, video, timing, "v")
        if has_audio:
            audio = _freeze_audio(graph, "0:a", timing)

    if annotation is not None:
        video = _overlay_annotation(graph, video, 1, timing, "v")

    if overlay_enabled:
        video = _caption(graph, video, lines, fonts, wrap_width) or video

    graph.video_label = video
    graph.audio_label = audio or "0:a?"
    return RenderCommand(inputs, graph)


def build_dual_angle(
    primary: str | Path,
    secondary: str | Path,
    timing: ClipTiming,
    lines: list[OverlayLine],
    annotation_primary: str | Path | None = None,
    annotation_secondary: str | Path | None = None,
    *,
    overlay_enabled: bool = True,
    has_audio: bool = True,
    fonts: FontResolver | None = None,
    wrap_width: int = WRAP_WIDTH,
) -> RenderCommand:
    """Build the render command for one clip with both angles side by side.

    Same arguments as build_single_angle, with one source and one
    optional annotation per angle. Audio comes from the primary angle.
    """
    inputs = timing.input_args(primary) + timing.input_args(secondary)
    next_index = 2
    ann_index = {}
    for tag, path in (("p", annotation_primary), ("s", annotation_secondary)):
        if path is not None:
            inputs += ["-i", str(path)]
            ann_index[tag] = next_index
            next_index += 1
    graph = FilterGraph(input_count=next_index)

    v_primary, v_secondary, audio = "0:v", "1:v", None
    if timing.has_freeze:
        v_primary = _freeze_video(graph, v_primary, timing, "p")
        if has_audio:
            audio = _freeze_audio(graph, "0:a", timing)
        v_secondary = _freeze_video(graph, v_secondary, timing, "s")

    if "p" in ann_index:
        v_primary = _overlay_annotation(graph, v_primary, ann_index["p"], timing, "p")
    if "s" in ann_index:
        v_secondary = _overlay_annotation(graph, v_secondary, ann_index["s"], timing, "s")

    # hstack needs equal heights; keep the secondary's aspect ratio.
    sec_scaled, pri_ref = graph.fresh("s_fit"), graph.fresh("p_ref")
    graph.add(
        [v_secondary, v_primary],
        Filter.of("scale2ref", w="trunc(oh*mdar/2)*2", h="ih"),
        [sec_scaled, pri_ref],
    )
    stacked = graph.fresh("vstack")
    graph.add([pri_ref, sec_scaled], Filter.of("hstack", inputs=2), stacked)

    video = None
    if overlay_enabled:
        video = _caption(graph, stacked, lines, fonts, wrap_width)
    if video is None:
        video = graph.fresh("vout")
        graph.add(stacked, Filter.of("null"), video)

    graph.video_label = video
    graph.audio_label = audio or "0:a?"
    return RenderCommand(inputs, graph)
