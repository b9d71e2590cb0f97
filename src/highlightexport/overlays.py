"""Caption overlays burned into exported clips.

Two halves:
  - Composition: a clip plus the request's overlay flags become an
    ordered list of OverlayLines (bold action line, label line, memo
    line), or whatever the user's text template produces.
  - Layout: lines are wrapped at a fixed character budget, escaped for
    drawtext, and turned into one drawbox step (the dark caption band)
    plus one drawtext step per line.

The caption band hugs the bottom of the frame. Its height grows by one
line pitch per rendered line; the first overlay line sits lowest and
later lines stack upward in smaller, dimmer type.
"""

import re
from dataclasses import dataclass

from .common import FontResolver
from .filters import Filter, escape_option_value


# ── Constants ────────────────────────────────────────────────────

WRAP_WIDTH = 60                 # characters per rendered line
BOX_BASE_HEIGHT = 60            # band height for a single rendered line
LINE_PITCH = 35                 # extra band height per additional line
BOX_PADDING_BOTTOM = 13         # gap between band bottom and lowest text
BOX_COLOR = "black@0.6"
TEXT_X = 24

# (font size, color) per overlay line; overflow lines reuse the last.
LINE_STYLES = (
    (34, "white"),
    (28, "0xDDDDDD"),
    (24, "0xAAAAAA"),
)

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class OverlayLine:
    text: str
    is_bold: bool = False


# ── Composition ──────────────────────────────────────────────────


def format_labels(labels) -> str:
    """Join labels as ``group: name`` pairs (bare name when group is empty)."""
    parts = []
    for label in labels or []:
        parts.append(f"{label.group}: {label.name}" if label.group else label.name)
    return ", ".join(parts)


def compose_overlay_lines(clip, overlay) -> list[OverlayLine]:
    """Build the caption lines for one clip.

    Args:
        clip: ClipSpec being exported.
        overlay: The request's OverlayConfig.

    Returns:
        Up to three lines in display order. A non-empty text template
        replaces the default composition entirely.
    """
    if overlay.text_template and overlay.text_template.strip():
        return render_text_template(overlay.text_template, clip, overlay)

    lines = []
    if overlay.show_action_name:
        if overlay.show_action_index:
            index = clip.action_index if clip.action_index is not None else 1
            lines.append(OverlayLine(f"#{index} {clip.action_name}", is_bold=True))
        else:
            lines.append(OverlayLine(clip.action_name, is_bold=True))
    if overlay.show_labels and clip.labels:
        lines.append(OverlayLine(format_labels(clip.labels)))
    if overlay.show_memo and clip.memo:
        lines.append(OverlayLine(clip.memo))
    return lines


def render_text_template(template: str, clip, overlay) -> list[OverlayLine]:
    """Resolve ``{placeholders}`` against the clip and split on ``|``.

    Placeholders whose show flag is off resolve to an empty string;
    unknown placeholders are left verbatim. Blank segments are dropped
    and the first remaining segment is bold.
    """
    index = clip.action_index if clip.action_index is not None else 1
    values = {
        "actionName": clip.action_name if overlay.show_action_name else "",
        "index": str(index) if overlay.show_action_index else "",
        "labels": format_labels(clip.labels) if overlay.show_labels else "",
        "memo": (clip.memo or "") if overlay.show_memo else "",
    }
    # Older templates call the memo a qualifier.
    values["qualifier"] = values["memo"]

    def _replace(match):
        key = match.group(1)
        return values.get(key, match.group(0))

    rendered = _PLACEHOLDER.sub(_replace, template)
    segments = [seg.strip() for seg in rendered.split("|")]
    # "#" alone is what "#{index}" leaves when the index is hidden.
    segments = [seg for seg in segments if seg and seg != "#"]
    return [OverlayLine(seg, is_bold=(i == 0)) for i, seg in enumerate(segments)]


# ── Text safety ──────────────────────────────────────────────────


def wrap_text(text: str, width: int = WRAP_WIDTH) -> str:
    """Greedy word wrap. Words longer than *width* are left whole."""
    if len(text) <= width:
        return text
    lines: list[str] = []
    current = ""
    for word in text.split():
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width:
            current = f"{current} {word}"
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return "\n".join(lines)


def escape_drawtext(text: str) -> str:
    r"""Escape drawtext-significant characters.

    Order is fixed: backslash, colon, single quote, percent, comma. Each
    later pass only adds backslashes in front of its own character, and
    backslashes are handled first, so no escape is ever escaped twice.
    """
    return (
        text.replace("\\", "\\\\")
        .replace(":", "\\:")
        .replace("'", "\\'")
        .replace("%", "\\%")
        .replace(",", "\\,")
    )


def rendered_line_count(lines: list[OverlayLine], width: int = WRAP_WIDTH) -> int:
    """Number of text rows on screen once every line is wrapped."""
    return sum(wrap_text(line.text, width).count("\n") + 1 for line in lines)


def caption_box_height(rendered_lines: int) -> int:
    return max(BOX_BASE_HEIGHT, BOX_BASE_HEIGHT + (rendered_lines - 1) * LINE_PITCH)


def line_style(index: int) -> tuple[int, str]:
    return LINE_STYLES[min(index, len(LINE_STYLES) - 1)]


# ── Filter construction ──────────────────────────────────────────


def caption_filters(
    lines: list[OverlayLine],
    fonts: FontResolver | None = None,
    width: int = WRAP_WIDTH,
) -> list[Filter]:
    """Return the drawbox + drawtext chain for a caption band.

    Returns an empty list when there is nothing to draw.
    """
    if not lines:
        return []

    wrapped = [wrap_text(line.text, width) for line in lines]
    box_h = caption_box_height(sum(w.count("\n") + 1 for w in wrapped))

    chain = [
        Filter.of(
            "drawbox",
            x=0, y=f"ih-{box_h}", w="iw", h=box_h,
            color=BOX_COLOR, t="fill",
        )
    ]

    # Offset of the current line's lowest row above the band bottom.
    cursor = 0
    for i, (line, text) in enumerate(zip(lines, wrapped)):
        rows = text.count("\n") + 1
        font_size, color = line_style(i)
        top_offset = BOX_PADDING_BOTTOM + cursor + font_size + (rows - 1) * LINE_PITCH
        fontfile = fonts.resolve(bold=line.is_bold) if fonts else None
        chain.append(
            Filter.of(
                "drawtext",
                fontfile=escape_option_value(fontfile) if fontfile else None,
                text=escape_drawtext(text),
                expansion="none",
                fontsize=font_size,
                fontcolor=color,
                line_spacing=LINE_PITCH - font_size,
                x=TEXT_X,
                y=f"h-{top_offset}",
            )
        )
        cursor += rows * LINE_PITCH
    return chain
