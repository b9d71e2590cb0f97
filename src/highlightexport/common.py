"""highlightexport.common: shared helpers for building export commands.

Contains: number formatting for filter arguments, file name
sanitization, and the platform font resolver used by caption text.
"""

import re
import sys
from functools import lru_cache
from pathlib import Path

from PIL import ImageFont


# ── Number formatting ──────────────────────────────────────────────

def format_seconds(value: float) -> str:
    """Format a time in seconds the way every ffmpeg argument expects it."""
    return f"{value:.3f}"


# ── File names ─────────────────────────────────────────────────────

_UNSAFE_NAME_CHARS = re.compile(r'[\\/:*?"<>|\s]+')


def sanitize_name(name: str) -> str:
    """Make an action name usable as a file name on any OS.

    Path separators, reserved characters and whitespace collapse to a
    single underscore. Non-ASCII letters (e.g. Japanese action names)
    are kept as-is.
    """
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name.strip()).strip("_")
    return cleaned or "clip"


# ── Font resolution ────────────────────────────────────────────────
# Caption text needs a CJK-capable family. Each platform probes its own
# well-known install locations; finding nothing is a normal outcome and
# drawtext falls back to ffmpeg's default font.

class FontResolver:
    """Finds a bold and a regular font file on the current machine."""

    bold_candidates: tuple[Path, ...] = ()
    regular_candidates: tuple[Path, ...] = ()

    def resolve(self, bold: bool = False) -> str | None:
        candidates = self.bold_candidates if bold else self.regular_candidates
        for font_path in candidates:
            if _is_loadable_font(font_path):
                return str(font_path)
        # Bold lookups may settle for the regular weight.
        if bold:
            return self.resolve(bold=False)
        return None


class MacFontResolver(FontResolver):
    bold_candidates = (
        Path("/System/Library/Fonts/ヒラギノ角ゴシック W6.ttc"),
        Path("/System/Library/Fonts/Hiragino Sans GB.ttc"),
    )
    regular_candidates = (
        Path("/System/Library/Fonts/ヒラギノ角ゴシック W3.ttc"),
        Path("/System/Library/Fonts/Hiragino Sans GB.ttc"),
    )


class WindowsFontResolver(FontResolver):
    bold_candidates = (
        Path("C:/Windows/Fonts/meiryob.ttc"),
        Path("C:/Windows/Fonts/YuGothB.ttc"),
    )
    regular_candidates = (
        Path("C:/Windows/Fonts/meiryo.ttc"),
        Path("C:/Windows/Fonts/YuGothR.ttc"),
        Path("C:/Windows/Fonts/msgothic.ttc"),
    )


class LinuxFontResolver(FontResolver):
    bold_candidates = (
        Path("/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc"),
        Path("/usr/share/fonts/noto-cjk/NotoSansCJK-Bold.ttc"),
        Path("/usr/share/fonts/google-noto-cjk/NotoSansCJK-Bold.ttc"),
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    )
    regular_candidates = (
        Path("/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc"),
        Path("/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc"),
        Path("/usr/share/fonts/google-noto-cjk/NotoSansCJK-Regular.ttc"),
        Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    )


class NullFontResolver(FontResolver):
    """Never finds anything; captions use ffmpeg's default font."""


@lru_cache(maxsize=None)
def _is_loadable_font(font_path: Path) -> bool:
    if not font_path.exists():
        return False
    try:
        ImageFont.truetype(str(font_path), size=12, index=0)
    except (OSError, IndexError):
        return False
    return True


def default_font_resolver(platform: str | None = None) -> FontResolver:
    """Pick the resolver for the running (or given) platform."""
    platform = platform or sys.platform
    if platform == "darwin":
        return MacFontResolver()
    if platform.startswith("win"):
        return WindowsFontResolver()
    if platform.startswith("linux"):
        return LinuxFontResolver()
    return NullFontResolver()
