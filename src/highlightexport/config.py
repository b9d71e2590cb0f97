"""Runtime configuration, read from HIGHLIGHTEXPORT_* environment variables."""

import shutil
import tempfile
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="HIGHLIGHTEXPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Transcoder. Empty means ffmpeg on PATH, else the imageio-ffmpeg build.
    ffmpeg_path: str = ""

    # Encoding
    video_codec: str = "libx264"
    preset: str = "veryfast"
    audio_codec: str = "aac"
    pixel_format: str = "yuv420p"

    # Temp files
    temp_dir: str = ""
    temp_prefix: str = "hlx"

    # Clip layout
    min_clip_duration: float = 0.5
    wrap_width: int = 60

    log_level: str = "INFO"

    def resolve_ffmpeg(self) -> str:
        """Return the transcoder executable to spawn.

        Order: the configured path, an ``ffmpeg`` on PATH, then the build
        bundled with imageio-ffmpeg.
        """
        if self.ffmpeg_path:
            return self.ffmpeg_path
        found = shutil.which("ffmpeg")
        if found:
            return found
        import imageio_ffmpeg

        return imageio_ffmpeg.get_ffmpeg_exe()

    def resolve_temp_dir(self) -> str:
        return self.temp_dir or tempfile.gettempdir()

    def output_codec_args(self) -> list[str]:
        """Encoder flags shared by per-clip renders and concatenation."""
        return [
            "-c:v", self.video_codec, "-preset", self.preset,
            "-pix_fmt", self.pixel_format,
            "-c:a", self.audio_codec,
        ]


@lru_cache
def get_settings() -> Settings:
    return Settings()
