"""Shared test fixtures for highlightexport tests."""

import base64
import io
import subprocess
from pathlib import Path

import pytest
import imageio_ffmpeg
from PIL import Image

from highlightexport.config import Settings
from highlightexport.errors import ExternalProcessError

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def _make_video(out: Path, size: str, color: str, duration: int = 5, audio: bool = True) -> Path:
    cmd = [_FFMPEG, "-y", "-f", "lavfi", "-i", f"color=c={color}:s={size}:d={duration}:r=10"]
    if audio:
        cmd += ["-f", "lavfi", "-i", "anullsrc=r=44100:cl=mono", "-shortest"]
    cmd += ["-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p"]
    if audio:
        cmd += ["-c:a", "aac", "-b:a", "32k"]
    subprocess.run(cmd + [str(out)], check=True, capture_output=True)
    return out


@pytest.fixture
def source_video(tmp_path):
    """A 5-second test video (320x240, 10fps) with audio."""
    return _make_video(tmp_path / "source.mp4", "320x240", "blue")


@pytest.fixture
def second_video(tmp_path):
    """A 5-second second-angle video at a different size (160x120)."""
    return _make_video(tmp_path / "source2.mp4", "160x120", "green")


@pytest.fixture
def silent_video(tmp_path):
    """A 5-second test video (320x240) with no audio track."""
    return _make_video(tmp_path / "silent.mp4", "320x240", "red", audio=False)


def png_data_url(size=(64, 48), color=(255, 0, 0, 128)) -> str:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def annotation_url():
    return png_data_url()


@pytest.fixture
def temp_dir(tmp_path):
    d = tmp_path / "tmp"
    d.mkdir()
    return d


@pytest.fixture
def settings(temp_dir):
    """Settings with an isolated temp dir so leftovers are easy to spot."""
    return Settings(temp_dir=str(temp_dir))


class FakeRunner:
    """Stands in for ffmpeg: records argument lists and touches the output.

    Args:
        fail_on: 1-based call number that raises ExternalProcessError.
    """

    def __init__(self, fail_on: int | None = None):
        self.calls: list[list[str]] = []
        self.fail_on = fail_on

    async def __call__(self, args: list[str]) -> None:
        self.calls.append(list(args))
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise ExternalProcessError("ffmpeg exited with code 1", exit_code=1)
        Path(args[-1]).write_bytes(b"fake video")

    @property
    def outputs(self) -> list[str]:
        return [c[-1] for c in self.calls]

    def concat_calls(self) -> list[list[str]]:
        return [c for c in self.calls if "concat" in c[:4]]

    def render_calls(self) -> list[list[str]]:
        return [c for c in self.calls if "concat" not in c[:4]]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def runner_factory():
    """The FakeRunner class, for tests that need a failing runner."""
    return FakeRunner
