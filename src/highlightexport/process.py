"""Run the external transcoder and surface its outcome.

ffmpeg writes all of its diagnostics to stderr, using carriage returns
for progress updates and newlines for everything else. Each line is
forwarded to the log as it arrives; the last few are kept so a failure
message can show what ffmpeg complained about.
"""

import asyncio
import logging
import re
from collections import deque
from typing import Awaitable, Callable

from .errors import ExternalProcessError

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20
_LINE_BREAK = re.compile(r"[\r\n]+")

# (args) -> awaitable; raises ExternalProcessError on failure.
Runner = Callable[[list[str]], Awaitable[None]]


async def _pump_stderr(
    stream: asyncio.StreamReader,
    tail: deque,
    on_line: Callable[[str], None] | None,
) -> None:
    pending = ""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        pending += chunk.decode("utf-8", errors="replace")
        *lines, pending = _LINE_BREAK.split(pending)
        for line in lines:
            _emit(line, tail, on_line)
    if pending:
        _emit(pending, tail, on_line)


def _emit(line: str, tail: deque, on_line) -> None:
    line = line.strip()
    if not line:
        return
    tail.append(line)
    logger.debug(f"[FFMPEG] {line}")
    if on_line is not None:
        on_line(line)


async def run_process(
    executable: str,
    args: list[str],
    on_line: Callable[[str], None] | None = None,
) -> None:
    """Spawn *executable* with *args* and wait for it to exit.

    Args:
        executable: Path (or PATH-resolvable name) of the transcoder.
        args: Argument vector, not including the executable.
        on_line: Optional callback receiving each stderr line.

    Raises:
        ExternalProcessError: The process could not be started, or it
            exited with a non-zero code.
    """
    logger.info(f"[FFMPEG] {executable} {' '.join(args)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            executable, *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise ExternalProcessError(f"Failed to start {executable}: {e}") from e

    tail: deque = deque(maxlen=STDERR_TAIL_LINES)
    await _pump_stderr(proc.stderr, tail, on_line)
    code = await proc.wait()

    if code != 0:
        stderr_tail = "\n".join(tail)
        logger.error(f"[FFMPEG] exited with code {code}:\n{stderr_tail}")
        last = tail[-1] if tail else ""
        message = f"ffmpeg exited with code {code}"
        if last:
            message = f"{message}: {last}"
        raise ExternalProcessError(message, exit_code=code, stderr_tail=stderr_tail)


def make_runner(executable: str, on_line: Callable[[str], None] | None = None) -> Runner:
    """Bind an executable so callers only pass the argument vector."""

    async def _run(args: list[str]) -> None:
        await run_process(executable, args, on_line=on_line)

    return _run


# ── Capability checks ────────────────────────────────────────────

# " TSC drawtext          V->V       Draw text on top of video frames..."
_FILTER_ROW = re.compile(r"^\s*[A-Z.|]{2,}\s+(\w+)\s+\S+->\S+", re.MULTILINE)
_AUDIO_STREAM = re.compile(r"Stream #\d+:\d+.*?: Audio:")

_filter_cache: dict[str, frozenset[str]] = {}


def parse_filter_list(text: str) -> frozenset[str]:
    """Filter names from ``ffmpeg -filters`` output."""
    return frozenset(_FILTER_ROW.findall(text))


async def _capture_output(executable: str, *args: str) -> str:
    proc = await asyncio.create_subprocess_exec(
        executable, *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return (stdout + stderr).decode("utf-8", errors="replace")


async def list_filters(executable: str) -> frozenset[str]:
    """Names of the filters *executable* was built with, cached per executable.

    An executable that cannot be started reports no filters.
    """
    if executable not in _filter_cache:
        try:
            output = await _capture_output(executable, "-hide_banner", "-filters")
        except OSError as e:
            logger.warning(f"[FFMPEG] Cannot list filters of {executable}: {e}")
            return frozenset()
        _filter_cache[executable] = parse_filter_list(output)
    return _filter_cache[executable]


async def has_audio_track(executable: str, source: str) -> bool:
    """Whether *source* carries an audio stream, read from ``ffmpeg -i``.

    When ffmpeg itself cannot run, audio is assumed present and the
    render reports the real problem.
    """
    try:
        output = await _capture_output(executable, "-hide_banner", "-i", str(source))
    except OSError as e:
        logger.warning(f"[FFMPEG] Cannot inspect {source}: {e}")
        return True
    return _AUDIO_STREAM.search(output) is not None


def make_audio_check(executable: str) -> Callable[[str], Awaitable[bool]]:
    async def _check(source: str) -> bool:
        return await has_audio_track(executable, source)

    return _check
