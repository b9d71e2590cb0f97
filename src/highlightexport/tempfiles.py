"""Scoped registry for the temporary files one export request creates.

Annotation images, per-clip renders and concat list files all live in
the OS temp directory. A TempRegistry is created at the start of a
request, every path it hands out is tracked, and the registry is drained
exactly once when the request finishes, whether it succeeded or not:

    async with TempRegistry(temp_dir, prefix="hlx") as temps:
        png = temps.new_path("annotation_primary", ".png", TempKind.ANNOTATION)
        ...

Paths released early (e.g. per-row renders right after their concat)
are deleted immediately and dropped from the registry, so the final
sweep never touches them a second time.

Deletion is best-effort. A file that cannot be removed is logged and
forgotten; it never changes the outcome of the export.
"""

import asyncio
import logging
import os
import secrets
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class TempKind(Enum):
    ANNOTATION = "annotation"
    RENDER = "render"
    CONCAT_LIST = "concatList"


@dataclass(frozen=True)
class TempArtifact:
    path: Path
    kind: TempKind


def unique_temp_name(prefix: str, label: str, suffix: str) -> str:
    """Build a collision-resistant file name: prefix, label, ms timestamp, random hex."""
    stamp = int(time.time() * 1000)
    return f"{prefix}_{label}_{stamp}_{secrets.token_hex(4)}{suffix}"


def _remove(path: Path) -> bool:
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"[TEMP] Failed to delete {path}: {e}")
        return False
    return True


class TempRegistry:
    """Tracks temp artifacts for a single request and deletes them."""

    def __init__(self, temp_dir: str | Path, prefix: str = "hlx"):
        self.temp_dir = Path(temp_dir)
        self.prefix = prefix
        self._artifacts: dict[Path, TempArtifact] = {}
        self._swept = False

    async def __aenter__(self) -> "TempRegistry":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.sweep()

    @property
    def artifacts(self) -> list[TempArtifact]:
        return list(self._artifacts.values())

    def track(self, path: str | Path, kind: TempKind) -> Path:
        """Register an externally created path for deletion."""
        p = Path(path)
        self._artifacts[p] = TempArtifact(p, kind)
        return p

    def new_path(self, label: str, suffix: str, kind: TempKind) -> Path:
        """Reserve and track a fresh temp path. The file itself is not created."""
        path = self.temp_dir / unique_temp_name(self.prefix, label, suffix)
        return self.track(path, kind)

    async def release(self, paths: list[Path] | Path) -> None:
        """Delete the given tracked paths now and stop tracking them."""
        if isinstance(paths, Path):
            paths = [paths]
        for path in paths:
            if self._artifacts.pop(Path(path), None) is None:
                continue
            await asyncio.to_thread(_remove, Path(path))

    async def sweep(self) -> int:
        """Delete every remaining tracked artifact. Runs at most once.

        Returns the number of files actually removed.
        """
        if self._swept:
            return 0
        self._swept = True
        pending = list(self._artifacts)
        self._artifacts.clear()
        removed = 0
        for path in pending:
            if await asyncio.to_thread(_remove, path):
                removed += 1
        if pending:
            logger.info(f"[TEMP] Swept {removed}/{len(pending)} temp files")
        return removed
