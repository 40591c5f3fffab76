"""Filesystem collaborators: output allocation and the background music library."""

from __future__ import annotations

import re
from pathlib import Path

from memoreel.jobs.errors import ResourceError
from memoreel.utils.logging import debug

OUTPUT_PATTERN = "memory_{job_id}.mp4"


def _safe_stem(name: str, fallback: str = "unknown") -> str:
    """Sanitize an id for use in a filename: no separators, no traversal."""
    name = name.replace("/", "_").replace("\\", "_").replace("\x00", "")
    name = name.lstrip(".")
    name = re.sub(r"\.{2,}", ".", name)
    name = re.sub(r"[^\w\-.]", "_", name).strip("_").strip(".")
    return name[:200] or fallback


class OutputStorage:
    """Decides where rendered videos are written."""

    def __init__(self, output_dir: str | Path = "data/outputs"):
        self.output_dir = Path(output_dir)

    def allocate(self, job_id: str) -> Path:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ResourceError.from_os_error(e, "creating the output directory") from e
        path = self.output_dir / OUTPUT_PATTERN.format(job_id=_safe_stem(job_id, "job"))
        debug(f"[storage] Output for {job_id}: {path}")
        return path


class MusicLibrary:
    """Background tracks shipped with the deployment, looked up by filename."""

    def __init__(self, music_dir: str | Path = "assets/music"):
        self.music_dir = Path(music_dir)

    def resolve(self, filename: str | None) -> Path | None:
        if not filename:
            return None
        path = self.music_dir / Path(filename).name
        if path.is_file():
            return path
        debug(f"[storage] Music track missing: {path}")
        return None

    def available(self) -> list[str]:
        if not self.music_dir.is_dir():
            return []
        return sorted(p.name for p in self.music_dir.iterdir() if p.is_file())
