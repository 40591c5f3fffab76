"""Dependency self-check with helpful installation hints."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from functools import lru_cache

from memoreel.utils.logging import success, warn, error

# Filters the compositor's filter graph cannot do without
COMPOSITOR_FILTERS = (
    "xfade", "zoompan", "drawtext", "tpad",
    "loudnorm", "amix", "afade", "adelay", "apad",
)


@dataclass
class DepStatus:
    name: str
    available: bool
    version: str = ""
    hint: str = ""


def check_ffmpeg() -> DepStatus:
    path = shutil.which("ffmpeg")
    if not path:
        return DepStatus(
            "ffmpeg", False,
            hint="Install: sudo apt-get install ffmpeg  (or https://ffmpeg.org/download.html)"
        )
    try:
        r = subprocess.run(["ffmpeg", "-version"], capture_output=True, text=True, timeout=5)
        ver = r.stdout.split("\n")[0] if r.stdout else "unknown"
        return DepStatus("ffmpeg", True, version=ver)
    except (OSError, subprocess.SubprocessError):
        return DepStatus("ffmpeg", False, hint="ffmpeg found but failed to run")


def check_ffprobe() -> DepStatus:
    path = shutil.which("ffprobe")
    if not path:
        return DepStatus("ffprobe", False, hint="Usually bundled with ffmpeg")
    return DepStatus("ffprobe", True)


@lru_cache(maxsize=1)
def list_ffmpeg_filters() -> frozenset[str]:
    """Names of the filters compiled into the local ffmpeg (empty if ffmpeg is missing)."""
    if not shutil.which("ffmpeg"):
        return frozenset()
    try:
        r = subprocess.run(["ffmpeg", "-hide_banner", "-filters"],
                           capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.SubprocessError):
        return frozenset()
    names = set()
    for line in r.stdout.splitlines():
        parts = line.split()
        # " TSC xfade  VV->V  Cross fade ...": flags column, then the name
        if len(parts) >= 3 and "->" in parts[2]:
            names.add(parts[1])
    return frozenset(names)


def check_compositor_filters() -> DepStatus:
    available = list_ffmpeg_filters()
    missing = [f for f in COMPOSITOR_FILTERS if f not in available]
    if not missing:
        return DepStatus("ffmpeg filters", True, version=", ".join(COMPOSITOR_FILTERS))
    return DepStatus(
        "ffmpeg filters", False,
        hint=f"Missing {', '.join(missing)} - needs ffmpeg >= 4.3 built with libfreetype",
    )


def check_all() -> list[DepStatus]:
    return [check_ffmpeg(), check_ffprobe(), check_compositor_filters()]


def print_dep_status(deps: list[DepStatus], strict: bool = False) -> bool:
    all_ok = True
    for d in deps:
        if d.available:
            success(f"{d.name}: {d.version or 'OK'}")
        elif strict:
            error(f"{d.name}: NOT FOUND - {d.hint}")
            all_ok = False
        else:
            warn(f"{d.name}: not found - {d.hint}")
    return all_ok
