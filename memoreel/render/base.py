"""Render backend ABC and shared ffmpeg helpers."""

from __future__ import annotations

import re
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from memoreel.jobs.errors import RenderError, ResourceError
from memoreel.templates.catalog import Template
from memoreel.timeline.builder import Clip, timeline_duration
from memoreel.utils.logging import debug, error, info, render_log
from memoreel.utils.media_executor import release_media_popen, run_media_popen

STDERR_JOIN_S = 5.0

ProgressCallback = Callable[[float], None]
"""Receives the render fraction, 0.0 to 1.0."""


@dataclass
class RenderRequest:
    clips: list[Clip]
    template: Template
    output_path: Path
    audio_path: Path | None = None
    timeout_s: float = 0.0        # 0 = derived from the timeline duration

    @property
    def duration(self) -> float:
        return timeline_duration(self.clips)


@dataclass
class RenderResult:
    output_path: Path
    renderer: str
    degraded: bool = False
    duration: float = 0.0
    elapsed: float = 0.0
    cmd: list[str] = field(default_factory=list, repr=False)


class RenderBackend(ABC):
    """Turns a clip list into one output video file."""

    name: str = ""
    degraded: bool = False

    @abstractmethod
    def check_available(self) -> tuple[bool, str]:
        """Return (ok, message) for this backend on the current host."""

    @abstractmethod
    def render(self, request: RenderRequest, progress_cb: ProgressCallback | None = None) -> RenderResult:
        """Render synchronously; raise RenderError on failure."""


# ── ffmpeg helpers ────────────────────────────────────────────────────────────

def _parse_ffmpeg_time(line: str) -> float | None:
    """Extract elapsed seconds from ffmpeg stderr line (time=HH:MM:SS.cs)."""
    m = re.search(r"time=\s*(-?)(\d+):(\d+):(\d+(?:\.\d+)?)", line)
    if not m:
        return None
    sign, h, mi, s = m.group(1), int(m.group(2)), int(m.group(3)), float(m.group(4))
    t = h * 3600 + mi * 60 + s
    return -t if sign == "-" else t


def _extract_ffmpeg_error(stderr_text: str) -> str:
    """Strip the banner/config block and keep the tail of ffmpeg's stderr."""
    useful = []
    skip_banner = True
    for line in stderr_text.strip().split("\n"):
        if skip_banner:
            if any(x in line for x in (
                "--enable-", "--disable-", "configuration:", "built with",
                "ffmpeg version", "Copyright",
            )):
                continue
            if line.strip().startswith("lib") and "/" in line:
                continue
            skip_banner = False
        useful.append(line)
    return "\n".join(useful[-15:]) if useful else stderr_text[-500:]


def render_timeout(request: RenderRequest, duration: float) -> float:
    if request.timeout_s > 0:
        return request.timeout_s
    return max(600.0, duration * 5)


def _drain_stderr(proc, lines: list[str], on_line: Callable[[str], None] | None, failures: list[BaseException]) -> None:
    """Reader thread body: collect stderr until EOF, feeding each line to ``on_line``."""
    for line in proc.stderr:
        lines.append(line)
        if on_line is None or failures:
            continue
        try:
            on_line(line)
        except Exception as e:
            failures.append(e)


def run_ffmpeg_with_progress(
    cmd: list[str],
    *,
    duration: float,
    timeout_s: float,
    description: str,
    progress_cb: ProgressCallback | None = None,
) -> float:
    """Run an ffmpeg command through the media executor, streaming progress.

    stderr is drained on a reader thread so the deadline holds even when
    ffmpeg goes quiet. Returns wall-clock seconds. Raises RenderError on
    non-zero exit or timeout and ResourceError when the binary cannot be
    started.
    """
    t0 = time.monotonic()
    debug(f"[render] CMD:\n{' '.join(str(c) for c in cmd)}")
    for i, arg in enumerate(cmd):
        if arg == "-filter_complex" and i + 1 < len(cmd):
            render_log(f"filter_complex:\n{cmd[i + 1]}")
            break

    try:
        proc, proc_id = run_media_popen(
            cmd, description=description,
            stderr=subprocess.PIPE, stdout=subprocess.DEVNULL,
            text=True, bufsize=1,
        )
    except FileNotFoundError as e:
        raise RenderError("ffmpeg not found") from e
    except OSError as e:
        raise ResourceError.from_os_error(e, "starting ffmpeg") from e

    last = 0.0

    def on_line(line: str) -> None:
        nonlocal last
        elapsed = _parse_ffmpeg_time(line)
        if elapsed is not None and elapsed >= 0:
            frac = min(elapsed / duration, 0.99)
            if frac > last:
                last = frac
                progress_cb(frac)

    stderr_lines: list[str] = []
    failures: list[BaseException] = []
    reader = threading.Thread(
        target=_drain_stderr,
        args=(proc, stderr_lines, on_line if progress_cb and duration > 0 else None, failures),
        name=f"stderr-{proc_id}", daemon=True,
    )
    reader.start()

    try:
        proc.wait(timeout=max(0.0, t0 + timeout_s - time.monotonic()))
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
        reader.join(timeout=STDERR_JOIN_S)
        release_media_popen(proc_id, returncode=-1, error_msg="Timeout")
        error(f"[render] Timed out after {timeout_s:g}s: {description}")
        render_log(f"Render TIMED OUT ({description})", level="error")
        raise RenderError(f"Render timed out after {timeout_s:g}s")

    reader.join(timeout=STDERR_JOIN_S)
    full_stderr = "".join(stderr_lines)
    release_media_popen(
        proc_id, returncode=proc.returncode,
        error_msg=full_stderr[-500:] if proc.returncode != 0 else "",
    )
    if proc.returncode != 0:
        err_msg = _extract_ffmpeg_error(full_stderr)
        error(f"[render] ffmpeg failed:\n{err_msg}")
        render_log(f"Render FAILED (exit={proc.returncode}): {err_msg}", level="error")
        raise RenderError(f"ffmpeg exited with code {proc.returncode}: {err_msg.strip()[-300:]}")
    if failures:
        raise failures[0]

    elapsed = time.monotonic() - t0
    info(f"[render] {description} finished in {elapsed:.1f}s")
    return elapsed


def check_output(path: Path) -> None:
    if not path.exists():
        render_log(f"Output file not created: {path}", level="error")
        raise RenderError("Output file not created")
    size = path.stat().st_size
    if size == 0:
        render_log(f"Output file is empty: {path}", level="error")
        raise RenderError("Output file is empty")
    render_log(f"Render OK: {path.name} ({size / (1024 * 1024):.1f} MB)")
