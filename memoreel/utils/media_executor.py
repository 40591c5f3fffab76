"""Central ffmpeg process launcher with concurrency limits, CPU/IO priority and thread control.

Every render subprocess goes through this module so a single host never runs
more ffmpeg encoders than it was configured for.

ENV configuration:
    MAX_MEDIA_JOBS: max concurrent ffmpeg processes (default 1)
    FFMPEG_THREADS: -threads flag for ffmpeg (default 2)
    MEDIA_NICE: nice value for subprocesses (default 10, Linux only)
    MEDIA_IONICE_CLASS: ionice class (default 2 = best-effort, Linux only)
    MEDIA_IONICE_LEVEL: ionice level (default 7, Linux only)
"""

from __future__ import annotations

import os
import platform
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from memoreel.utils.logging import debug, render_log

# ── Configuration via ENV ─────────────────────────────────────────────────────

MAX_MEDIA_JOBS: int = int(os.environ.get("MAX_MEDIA_JOBS", "1"))
FFMPEG_THREADS: int = int(os.environ.get("FFMPEG_THREADS", "2"))
MEDIA_NICE: int = int(os.environ.get("MEDIA_NICE", "10"))
MEDIA_IONICE_CLASS: int = int(os.environ.get("MEDIA_IONICE_CLASS", "2"))
MEDIA_IONICE_LEVEL: int = int(os.environ.get("MEDIA_IONICE_LEVEL", "7"))

IS_LINUX: bool = platform.system() == "Linux"

_semaphore: threading.Semaphore = threading.Semaphore(MAX_MEDIA_JOBS)
_stats_lock = threading.Lock()


def configure_media_executor(
    ffmpeg_threads: int = 0,
    nice: int | None = None,
    max_concurrent: int = 0,
) -> None:
    """Apply values from the rendering config. Env variables win over config."""
    global FFMPEG_THREADS, MEDIA_NICE, MAX_MEDIA_JOBS, _semaphore
    if ffmpeg_threads > 0 and "FFMPEG_THREADS" not in os.environ:
        FFMPEG_THREADS = ffmpeg_threads
    if nice is not None and "MEDIA_NICE" not in os.environ:
        MEDIA_NICE = nice
    if max_concurrent > 0 and "MAX_MEDIA_JOBS" not in os.environ and max_concurrent != MAX_MEDIA_JOBS:
        MAX_MEDIA_JOBS = max_concurrent
        _semaphore = threading.Semaphore(MAX_MEDIA_JOBS)
    debug(f"[media-exec] threads={FFMPEG_THREADS} nice={MEDIA_NICE} max_concurrent={MAX_MEDIA_JOBS}")


# ── Process tracking ──────────────────────────────────────────────────────────

class MediaProcStatus(str, Enum):
    queued = "queued"
    running = "running"
    done = "done"
    failed = "failed"


@dataclass
class MediaProcInfo:
    id: str
    description: str
    status: MediaProcStatus = MediaProcStatus.queued
    started_at: float = 0.0
    finished_at: float = 0.0
    pid: int = 0
    error: str = ""


_procs: dict[str, MediaProcInfo] = {}
_proc_counter: int = 0


def _next_proc_id() -> str:
    global _proc_counter
    with _stats_lock:
        _proc_counter += 1
        return f"ffmpeg-{_proc_counter}"


def get_media_queue_status() -> dict[str, Any]:
    with _stats_lock:
        procs = list(_procs.values())
    return {
        "max_concurrent": MAX_MEDIA_JOBS,
        "ffmpeg_threads": FFMPEG_THREADS,
        "nice": MEDIA_NICE,
        "queued": sum(1 for p in procs if p.status == MediaProcStatus.queued),
        "running": sum(1 for p in procs if p.status == MediaProcStatus.running),
        "processes": [
            {"id": p.id, "description": p.description, "status": p.status.value, "pid": p.pid}
            for p in procs if p.status in (MediaProcStatus.queued, MediaProcStatus.running)
        ],
    }


# ── Command decoration ───────────────────────────────────────────────────────

def _build_nice_prefix() -> list[str]:
    """nice + ionice prefix on Linux, empty list elsewhere."""
    if not IS_LINUX:
        return []
    prefix: list[str] = []
    if MEDIA_NICE > 0 and shutil.which("nice"):
        prefix.extend(["nice", "-n", str(MEDIA_NICE)])
    if shutil.which("ionice"):
        prefix.extend(["ionice", "-c", str(MEDIA_IONICE_CLASS), "-n", str(MEDIA_IONICE_LEVEL)])
    return prefix


def inject_ffmpeg_thread_flags(cmd: list[str]) -> list[str]:
    """Insert -threads (and -filter_complex_threads) right after the ffmpeg binary."""
    if not cmd or cmd[0] != "ffmpeg" or "-threads" in cmd:
        return cmd

    cmd = list(cmd)
    t = str(FFMPEG_THREADS)
    cmd[1:1] = ["-threads", t]
    if "-filter_complex" in cmd:
        cmd[3:3] = ["-filter_complex_threads", t]
    return cmd


# ── Popen runner ──────────────────────────────────────────────────────────────

def run_media_popen(
    cmd: list[str],
    *,
    description: str = "",
    env: dict[str, str] | None = None,
    **popen_kwargs: Any,
) -> tuple[subprocess.Popen, str]:
    """Start an ffmpeg process once a concurrency slot is free.

    The caller must read the process output and call
    release_media_popen(proc_id, returncode) exactly once afterwards.
    """
    full_cmd = _build_nice_prefix() + inject_ffmpeg_thread_flags(cmd)

    proc_id = _next_proc_id()
    entry = MediaProcInfo(id=proc_id, description=description or " ".join(cmd[:4]))
    with _stats_lock:
        _procs[proc_id] = entry

    render_log(f"Queued: {entry.description} (max_concurrent={MAX_MEDIA_JOBS})")
    _semaphore.acquire()
    try:
        proc = subprocess.Popen(full_cmd, env=env, **popen_kwargs)
    except Exception as e:
        _semaphore.release()
        entry.status = MediaProcStatus.failed
        entry.error = str(e)
        render_log(f"Failed to start: {entry.description}: {e}", level="error")
        raise

    entry.status = MediaProcStatus.running
    entry.started_at = time.monotonic()
    entry.pid = proc.pid
    render_log(f"Running: {entry.description} (pid={proc.pid})")
    return proc, proc_id


def release_media_popen(proc_id: str, returncode: int = 0, error_msg: str = "") -> None:
    """Free the concurrency slot and record the process outcome."""
    with _stats_lock:
        entry = _procs.get(proc_id)
    if entry is None or entry.status not in (MediaProcStatus.queued, MediaProcStatus.running):
        return
    entry.finished_at = time.monotonic()
    elapsed = entry.finished_at - entry.started_at
    if returncode == 0:
        entry.status = MediaProcStatus.done
        render_log(f"Done: {entry.description} ({elapsed:.1f}s)")
    else:
        entry.status = MediaProcStatus.failed
        entry.error = error_msg[:500]
        render_log(f"Failed: {entry.description} (exit={returncode}, {elapsed:.1f}s)", level="error")
    _semaphore.release()
    _cleanup_finished()


def _cleanup_finished(max_keep: int = 50) -> None:
    with _stats_lock:
        finished = [
            (pid, p) for pid, p in _procs.items()
            if p.status in (MediaProcStatus.done, MediaProcStatus.failed)
        ]
        if len(finished) > max_keep:
            finished.sort(key=lambda x: x[1].finished_at)
            for pid, _ in finished[:-max_keep]:
                del _procs[pid]
