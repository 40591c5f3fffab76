"""Retention-bounded record of finished jobs."""

from __future__ import annotations

import threading
import time
from typing import Callable

from memoreel.jobs.models import Job
from memoreel.utils.logging import debug, info


class JobStore:
    """Completed and failed jobs keyed by id, evicted after ``retention_s``.

    Expired entries are hidden from ``get`` immediately; ``sweep`` (run
    periodically by the sweeper thread) actually frees them.
    """

    def __init__(self, retention_s: float = 24 * 3600, clock: Callable[[], float] = time.time):
        self.retention_s = retention_s
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _expired(self, job: Job, now: float) -> bool:
        return now - job.completed_at > self.retention_s

    def add(self, job: Job) -> None:
        if not job.status.is_terminal:
            raise ValueError(f"Job {job.id} is not finished ({job.status.value})")
        with self._lock:
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
        if job is None or self._expired(job, self._clock()):
            return None
        return job

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [jid for jid, job in self._jobs.items() if self._expired(job, now)]
            for jid in stale:
                del self._jobs[jid]
        if stale:
            info(f"[store] Evicted {len(stale)} finished job(s)")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ── Background sweeper ──

    def start_sweeper(self, interval_s: float = 3600.0) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()

        def loop() -> None:
            while not self._stop.wait(interval_s):
                self.sweep()

        self._thread = threading.Thread(target=loop, name="memoreel-sweeper", daemon=True)
        self._thread.start()
        debug(f"[store] Sweeper started (every {interval_s:.0f}s)")

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
