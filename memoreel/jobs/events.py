"""Progress broadcast: typed publish/subscribe with at-most-once delivery.

Every state or progress change of a job is published once to the
subscribers registered at that moment. There is no replay and no
backpressure; a slow SSE consumer whose queue is full simply misses events
and must poll the job status for the final state.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable

from memoreel.jobs.models import Job
from memoreel.utils.logging import debug, warn


@dataclass(frozen=True)
class ProgressEvent:
    job_id: str
    status: str
    progress: int
    output_filename: str | None = None
    degraded: bool = False
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> ProgressEvent:
        return cls(
            job_id=job.id,
            status=job.status.value,
            progress=job.progress,
            output_filename=job.output_filename or None,
            degraded=job.degraded,
            error=job.error or None,
        )

    def to_dict(self) -> dict:
        d = asdict(self)
        return {
            "type": "generation-progress",
            "jobId": d["job_id"],
            "status": d["status"],
            "progress": d["progress"],
            "outputFilename": d["output_filename"],
            "degraded": d["degraded"],
            "error": d["error"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


Subscriber = Callable[[ProgressEvent], None]


class Subscription:
    def __init__(self, publisher: ProgressPublisher, callback: Subscriber):
        self._publisher = publisher
        self.callback = callback

    def unsubscribe(self) -> None:
        self._publisher._remove(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


def _offer(q: asyncio.Queue, item: dict) -> None:
    try:
        q.put_nowait(item)
    except asyncio.QueueFull:
        pass  # at-most-once: slow consumers lose intermediate events


class ProgressPublisher:
    """Fan-out of ProgressEvents to callbacks and asyncio queues."""

    def __init__(self) -> None:
        self._subs: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Subscription:
        sub = Subscription(self, callback)
        with self._lock:
            self._subs.append(sub)
        return sub

    def subscribe_async(self, maxsize: int = 100) -> tuple[asyncio.Queue, Subscription]:
        """Queue of event dicts for an SSE stream. Must be called inside the event loop."""
        loop = asyncio.get_running_loop()
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def deliver(event: ProgressEvent) -> None:
            try:
                loop.call_soon_threadsafe(_offer, q, event.to_dict())
            except RuntimeError:
                pass  # loop closed, subscriber is gone

        return q, self.subscribe(deliver)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            targets = list(self._subs)
        for sub in targets:
            try:
                sub.callback(event)
            except Exception as e:
                warn(f"[events] Subscriber failed on {event.job_id}: {e}")
        debug(f"[events] {event.job_id} → {event.status} {event.progress}% ({len(targets)} subscribers)")

    def publish_job(self, job: Job) -> None:
        self.publish(ProgressEvent.from_job(job))
