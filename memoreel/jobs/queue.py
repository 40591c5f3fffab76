"""Sequential render queue: one worker thread, immutable job snapshots.

Submission only validates and enqueues; the worker pops jobs strictly in
arrival order and runs selection → timeline → render for one job at a time.
Readers never wait on a render: the queue index, the current slot and the
store are each guarded by short locks, and every update replaces a frozen
``Job`` snapshot by reference.
"""

from __future__ import annotations

import math
import random
import threading
import time
import uuid
from collections import deque
from pathlib import Path
from typing import Any, Callable, Iterable

from memoreel.jobs.errors import RenderError, ValidationError, failure_message
from memoreel.jobs.events import ProgressPublisher
from memoreel.jobs.models import Job, JobOptions, JobStatus
from memoreel.jobs.store import JobStore
from memoreel.media.descriptor import MediaDescriptor, MediaType
from memoreel.media.selector import MediaSelector
from memoreel.render.base import RenderBackend, RenderRequest
from memoreel.storage import MusicLibrary, OutputStorage
from memoreel.templates.catalog import TemplateCatalog
from memoreel.timeline.builder import build_clips
from memoreel.utils.config import SelectionConfig
from memoreel.utils.logging import debug, error, info, set_job_id, success

MIN_MEDIA = 2
DEFAULT_TARGET_DURATION = 90.0

# Progress milestones (percent) around the render call
PROGRESS_ALLOCATED = 5
PROGRESS_SELECTED = 10
PROGRESS_TIMELINE = 15
PROGRESS_RENDER_SPAN = 80   # render fraction 0..1 maps onto 15..95


class JobQueue:
    def __init__(
        self,
        backend: RenderBackend,
        catalog: TemplateCatalog,
        *,
        storage: OutputStorage,
        music: MusicLibrary | None = None,
        publisher: ProgressPublisher | None = None,
        store: JobStore | None = None,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] | None = None,
        selection: SelectionConfig | None = None,
        default_target_duration: float = DEFAULT_TARGET_DURATION,
        render_timeout_s: float = 0.0,
    ):
        self.backend = backend
        self.catalog = catalog
        self.storage = storage
        self.music = music
        self.publisher = publisher or ProgressPublisher()
        self.store = store or JobStore(clock=clock)
        self._clock = clock
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.default_target_duration = default_target_duration
        self.render_timeout_s = render_timeout_s

        selection = selection or SelectionConfig()
        if rng is None:
            rng = random.Random(selection.seed)
        self.selector = MediaSelector(rng=rng, video_weight=selection.video_weight)

        self._queue: deque[Job] = deque()
        self._index: dict[str, Job] = {}
        self._current: Job | None = None
        self._worker_active = False
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

    # ── Submission ────────────────────────────────────────────────────────

    def submit(
        self,
        media: Iterable[MediaDescriptor | dict[str, Any]],
        style: str | None = None,
        options: JobOptions | None = None,
    ) -> Job:
        """Validate and enqueue. Raises ValidationError; never waits for rendering."""
        items = tuple(m if isinstance(m, MediaDescriptor) else MediaDescriptor.from_dict(m) for m in media)
        usable = tuple(m for m in items if m.is_usable)
        if len(usable) < MIN_MEDIA:
            raise ValidationError(f"At least {MIN_MEDIA} media files are required (got {len(usable)})")

        options = options or JobOptions(target_duration=self.default_target_duration)
        target = options.target_duration
        if not isinstance(target, (int, float)) or not math.isfinite(target) or target <= 0:
            raise ValidationError("Target duration must be a positive number of seconds")

        template = self.catalog.get_template(style)
        with self._lock:
            job_id = self._new_id()
            job = Job(
                id=job_id, media=usable, style=template.name, options=options,
                status=JobStatus.queued, created_at=self._clock(),
            )
            self._queue.append(job)
            self._index[job_id] = job
            position = len(self._queue)
            start_worker = not self._worker_active
            self._worker_active = True

        info(f"[queue] Job {job_id} queued: {len(usable)} files, style={template.name}, "
             f"target={options.target_duration:g}s (position {position})")
        self.publisher.publish_job(job)
        if start_worker:
            threading.Thread(target=self._run, name="memoreel-worker", daemon=True).start()
        return job

    def _new_id(self) -> str:
        # caller holds self._lock
        for _ in range(10):
            jid = self._id_factory()
            taken = (
                jid in self._index
                or (self._current is not None and self._current.id == jid)
                or self.store.get(jid) is not None
            )
            if not taken:
                return jid
        raise RuntimeError("Job id factory keeps returning ids that are in use")

    # ── Queries ───────────────────────────────────────────────────────────

    def get_status(self, job_id: str) -> Job | None:
        """Current job, then queued, then finished; None when unknown or expired."""
        with self._lock:
            cur = self._current
            if cur is not None and cur.id == job_id:
                return cur
            queued = self._index.get(job_id)
        if queued is not None:
            return queued
        return self.store.get(job_id)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            cur = self._current
            queue_len = len(self._queue)
        return {
            "processing": cur is not None,
            "queueLength": queue_len,
            "completedCount": len(self.store),
            "currentJob": {
                "id": cur.id,
                "status": cur.status.value,
                "progress": cur.progress,
                "style": cur.style,
                "filesCount": len(cur.media),
            } if cur else None,
            "backend": self.backend.name,
            "degraded": self.backend.degraded,
        }

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued or processing. False on timeout."""
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._queue and self._current is None and not self._worker_active,
                timeout,
            )

    # ── Worker ────────────────────────────────────────────────────────────

    def _run(self) -> None:
        while True:
            with self._lock:
                if not self._queue:
                    self._worker_active = False
                    self._idle.notify_all()
                    return
                queued = self._queue[0]
                started = queued.evolve(
                    status=JobStatus.processing,
                    started_at=self._clock(),
                    renderer=self.backend.name,
                )
                # visible as current before it leaves the queue index
                self._current = started
                self._queue.popleft()
                self._index.pop(queued.id, None)

            self.publisher.publish_job(started)
            finished = self._process(started)

            with self._lock:
                self.store.add(finished)
                self._current = None
            self.publisher.publish_job(finished)

    def _process(self, job: Job) -> Job:
        set_job_id(job.id)
        t0 = time.monotonic()
        try:
            done = self._pipeline(job)
            success(f"[queue] Job {job.id} completed in {time.monotonic() - t0:.1f}s → {done.output_filename}"
                    f"{' (degraded)' if done.degraded else ''}")
            return done
        except Exception as e:
            msg = failure_message(e)
            error(f"[queue] Job {job.id} failed: {msg}")
            with self._lock:
                latest = self._current or job
            return latest.evolve(status=JobStatus.failed, error=msg, completed_at=self._clock())
        finally:
            set_job_id("")

    def _update(self, publish: bool = True, **changes: Any) -> Job:
        with self._lock:
            self._current = self._current.evolve(**changes)
            job = self._current
        if publish:
            self.publisher.publish_job(job)
        return job

    def _advance(self, percent: int) -> None:
        """Raise progress; never lowers it and only publishes real increases."""
        percent = max(0, min(100, int(percent)))
        with self._lock:
            cur = self._current
            if cur is None or percent <= cur.progress:
                return
        self._update(progress=percent)

    def _pipeline(self, job: Job) -> Job:
        output = self.storage.allocate(job.id)
        self._advance(PROGRESS_ALLOCATED)

        template = self.catalog.get_template(job.style)
        visual = [m for m in job.media if m.is_visual]
        if not visual:
            raise RenderError("No photos or videos to render")
        selection = self.selector.select(
            visual, job.options.target_duration,
            photo_duration=template.image_duration,
            max_video_duration=template.max_video_duration,
        )
        debug(f"[queue] Selected {len(selection.items)}/{len(visual)} items "
              f"({selection.photo_count} photos, {selection.video_count} videos, "
              f"~{selection.estimated_duration:.1f}s)")
        self._update(publish=False, selected_count=len(selection.items))
        self._advance(PROGRESS_SELECTED)

        clips = build_clips(selection.items, template)
        audio = self._background_audio(job)
        self._advance(PROGRESS_TIMELINE)

        request = RenderRequest(
            clips=clips, template=template, output_path=output,
            audio_path=audio, timeout_s=self.render_timeout_s,
        )

        def on_progress(fraction: float) -> None:
            fraction = max(0.0, min(1.0, fraction))
            self._advance(PROGRESS_TIMELINE + int(fraction * PROGRESS_RENDER_SPAN))

        result = self.backend.render(request, on_progress)
        out = Path(result.output_path)
        # published by the worker once the job is in the store
        return self._update(
            publish=False,
            status=JobStatus.completed,
            progress=100,
            output_path=str(out),
            output_filename=out.name,
            renderer=result.renderer,
            degraded=result.degraded,
            completed_at=self._clock(),
        )

    def _background_audio(self, job: Job) -> Path | None:
        """First submitted audio item, else the style's music track, else none."""
        for m in job.media:
            if m.type == MediaType.audio:
                return Path(m.path)
        if self.music is None:
            return None
        return self.music.resolve(self.catalog.music_for(job.style))
