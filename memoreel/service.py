"""Wiring: build a ready-to-use JobQueue from the app config."""

from __future__ import annotations

from memoreel.jobs.events import ProgressPublisher
from memoreel.jobs.queue import JobQueue
from memoreel.jobs.store import JobStore
from memoreel.render.base import RenderBackend
from memoreel.render.factory import create_backend
from memoreel.storage import MusicLibrary, OutputStorage
from memoreel.templates.catalog import TemplateCatalog
from memoreel.utils.config import AppConfig
from memoreel.utils.media_executor import configure_media_executor


def build_queue(cfg: AppConfig, backend: RenderBackend | None = None) -> JobQueue:
    r = cfg.rendering
    configure_media_executor(ffmpeg_threads=r.ffmpeg_threads, nice=r.nice, max_concurrent=r.max_concurrent)
    return JobQueue(
        backend or create_backend(r),
        TemplateCatalog(),
        storage=OutputStorage(r.output_dir),
        music=MusicLibrary(r.music_dir),
        publisher=ProgressPublisher(),
        store=JobStore(retention_s=cfg.queue.retention_hours * 3600),
        selection=cfg.selection,
        default_target_duration=cfg.queue.default_target_duration,
        render_timeout_s=r.timeout_s,
    )
