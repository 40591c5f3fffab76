"""Shared test fixtures.

Provides:
- MediaDescriptor factory with deterministic capture dates
- Fake render backends (no ffmpeg is ever started)
- JobQueue wired to isolated output storage and a seeded rng
- FastAPI TestClient bound to that queue
"""

from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# ── Media factory ────────────────────────────────────────────────────────────

def make_media(idx: int, type: str = "image", *, duration: float = 0.0,
               captured_offset: float | None = None, has_audio: bool = False,
               width: int = 1920, height: int = 1080, path: str | None = None):
    """Media item whose capture time is BASE_TIME + captured_offset minutes."""
    from memoreel.media.descriptor import MediaDescriptor, MediaMetadata, MediaType
    offset = idx if captured_offset is None else captured_offset
    ext = {"image": "jpg", "video": "mp4", "audio": "mp3"}.get(type, "bin")
    return MediaDescriptor(
        id=f"{type}-{idx}",
        type=MediaType(type),
        path=path if path is not None else f"/media/{type}-{idx}.{ext}",
        filename=f"{type}-{idx}.{ext}",
        uploaded_at=BASE_TIME + timedelta(days=1),
        metadata=MediaMetadata(
            width=width, height=height, duration=duration,
            captured_at=BASE_TIME + timedelta(minutes=offset),
            has_audio=has_audio,
        ),
    )


@pytest.fixture
def media_factory():
    return make_media


@pytest.fixture
def five_images():
    return [make_media(i) for i in range(5)]


# ── Fake backends ────────────────────────────────────────────────────────────

class FakeBackend:
    """Records requests and writes a tiny output file instead of running ffmpeg."""

    name = "fake"
    degraded = False

    def __init__(self, fail_on: set[int] | None = None, gate: threading.Event | None = None,
                 fractions: tuple[float, ...] = (0.25, 0.5, 0.75)):
        self.fail_on = fail_on or set()
        self.gate = gate
        self.fractions = fractions
        self.requests = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def check_available(self):
        return True, "fake"

    def render(self, request, progress_cb=None):
        from memoreel.jobs.errors import RenderError
        from memoreel.render.base import RenderResult

        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            call = len(self.requests)
            self.requests.append(request)
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            if call in self.fail_on:
                raise RenderError(f"render {call} exploded")
            for f in self.fractions:
                if progress_cb:
                    progress_cb(f)
            Path(request.output_path).write_bytes(b"\x00")
            return RenderResult(
                output_path=Path(request.output_path), renderer=self.name,
                degraded=self.degraded, duration=request.duration,
            )
        finally:
            with self._lock:
                self.active -= 1


class FakeDegradedBackend(FakeBackend):
    name = "fallback"
    degraded = True


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def backend_factory():
    """Build a FakeBackend with failures, a gate or the degraded flag."""
    def _make(degraded: bool = False, **kwargs):
        cls = FakeDegradedBackend if degraded else FakeBackend
        return cls(**kwargs)
    return _make


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ── Queue ────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_queue(tmp_path, clock):
    """Build a JobQueue around any backend with isolated storage."""
    from memoreel.jobs.queue import JobQueue
    from memoreel.jobs.store import JobStore
    from memoreel.storage import MusicLibrary, OutputStorage
    from memoreel.templates.catalog import TemplateCatalog

    def _make(backend, **kwargs):
        kwargs.setdefault("store", JobStore(retention_s=24 * 3600, clock=clock))
        kwargs.setdefault("rng", random.Random(7))
        return JobQueue(
            backend, TemplateCatalog(),
            storage=OutputStorage(tmp_path / "outputs"),
            music=MusicLibrary(tmp_path / "music"),
            clock=clock,
            **kwargs,
        )
    return _make


@pytest.fixture
def queue(make_queue, backend):
    return make_queue(backend)


# ── TestClient ───────────────────────────────────────────────────────────────

@pytest.fixture
def client(queue):
    """FastAPI TestClient bound to the fake-backend queue."""
    from memoreel.api.app import create_app
    app = create_app(queue=queue)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
