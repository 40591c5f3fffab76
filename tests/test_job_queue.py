"""Tests for the sequential render queue."""

from __future__ import annotations

import errno
import threading

import pytest


def _collect(queue):
    events = []
    lock = threading.Lock()

    def on_event(ev):
        with lock:
            events.append(ev)

    queue.publisher.subscribe(on_event)
    return events


# ── Submission ───────────────────────────────────────────────────────────────

class TestSubmit:

    def test_returns_queryable_job_immediately(self, make_queue, backend_factory, five_images):
        gate = threading.Event()
        q = make_queue(backend_factory(gate=gate))
        job = q.submit(five_images, "memories")
        try:
            status = q.get_status(job.id)
            assert status is not None
            assert status.status.value in ("queued", "processing")
        finally:
            gate.set()
        assert q.wait_idle(timeout=5)

    def test_fewer_than_two_media_rejected(self, queue, media_factory):
        from memoreel.jobs.errors import ValidationError
        with pytest.raises(ValidationError):
            queue.submit([media_factory(0)], "memories")
        assert queue.stats()["queueLength"] == 0

    def test_items_without_location_do_not_count(self, queue, media_factory):
        from memoreel.jobs.errors import ValidationError
        with pytest.raises(ValidationError):
            queue.submit([media_factory(0), media_factory(1, path="")], "memories")

    def test_non_positive_duration_rejected(self, queue, five_images):
        from memoreel.jobs.errors import ValidationError
        from memoreel.jobs.models import JobOptions
        with pytest.raises(ValidationError):
            queue.submit(five_images, "memories", JobOptions(target_duration=0))

    @pytest.mark.parametrize("target", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_duration_rejected(self, queue, five_images, target):
        from memoreel.jobs.errors import ValidationError
        from memoreel.jobs.models import JobOptions
        with pytest.raises(ValidationError):
            queue.submit(five_images, "memories", JobOptions(target_duration=target))
        assert queue.stats()["queueLength"] == 0
        assert queue.stats()["processing"] is False

    def test_accepts_raw_descriptor_dicts(self, queue):
        job = queue.submit([
            {"id": "a", "type": "image", "path": "/a.jpg"},
            {"id": "b", "type": "image", "path": "/b.jpg", "metadata": "garbage"},
        ])
        assert queue.wait_idle(timeout=5)
        assert queue.get_status(job.id).status.value == "completed"

    def test_unknown_style_resolves_to_default(self, queue, five_images):
        job = queue.submit(five_images, "does-not-exist")
        assert job.style == "memories"
        queue.wait_idle(timeout=5)

    def test_ids_are_unique(self, queue, five_images):
        ids = {queue.submit(five_images).id for _ in range(5)}
        queue.wait_idle(timeout=5)
        assert len(ids) == 5

    def test_colliding_id_factory_is_retried(self, make_queue, backend, five_images):
        ids = iter(["dup", "dup", "fresh"])
        q = make_queue(backend, id_factory=lambda: next(ids))
        first = q.submit(five_images)
        second = q.submit(five_images)
        q.wait_idle(timeout=5)
        assert (first.id, second.id) == ("dup", "fresh")


# ── Processing ───────────────────────────────────────────────────────────────

class TestProcessing:

    def test_completed_job(self, queue, backend, five_images, tmp_path):
        job = queue.submit(five_images, "classic")
        assert queue.wait_idle(timeout=5)
        done = queue.get_status(job.id)
        assert done.status.value == "completed"
        assert done.progress == 100
        assert done.output_filename == f"memory_{job.id}.mp4"
        assert (tmp_path / "outputs" / done.output_filename).exists()
        assert done.renderer == "fake"
        assert done.degraded is False
        assert done.selected_count == 5

    def test_pipeline_feeds_backend_full_timeline(self, queue, backend, five_images):
        from memoreel.jobs.models import JobOptions
        queue.submit(five_images, "memories", JobOptions(target_duration=20))
        queue.wait_idle(timeout=5)
        req = backend.requests[0]
        assert req.template.name == "memories"
        media_clips = [c for c in req.clips if not c.is_title]
        assert [c.layer.media_id for c in media_clips] == [m.id for m in five_images]
        assert sum(1 for c in media_clips if c.transition) == 4
        assert req.clips[0].is_title and req.clips[-1].is_title

    def test_one_job_at_a_time_in_fifo_order(self, queue, backend, five_images):
        jobs = [queue.submit(five_images) for _ in range(4)]
        assert queue.wait_idle(timeout=10)
        assert backend.max_active == 1
        rendered = [r.output_path.name for r in backend.requests]
        assert rendered == [f"memory_{j.id}.mp4" for j in jobs]

    def test_second_job_waits_while_first_renders(self, make_queue, backend_factory, five_images):
        gate = threading.Event()
        q = make_queue(backend_factory(gate=gate))
        first = q.submit(five_images)
        second = q.submit(five_images)
        try:
            assert q.get_status(second.id).status.value == "queued"
            assert q.stats()["queueLength"] >= 1
        finally:
            gate.set()
        assert q.wait_idle(timeout=5)
        assert q.get_status(first.id).status.value == "completed"
        assert q.get_status(second.id).status.value == "completed"

    def test_failure_does_not_stop_the_queue(self, make_queue, backend_factory, five_images):
        q = make_queue(backend_factory(fail_on={0}))
        bad = q.submit(five_images)
        good = q.submit(five_images)
        assert q.wait_idle(timeout=5)
        failed = q.get_status(bad.id)
        assert failed.status.value == "failed"
        assert failed.error == "render 0 exploded"
        assert q.get_status(good.id).status.value == "completed"

    def test_os_error_mapped_to_message(self, make_queue, five_images):
        class FullDisk:
            name = "full"
            degraded = False

            def render(self, request, progress_cb=None):
                raise OSError(errno.ENOSPC, "No space left on device")

        q = make_queue(FullDisk())
        job = q.submit(five_images)
        q.wait_idle(timeout=5)
        assert q.get_status(job.id).error == "Server storage is full"

    def test_empty_exception_message_uses_class_name(self, make_queue, five_images):
        class Broken:
            name = "broken"
            degraded = False

            def render(self, request, progress_cb=None):
                raise KeyError()

        q = make_queue(Broken())
        job = q.submit(five_images)
        q.wait_idle(timeout=5)
        assert q.get_status(job.id).error == "KeyError"

    def test_audio_only_submission_fails_with_message(self, queue, media_factory):
        job = queue.submit([media_factory(0, "audio"), media_factory(1, "audio")])
        queue.wait_idle(timeout=5)
        failed = queue.get_status(job.id)
        assert failed.status.value == "failed"
        assert "photos or videos" in failed.error

    def test_degraded_backend_flags_job(self, make_queue, backend_factory, five_images):
        q = make_queue(backend_factory(degraded=True))
        job = q.submit(five_images)
        q.wait_idle(timeout=5)
        done = q.get_status(job.id)
        assert done.degraded is True
        assert done.renderer == "fallback"

    def test_unwritable_output_dir_fails_job(self, make_queue, backend, five_images, tmp_path):
        (tmp_path / "outputs").write_text("not a directory")
        q = make_queue(backend)
        job = q.submit(five_images)
        q.wait_idle(timeout=5)
        failed = q.get_status(job.id)
        assert failed.status.value == "failed"
        assert "output directory" in failed.error
        assert backend.requests == []


# ── Background audio ─────────────────────────────────────────────────────────

class TestBackgroundAudio:

    def test_submitted_audio_wins(self, queue, backend, five_images, media_factory):
        song = media_factory(9, "audio")
        queue.submit(five_images + [song])
        queue.wait_idle(timeout=5)
        assert str(backend.requests[0].audio_path) == song.path

    def test_style_music_from_library(self, queue, backend, five_images, tmp_path):
        music = tmp_path / "music"
        music.mkdir()
        (music / "nostalgic-strings.mp3").write_bytes(b"")
        queue.submit(five_images, "nostalgia")
        queue.wait_idle(timeout=5)
        assert backend.requests[0].audio_path == music / "nostalgic-strings.mp3"

    def test_no_music_available(self, queue, backend, five_images):
        queue.submit(five_images, "nostalgia")
        queue.wait_idle(timeout=5)
        assert backend.requests[0].audio_path is None


# ── Events ───────────────────────────────────────────────────────────────────

class TestEvents:

    def test_lifecycle_and_monotonic_progress(self, queue, five_images):
        events = _collect(queue)
        job = queue.submit(five_images)
        queue.wait_idle(timeout=5)
        mine = [e for e in events if e.job_id == job.id]
        statuses = [e.status for e in mine]
        assert statuses[0] == "queued"
        assert statuses[-1] == "completed"
        assert statuses.count("completed") == 1
        progress = [e.progress for e in mine]
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert mine[-1].output_filename == f"memory_{job.id}.mp4"

    def test_failed_event_carries_error(self, make_queue, backend_factory, five_images):
        q = make_queue(backend_factory(fail_on={0}))
        events = _collect(q)
        q.submit(five_images)
        q.wait_idle(timeout=5)
        assert events[-1].status == "failed"
        assert events[-1].error == "render 0 exploded"

    def test_backward_progress_is_ignored(self, make_queue, backend_factory, five_images):
        q = make_queue(backend_factory(fractions=(0.8, 0.2, 0.5, 0.9)))
        events = _collect(q)
        q.submit(five_images)
        q.wait_idle(timeout=5)
        progress = [e.progress for e in events]
        assert progress == sorted(progress)


# ── Queries ──────────────────────────────────────────────────────────────────

class TestQueries:

    def test_unknown_id(self, queue):
        assert queue.get_status("nope") is None

    def test_finished_job_expires_after_retention(self, queue, clock, five_images):
        job = queue.submit(five_images)
        queue.wait_idle(timeout=5)
        clock.advance(24 * 3600)
        assert queue.get_status(job.id) is not None
        clock.advance(1)
        assert queue.get_status(job.id) is None

    def test_stats_idle(self, queue, five_images):
        queue.submit(five_images)
        queue.wait_idle(timeout=5)
        stats = queue.stats()
        assert stats == {
            "processing": False,
            "queueLength": 0,
            "completedCount": 1,
            "currentJob": None,
            "backend": "fake",
            "degraded": False,
        }

    def test_stats_while_processing(self, make_queue, backend_factory, five_images):
        gate = threading.Event()
        q = make_queue(backend_factory(gate=gate))
        job = q.submit(five_images, "dynamic")
        try:
            for _ in range(100):
                if q.stats()["processing"]:
                    break
                threading.Event().wait(0.01)
            current = q.stats()["currentJob"]
            assert current["id"] == job.id
            assert current["style"] == "dynamic"
            assert current["filesCount"] == 5
        finally:
            gate.set()
        q.wait_idle(timeout=5)

    def test_wait_idle_times_out_while_busy(self, make_queue, backend_factory, five_images):
        gate = threading.Event()
        q = make_queue(backend_factory(gate=gate))
        q.submit(five_images)
        try:
            assert q.wait_idle(timeout=0.05) is False
        finally:
            gate.set()
        assert q.wait_idle(timeout=5) is True
