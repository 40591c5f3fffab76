"""Tests for progress publish/subscribe."""

from __future__ import annotations

import asyncio

import pytest


def _event(progress=10, status="processing"):
    from memoreel.jobs.events import ProgressEvent
    return ProgressEvent(job_id="j1", status=status, progress=progress)


class TestProgressPublisher:

    def test_delivers_to_every_subscriber(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()
        a, b = [], []
        pub.subscribe(a.append)
        pub.subscribe(b.append)
        pub.publish(_event())
        assert len(a) == len(b) == 1

    def test_no_replay_for_late_subscribers(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()
        pub.publish(_event())
        late = []
        pub.subscribe(late.append)
        assert late == []

    def test_unsubscribe(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()
        got = []
        with pub.subscribe(got.append):
            pub.publish(_event(1))
        pub.publish(_event(2))
        assert [e.progress for e in got] == [1]
        assert pub.subscriber_count == 0

    def test_failing_subscriber_does_not_affect_others(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()

        def boom(_):
            raise RuntimeError("subscriber crashed")

        got = []
        pub.subscribe(boom)
        pub.subscribe(got.append)
        pub.publish(_event())
        assert len(got) == 1

    def test_event_dict(self):
        from memoreel.jobs.events import ProgressEvent
        d = ProgressEvent("j1", "completed", 100, output_filename="memory_j1.mp4", degraded=True).to_dict()
        assert d["type"] == "generation-progress"
        assert d["jobId"] == "j1"
        assert d["outputFilename"] == "memory_j1.mp4"
        assert d["degraded"] is True
        assert "timestamp" in d

    def test_from_job(self):
        from memoreel.jobs.events import ProgressEvent
        from memoreel.jobs.models import Job, JobStatus
        job = Job(id="x", media=(), style="memories", status=JobStatus.failed, error="bad")
        ev = ProgressEvent.from_job(job)
        assert (ev.status, ev.error, ev.output_filename) == ("failed", "bad", None)


class TestAsyncSubscription:

    @pytest.mark.asyncio
    async def test_events_reach_asyncio_queue(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()
        q, sub = pub.subscribe_async()
        await asyncio.get_running_loop().run_in_executor(None, pub.publish, _event(42))
        ev = await asyncio.wait_for(q.get(), timeout=2)
        assert ev["progress"] == 42
        sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        from memoreel.jobs.events import ProgressPublisher
        pub = ProgressPublisher()
        q, sub = pub.subscribe_async(maxsize=1)
        pub.publish(_event(1))
        pub.publish(_event(2))
        await asyncio.sleep(0.05)
        assert q.qsize() == 1
        assert (await q.get())["progress"] == 1
        sub.unsubscribe()
