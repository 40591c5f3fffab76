"""API integration tests: submit, status, templates, stats, health."""

from __future__ import annotations

import json
from unittest.mock import patch


def _payload(n=3, **extra):
    media = [
        {"id": f"p{i}", "type": "image", "path": f"/media/p{i}.jpg",
         "metadata": {"width": 1920, "height": 1080, "date": f"2024-06-0{i + 1}T10:00:00Z"}}
        for i in range(n)
    ]
    return {"media": media, **extra}


class TestJobsAPI:

    def test_submit_and_poll(self, client, queue):
        r = client.post("/api/jobs", json=_payload(style="classic", options={"targetDurationSeconds": 30}))
        assert r.status_code == 202
        body = r.json()
        assert body["status"] in ("queued", "processing")
        job_id = body["jobId"]

        assert queue.wait_idle(timeout=5)
        r = client.get(f"/api/jobs/{job_id}")
        assert r.status_code == 200
        status = r.json()
        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["outputFilename"] == f"memory_{job_id}.mp4"
        assert status["error"] is None
        assert status["degraded"] is False
        assert status["renderer"] == "fake"
        assert status["style"] == "classic"
        assert status["targetDuration"] == 30

    def test_too_few_media_is_400(self, client):
        r = client.post("/api/jobs", json=_payload(n=1))
        assert r.status_code == 400
        assert "At least 2" in r.json()["detail"]

    def test_non_positive_duration_is_400(self, client):
        r = client.post("/api/jobs", json=_payload(options={"targetDurationSeconds": -5}))
        assert r.status_code == 400

    def test_nan_duration_is_400(self, client, queue):
        body = json.dumps(_payload(options={"targetDurationSeconds": 0})).replace(
            '"targetDurationSeconds": 0', '"targetDurationSeconds": NaN')
        r = client.post("/api/jobs", content=body, headers={"Content-Type": "application/json"})
        assert r.status_code == 400
        assert queue.stats()["queueLength"] == 0

    def test_malformed_body_is_422(self, client):
        r = client.post("/api/jobs", json={"media": "not-a-list"})
        assert r.status_code == 422

    def test_unknown_job_is_404(self, client):
        assert client.get("/api/jobs/does-not-exist").status_code == 404

    def test_default_duration_used(self, client, queue):
        r = client.post("/api/jobs", json=_payload())
        queue.wait_idle(timeout=5)
        assert queue.get_status(r.json()["jobId"]).options.target_duration == 90


class TestDiscoveryAPI:

    def test_templates(self, client):
        r = client.get("/api/templates")
        assert r.status_code == 200
        templates = r.json()["templates"]
        assert [t["id"] for t in templates] == [
            "memories", "nostalgia", "dynamic", "smooth", "minimal", "classic",
        ]
        assert templates[0]["displayName"] == "Memories"

    def test_stats(self, client):
        r = client.get("/api/stats")
        assert r.status_code == 200
        body = r.json()
        assert body["processing"] is False
        assert body["queueLength"] == 0
        assert body["backend"] == "fake"

    def test_health(self, client):
        from memoreel.utils.deps_check import DepStatus
        with patch("memoreel.utils.deps_check.check_ffmpeg", return_value=DepStatus("ffmpeg", True)):
            r = client.get("/api/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "ok"
        assert body["ffmpeg"] is True
        assert body["backend"] == "fake"
        assert body["degraded"] is False
