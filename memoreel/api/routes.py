"""FastAPI routes: submit, status, templates, progress stream, stats."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from memoreel.api.schemas import (
    HealthResponse, JobStatusResponse, SubmitRequest, SubmitResponse, TemplatesResponse,
)
from memoreel.jobs.errors import ValidationError
from memoreel.jobs.models import JobOptions
from memoreel.jobs.queue import JobQueue
from memoreel.utils.logging import warn

VERSION = "1.0.0"
HEARTBEAT_S = 30.0

router = APIRouter(prefix="/api", tags=["api"])


def _queue(request: Request) -> JobQueue:
    return request.app.state.queue


# ── Health / stats ────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    from memoreel.utils.deps_check import check_ffmpeg
    q = _queue(request)
    return HealthResponse(
        status="ok", version=VERSION, ffmpeg=check_ffmpeg().available,
        backend=q.backend.name, degraded=q.backend.degraded,
    )


@router.get("/stats")
async def stats(request: Request):
    return _queue(request).stats()


@router.get("/templates", response_model=TemplatesResponse)
async def list_templates(request: Request):
    return {"templates": _queue(request).catalog.list_templates()}


# ── Jobs ──────────────────────────────────────────────────────────────────────

@router.post("/jobs", response_model=SubmitResponse, status_code=202)
async def submit_job(body: SubmitRequest, request: Request):
    q = _queue(request)
    target = body.options.target_duration
    options = JobOptions(target_duration=q.default_target_duration if target is None else target)
    try:
        job = q.submit(body.media, body.style, options)
    except ValidationError as e:
        warn(f"[api] Rejected submission: {e}")
        raise HTTPException(400, str(e))
    return SubmitResponse(jobId=job.id, status=job.status.value)


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def job_status(job_id: str, request: Request):
    job = _queue(request).get_status(job_id)
    if not job:
        raise HTTPException(404, "Job not found")
    return job.to_dict()


# ── SSE ───────────────────────────────────────────────────────────────────────

@router.get("/events")
async def sse_events(request: Request):
    q, sub = _queue(request).publisher.subscribe_async()

    async def gen():
        try:
            yield f"data: {json.dumps({'type': 'connected'})}\n\n"
            while True:
                try:
                    ev = await asyncio.wait_for(q.get(), timeout=HEARTBEAT_S)
                    yield f"data: {json.dumps(ev)}\n\n"
                except asyncio.TimeoutError:
                    yield f"data: {json.dumps({'type': 'heartbeat'})}\n\n"
        finally:
            sub.unsubscribe()

    return StreamingResponse(gen(), media_type="text/event-stream",
                             headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})
