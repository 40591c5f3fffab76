"""Application factory: FastAPI app bound to one JobQueue."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from memoreel.api.routes import VERSION, router
from memoreel.jobs.queue import JobQueue
from memoreel.utils.config import AppConfig, load_config


def create_app(cfg: AppConfig | None = None, queue: JobQueue | None = None) -> FastAPI:
    """Build the app. A prebuilt ``queue`` skips backend probing (tests)."""

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        from memoreel.utils.deps_check import check_all, print_dep_status
        from memoreel.utils.logging import info, success

        config = cfg or load_config()
        if queue is None:
            from memoreel.service import build_queue
            print_dep_status(check_all())
            application.state.queue = build_queue(config)
        q: JobQueue = application.state.queue
        q.store.start_sweeper(config.queue.sweep_interval_s)
        info(f"Render backend: {q.backend.name}" + (" (degraded)" if q.backend.degraded else ""))
        success(f"memoreel {VERSION} ready")

        yield  # app runs here

        q.store.stop_sweeper()

    app = FastAPI(
        title="memoreel",
        description="Turns uploaded photos and clips into a styled memory video",
        version=VERSION,
        lifespan=lifespan,
    )
    if queue is not None:
        app.state.queue = queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app
