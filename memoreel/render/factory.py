"""Backend selection, made once per process from config and environment."""

from __future__ import annotations

import os

from memoreel.render.base import RenderBackend
from memoreel.render.compositor import CompositorBackend
from memoreel.render.fallback import FallbackEncoder
from memoreel.utils.config import RenderingConfig
from memoreel.utils.logging import info, warn

BACKENDS = ("auto", "compositor", "fallback")


def create_backend(cfg: RenderingConfig | None = None) -> RenderBackend:
    """Build the configured backend. Env RENDER_BACKEND wins over config.

    ``auto`` probes the compositor and degrades to the fallback encoder with a
    warning when its ffmpeg filters are missing.
    """
    cfg = cfg or RenderingConfig()
    choice = os.environ.get("RENDER_BACKEND", "").strip().lower() or cfg.backend
    if choice not in BACKENDS:
        warn(f"[render] Unknown RENDER_BACKEND '{choice}', using auto")
        choice = "auto"

    compositor = CompositorBackend(crf=cfg.crf, preset=cfg.x264_preset, audio_bitrate=cfg.audio_bitrate)
    fallback = FallbackEncoder(
        duration=cfg.fallback_duration, crf=cfg.crf,
        preset=cfg.x264_preset, audio_bitrate=cfg.audio_bitrate,
    )

    if choice == "compositor":
        backend: RenderBackend = compositor
    elif choice == "fallback":
        backend = fallback
    else:
        ok, msg = compositor.check_available()
        if ok:
            backend = compositor
        else:
            warn(f"[render] Compositor unavailable ({msg}); using degraded fallback encoder")
            backend = fallback

    info(f"[render] Backend: {backend.name}{' (degraded)' if backend.degraded else ''}")
    return backend
