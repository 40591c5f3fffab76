"""Degraded single-pass renderer.

Used when the compositor's filters are unavailable. It encodes only the
first photo or video of the timeline for a fixed duration, scaled and padded
to the template resolution, optionally with the background track. Multi-clip
composition, transitions, zoom and title cards are all lost, so every result
is flagged ``degraded``.
"""

from __future__ import annotations

from pathlib import Path

from memoreel.jobs.errors import RenderError
from memoreel.render.base import (
    ProgressCallback,
    RenderBackend,
    RenderRequest,
    RenderResult,
    check_output,
    render_timeout,
    run_ffmpeg_with_progress,
)
from memoreel.utils.deps_check import check_ffmpeg
from memoreel.utils.logging import render_log, warn

DEFAULT_FALLBACK_DURATION = 10.0


class FallbackEncoder(RenderBackend):
    name = "fallback"
    degraded = True

    def __init__(self, duration: float = DEFAULT_FALLBACK_DURATION, crf: int = 23,
                 preset: str = "medium", audio_bitrate: str = "192k"):
        self.duration = duration
        self.crf = crf
        self.preset = preset
        self.audio_bitrate = audio_bitrate

    def check_available(self) -> tuple[bool, str]:
        ff = check_ffmpeg()
        if not ff.available:
            return False, ff.hint or "ffmpeg not found"
        return True, ff.version

    def build_cmd(self, request: RenderRequest) -> list[str]:
        media = [c for c in request.clips if not c.is_title]
        if not media:
            raise RenderError("No photos or videos to render")
        layer = media[0].layer
        base = request.template.base
        w, h = base.width + (base.width % 2), base.height + (base.height % 2)
        d = f"{self.duration:g}"

        cmd = ["ffmpeg", "-y", "-hide_banner"]
        if layer.type == "image":
            cmd += ["-loop", "1", "-framerate", str(base.fps), "-t", d, "-i", layer.path]
        else:
            cmd += ["-i", layer.path]
        if request.audio_path:
            cmd += ["-i", str(request.audio_path)]

        cmd += [
            "-vf",
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black,fps={base.fps},format=yuv420p",
            "-map", "0:v:0",
        ]
        if request.audio_path:
            cmd += ["-map", "1:a:0", "-c:a", "aac", "-b:a", self.audio_bitrate, "-shortest"]
        else:
            cmd += ["-an"]
        cmd += [
            "-c:v", "libx264", "-preset", self.preset, "-crf", str(self.crf),
            "-t", d,
            "-movflags", "+faststart",
            str(request.output_path),
        ]
        return cmd

    def render(self, request: RenderRequest, progress_cb: ProgressCallback | None = None) -> RenderResult:
        cmd = self.build_cmd(request)
        out = Path(request.output_path)
        warn(f"[fallback] Degraded render: first clip only, {self.duration:g}s → {out.name}")
        render_log(f"Fallback: first clip of {len(request.clips)}, {self.duration:g}s, style={request.template.name}")

        def percent(frac: float) -> None:
            # the encode reports whole percents
            if progress_cb:
                progress_cb(int(frac * 100) / 100)

        if progress_cb:
            progress_cb(0.0)
        elapsed = run_ffmpeg_with_progress(
            cmd, duration=self.duration,
            timeout_s=render_timeout(request, self.duration),
            description=f"fallback {out.name}", progress_cb=percent,
        )
        check_output(out)
        if progress_cb:
            progress_cb(1.0)
        return RenderResult(
            output_path=out, renderer=self.name, degraded=True,
            duration=self.duration, elapsed=elapsed, cmd=cmd,
        )
