"""Full timeline renderer: one ffmpeg filter graph for the whole clip list.

Filter graph structure:
  - Input per clip: looped still (image), trimmed file (video) or a
    ``color`` source (title card)
  - Per clip: scale/pad to the template resolution, Ken-Burns zoompan for
    stills, drawtext for titles, then fps/format/timebase normalisation
  - Joins: xfade where the previous clip carries a transition, concat otherwise
  - Audio: clip audio delayed to each clip's start + looped background
    track → amix → [aout]
"""

from __future__ import annotations

import re
from pathlib import Path

from memoreel.render.base import (
    ProgressCallback,
    RenderBackend,
    RenderRequest,
    RenderResult,
    check_output,
    render_timeout,
    run_ffmpeg_with_progress,
)
from memoreel.jobs.errors import RenderError
from memoreel.templates.catalog import Template
from memoreel.timeline.builder import Clip, Layer, effective_transition
from memoreel.utils.deps_check import check_compositor_filters, check_ffmpeg
from memoreel.utils.logging import info, render_log

# template transition name → ffmpeg xfade transition
XFADE_TRANSITIONS: dict[str, str] = {
    "fade": "fade",
    "crossfade": "dissolve",
    "directional-left": "slideleft",
    "directional-right": "slideright",
    "directional-up": "slideup",
    "directional-down": "slidedown",
}

MUSIC_FADE_IN = 1.0
MUSIC_FADE_OUT = 2.0

_RGBA_RE = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*([\d.]+)\s*)?\)")


def _ffmpeg_color(value: str) -> str:
    """CSS-ish colour (#rgb, #rrggbb, rgba(...), name) → ffmpeg colour syntax."""
    v = value.strip()
    m = _RGBA_RE.fullmatch(v)
    if m:
        r, g, b = (min(255, int(x)) for x in m.group(1, 2, 3))
        color = f"0x{r:02x}{g:02x}{b:02x}"
        if m.group(4) is not None:
            color += f"@{float(m.group(4)):g}"
        return color
    if v.startswith("#"):
        hexpart = v[1:]
        if len(hexpart) == 3:
            hexpart = "".join(c * 2 for c in hexpart)
        return f"0x{hexpart.lower()}"
    return v or "black"


def _escape_drawtext(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace("'", "’")
        .replace(":", "\\:")
        .replace("%", "\\%")
        .replace(",", "\\,")
    )


def _zoom_direction(layer: Layer, index: int) -> str | None:
    """Resolve 'random' into an in/out alternation keyed on clip position."""
    if not layer.zoom_direction or layer.zoom_amount <= 0:
        return None
    if layer.zoom_direction == "random":
        return "in" if index % 2 == 0 else "out"
    return layer.zoom_direction


def _zoompan_filter(direction: str, amount: float, duration: float, w: int, h: int, fps: int) -> str:
    frames = max(1, round(duration * fps))
    if direction == "in":
        z = f"1+{amount:g}*on/{frames}"
    else:
        z = f"1+{amount:g}-{amount:g}*on/{frames}"
    return (
        f"zoompan=z='{z}':x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
        f":d=1:s={w}x{h}:fps={fps}"
    )


def _drawtext_filter(layer: Layer, h: int) -> str:
    y = {"top": "h/8", "bottom": "h-text_h-h/8"}.get(layer.position, "(h-text_h)/2")
    return (
        f"drawtext=text='{_escape_drawtext(layer.text)}'"
        f":fontcolor={_ffmpeg_color(layer.text_color)}:fontsize={max(12, h // 12)}"
        f":x=(w-text_w)/2:y={y}"
    )


def clip_starts(clips: list[Clip]) -> tuple[list[float], float]:
    """Start time of every clip on the output timeline, plus total duration."""
    starts: list[float] = []
    cursor = 0.0
    for i, clip in enumerate(clips):
        if i > 0:
            cursor -= effective_transition(clips[i - 1], clip)
        starts.append(cursor)
        cursor += clip.duration
    return starts, cursor


def build_compositor_cmd(
    request: RenderRequest,
    *,
    crf: int = 20,
    preset: str = "medium",
    audio_bitrate: str = "192k",
) -> list[str]:
    clips = request.clips
    if not clips:
        raise RenderError("Timeline is empty")
    tpl: Template = request.template
    w, h = tpl.base.width + (tpl.base.width % 2), tpl.base.height + (tpl.base.height % 2)
    fps = tpl.base.fps

    inputs: list[str] = []
    filters: list[str] = []

    # ── Inputs + per-clip video chain ──
    for i, clip in enumerate(clips):
        layer = clip.layer
        d = f"{clip.duration:.3f}"
        if layer.is_title:
            bg = _ffmpeg_color(layer.background_color)
            inputs.extend(["-f", "lavfi", "-t", d, "-i", f"color=c={bg}:s={w}x{h}:r={fps}"])
            chain = []
            if layer.text:
                chain.append(_drawtext_filter(layer, h))
        elif layer.type == "image":
            inputs.extend(["-loop", "1", "-framerate", str(fps), "-t", d, "-i", layer.path])
            chain = [
                f"scale={w}:{h}:force_original_aspect_ratio=decrease",
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black",
            ]
            direction = _zoom_direction(layer, i)
            if direction:
                chain.append(_zoompan_filter(direction, layer.zoom_amount, clip.duration, w, h, fps))
        else:
            inputs.extend(["-t", d, "-i", layer.path])
            chain = [
                f"scale={w}:{h}:force_original_aspect_ratio=decrease",
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black",
            ]
        chain += [
            "setsar=1",
            f"fps={fps}",
            "format=yuv420p",
            # short or unknown-length sources are held on their last frame
            f"tpad=stop_mode=clone:stop_duration={d}",
            f"trim=duration={d}",
            "settb=AVTB",
            "setpts=PTS-STARTPTS",
        ]
        filters.append(f"[{i}:v]{','.join(chain)}[v{i}]")

    # ── Joins ──
    starts, total = clip_starts(clips)
    acc = "v0"
    for i in range(1, len(clips)):
        prev = clips[i - 1]
        overlap = effective_transition(prev, clips[i])
        out = f"x{i}"
        if overlap > 0 and prev.transition is not None:
            name = XFADE_TRANSITIONS.get(prev.transition.name, "fade")
            filters.append(
                f"[{acc}][v{i}]xfade=transition={name}:duration={overlap:.3f}"
                f":offset={starts[i]:.3f}[{out}]"
            )
        else:
            filters.append(f"[{acc}][v{i}]concat=n=2:v=1:a=0[{out}]")
        acc = out
    filters.append(f"[{acc}]null[vout]")

    # ── Audio ──
    audio_labels: list[str] = []
    for i, clip in enumerate(clips):
        layer = clip.layer
        if layer.type != "video" or not layer.has_audio or layer.mix_volume <= 0:
            continue
        delay_ms = int(round(starts[i] * 1000))
        filters.append(
            f"[{i}:a]apad=whole_dur={clip.duration:.3f},atrim=0:{clip.duration:.3f},asetpts=PTS-STARTPTS,"
            f"volume={layer.mix_volume:g},adelay=delays={delay_ms}:all=1[a{i}]"
        )
        audio_labels.append(f"a{i}")

    if request.audio_path:
        music_idx = len(clips)
        inputs.extend(["-stream_loop", "-1", "-i", str(request.audio_path)])
        chain = [f"atrim=0:{total:.3f}", "asetpts=PTS-STARTPTS", f"volume={tpl.base.audio_mix_volume:g}"]
        if tpl.base.audio_norm:
            chain.append("loudnorm")
        chain.append(f"afade=t=in:st=0:d={MUSIC_FADE_IN:g}")
        if total > MUSIC_FADE_OUT:
            chain.append(f"afade=t=out:st={total - MUSIC_FADE_OUT:.3f}:d={MUSIC_FADE_OUT:g}")
        filters.append(f"[{music_idx}:a]{','.join(chain)}[music]")
        audio_labels.append("music")

    if len(audio_labels) > 1:
        joined = "".join(f"[{a}]" for a in audio_labels)
        filters.append(
            f"{joined}amix=inputs={len(audio_labels)}:duration=longest:normalize=0[aout]"
        )
    elif audio_labels:
        filters.append(f"[{audio_labels[0]}]anull[aout]")

    cmd = ["ffmpeg", "-y", "-hide_banner", *inputs,
           "-filter_complex", ";".join(filters),
           "-map", "[vout]"]
    if audio_labels:
        cmd += ["-map", "[aout]", "-c:a", "aac", "-b:a", audio_bitrate]
    else:
        cmd += ["-an"]
    cmd += [
        "-c:v", "libx264", "-preset", preset, "-crf", str(crf),
        "-pix_fmt", "yuv420p", "-r", str(fps),
        "-t", f"{total:.3f}",
        "-movflags", "+faststart",
        str(request.output_path),
    ]
    return cmd


class CompositorBackend(RenderBackend):
    """Renders the full timeline with transitions, zoom, titles and music."""

    name = "compositor"
    degraded = False

    def __init__(self, crf: int = 20, preset: str = "medium", audio_bitrate: str = "192k"):
        self.crf = crf
        self.preset = preset
        self.audio_bitrate = audio_bitrate

    def check_available(self) -> tuple[bool, str]:
        ff = check_ffmpeg()
        if not ff.available:
            return False, ff.hint or "ffmpeg not found"
        filters = check_compositor_filters()
        if not filters.available:
            return False, filters.hint
        return True, ff.version

    def render(self, request: RenderRequest, progress_cb: ProgressCallback | None = None) -> RenderResult:
        if not any(not c.is_title for c in request.clips):
            raise RenderError("No photos or videos to render")

        cmd = build_compositor_cmd(
            request, crf=self.crf, preset=self.preset, audio_bitrate=self.audio_bitrate,
        )
        duration = request.duration
        out = Path(request.output_path)
        info(f"[compositor] Rendering {len(request.clips)} clips ({duration:.1f}s) → {out.name}")
        render_log(f"Compositor: {len(request.clips)} clips, style={request.template.name}, {duration:.1f}s")

        if progress_cb:
            progress_cb(0.0)
        elapsed = run_ffmpeg_with_progress(
            cmd, duration=duration, timeout_s=render_timeout(request, duration),
            description=f"compositor {out.name}", progress_cb=progress_cb,
        )
        check_output(out)
        if progress_cb:
            progress_cb(1.0)
        return RenderResult(
            output_path=out, renderer=self.name, degraded=False,
            duration=duration, elapsed=elapsed, cmd=cmd,
        )
