"""Configuration management with YAML support and pydantic models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field


class QueueConfig(BaseModel):
    retention_hours: float = Field(default=24.0, gt=0)
    sweep_interval_s: float = Field(default=3600.0, gt=0)
    default_target_duration: float = Field(default=90.0, gt=0)


class SelectionConfig(BaseModel):
    video_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    seed: int | None = None  # fixed seed = reproducible selections


class RenderingConfig(BaseModel):
    backend: Literal["auto", "compositor", "fallback"] = "auto"
    output_dir: str = "data/outputs"
    music_dir: str = "assets/music"
    fallback_duration: float = Field(default=10.0, gt=0)
    timeout_s: float = 0          # 0 = max(600, 5 × timeline duration)
    crf: int = Field(default=20, ge=0, le=51)
    x264_preset: str = "medium"
    audio_bitrate: str = "192k"
    ffmpeg_threads: int = 0       # 0 = keep executor default. Env: FFMPEG_THREADS
    nice: int = 10                # Process priority (Linux, 0-19). Env: MEDIA_NICE
    max_concurrent: int = 1       # Max parallel ffmpeg processes. Env: MAX_MEDIA_JOBS


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class AppConfig(BaseModel):
    queue: QueueConfig = QueueConfig()
    selection: SelectionConfig = SelectionConfig()
    rendering: RenderingConfig = RenderingConfig()
    server: ServerConfig = ServerConfig()


def load_config(path: str | Path | None = None) -> AppConfig:
    if path is None:
        env_path = os.environ.get("MEMOREEL_CONFIG")
        candidates = [Path(env_path)] if env_path else []
        candidates += [Path("config.yaml"), Path("config.yml"), Path("memoreel.yaml")]
        for c in candidates:
            if c.exists():
                path = c
                break
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return AppConfig(**data)
    return AppConfig()


def merge_cli_overrides(cfg: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    data = cfg.model_dump()
    for key, val in overrides.items():
        if val is None:
            continue
        parts = key.split(".")
        d = data
        for p in parts[:-1]:
            d = d.setdefault(p, {})
        d[parts[-1]] = val
    return AppConfig(**data)


DEFAULT_CONFIG_YAML = """\
# memoreel configuration

queue:
  retention_hours: 24        # completed jobs stay queryable this long
  sweep_interval_s: 3600     # how often expired jobs are evicted
  default_target_duration: 90

selection:
  video_weight: 0.4          # chance to prefer a video at each selection step
  seed: null                 # integer = reproducible selections

rendering:
  backend: auto              # auto | compositor | fallback. Env: RENDER_BACKEND
  output_dir: data/outputs
  music_dir: assets/music
  fallback_duration: 10      # seconds rendered by the fallback encoder
  timeout_s: 0               # 0 = max(600, 5 x timeline duration)
  crf: 20
  x264_preset: medium
  audio_bitrate: 192k
  ffmpeg_threads: 0          # 0 = executor default. Env: FFMPEG_THREADS
  nice: 10                   # Process priority 0-19 (Linux only). Env: MEDIA_NICE
  max_concurrent: 1          # Max parallel ffmpeg processes. Env: MAX_MEDIA_JOBS

server:
  host: 127.0.0.1
  port: 8000
"""
