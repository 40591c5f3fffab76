"""Media descriptors produced by the upload/analysis collaborator."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from memoreel.utils.logging import debug


class MediaType(str, Enum):
    image = "image"
    video = "video"
    audio = "audio"
    unknown = "unknown"


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".avi", ".mkv"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".aac", ".m4a"}


def media_type_for(path: str | Path) -> MediaType:
    """Guess the media type from a file extension."""
    ext = Path(path).suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return MediaType.image
    if ext in VIDEO_EXTENSIONS:
        return MediaType.video
    if ext in AUDIO_EXTENSIONS:
        return MediaType.audio
    return MediaType.unknown


@dataclass(frozen=True)
class MediaMetadata:
    width: int = 0
    height: int = 0
    duration: float = 0.0
    captured_at: datetime | None = None
    has_gps: bool = False
    has_audio: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MediaDescriptor:
    """One uploaded media item. Never mutated after creation."""
    id: str
    type: MediaType
    path: str
    filename: str = ""
    uploaded_at: datetime = field(default_factory=_utc_now)
    metadata: MediaMetadata = field(default_factory=MediaMetadata)

    @property
    def is_visual(self) -> bool:
        return self.type in (MediaType.image, MediaType.video)

    @property
    def is_usable(self) -> bool:
        return self.type != MediaType.unknown and bool(self.path)

    @property
    def sort_time(self) -> datetime:
        """Capture date, falling back to upload time."""
        return self.metadata.captured_at or self.uploaded_at

    def to_dict(self) -> dict:
        d = asdict(self)
        d["type"] = self.type.value
        d["uploaded_at"] = self.uploaded_at.isoformat()
        captured = self.metadata.captured_at
        d["metadata"]["captured_at"] = captured.isoformat() if captured else None
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MediaDescriptor:
        """Build a descriptor from an analysis payload.

        Accepts both snake_case and the camelCase keys of the upload service
        (``uploadedAt``, ``hasAudio``, ``date``, ``gps``). Metadata that cannot
        be parsed degrades to empty values instead of raising.
        """
        path = str(d.get("path") or "")
        raw_type = d.get("type") or ""
        try:
            mtype = MediaType(raw_type)
        except ValueError:
            mtype = media_type_for(path or d.get("filename", ""))

        uploaded = _parse_datetime(d.get("uploaded_at", d.get("uploadedAt"))) or _utc_now()
        return cls(
            id=str(d.get("id") or d.get("filename") or Path(path).name),
            type=mtype,
            path=path,
            filename=str(d.get("filename") or Path(path).name),
            uploaded_at=uploaded,
            metadata=_parse_metadata(d.get("metadata")),
        )


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        # epoch milliseconds from JS clients, seconds otherwise
        ts = value / 1000 if value > 1e11 else value
        try:
            dt = datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            try:
                # EXIF style "2023:07:14 18:02:11"
                dt = datetime.strptime(text, "%Y:%m:%d %H:%M:%S")
            except ValueError:
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_number(value: Any, kind: type) -> Any:
    try:
        return kind(value or 0)
    except (TypeError, ValueError, OverflowError):
        return kind(0)


def _parse_metadata(raw: Any) -> MediaMetadata:
    if not isinstance(raw, dict):
        if raw is not None:
            debug(f"[media] Ignoring malformed metadata: {type(raw).__name__}")
        return MediaMetadata()
    return MediaMetadata(
        width=_as_number(raw.get("width"), int),
        height=_as_number(raw.get("height"), int),
        duration=_as_number(raw.get("duration"), float),
        captured_at=_parse_datetime(raw.get("captured_at", raw.get("date"))),
        has_gps=bool(raw.get("has_gps", raw.get("gps"))),
        has_audio=bool(raw.get("has_audio", raw.get("hasAudio"))),
    )
