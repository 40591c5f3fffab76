"""Duration-budgeted media selection.

Picks an ordered subset of the submitted photos and videos so the finished
video lands close to a target length. The budget is soft: the loop stops as
soon as the running total reaches the target, so the result can overshoot by
at most one item's contribution.

Output order is always chronological (capture date, falling back to upload
time). Quality scores are computed and reported alongside the selection but
never reorder it.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from memoreel.media.descriptor import MediaDescriptor, MediaType

DEFAULT_VIDEO_DURATION = 5.0     # used when a video's duration is unknown
PHOTO_SHARE = 0.6
VIDEO_SHARE = 0.4
VIDEO_SLOT_SECONDS = 10.0
SECONDS_PER_ITEM = 4.0


def score_media(item: MediaDescriptor) -> int:
    """Heuristic 0-100 quality score: resolution, GPS, audio, duration sweet spot."""
    meta = item.metadata
    score = 50

    if meta.width >= 1920:
        score += 15
    elif meta.width >= 1280:
        score += 10

    if meta.height >= 1080:
        score += 15
    elif meta.height >= 720:
        score += 10

    if meta.has_gps:
        score += 5

    if item.type == MediaType.video:
        if meta.has_audio:
            score += 10
        if 3 <= meta.duration <= 15:
            score += 10

    if meta.captured_at is not None:
        score += 5

    return min(100, score)


def video_contribution(item: MediaDescriptor, max_video_duration: float) -> float:
    return min(item.metadata.duration or DEFAULT_VIDEO_DURATION, max_video_duration)


def chronological(media: Iterable[MediaDescriptor]) -> list[MediaDescriptor]:
    return sorted(media, key=lambda m: m.sort_time)


@dataclass
class SelectionResult:
    items: list[MediaDescriptor] = field(default_factory=list)
    estimated_duration: float = 0.0
    scores: dict[str, int] = field(default_factory=dict)
    photo_count: int = 0
    video_count: int = 0


class MediaSelector:
    """Greedy photo/video interleaving under a duration budget.

    The random source is injected so tests can replay a selection exactly.
    """

    def __init__(self, rng: random.Random | None = None, video_weight: float = VIDEO_SHARE):
        self.rng = rng or random.Random()
        self.video_weight = video_weight

    def select(
        self,
        media: Sequence[MediaDescriptor],
        target_seconds: float,
        *,
        photo_duration: float,
        max_video_duration: float,
    ) -> SelectionResult:
        if target_seconds <= 0 or photo_duration <= 0:
            raise ValueError("target_seconds and photo_duration must be positive")

        scores = {m.id: score_media(m) for m in media}
        ordered = chronological(media)
        images = [m for m in ordered if m.type == MediaType.image]
        videos = [m for m in ordered if m.type == MediaType.video]

        max_photos = math.ceil(target_seconds / photo_duration * PHOTO_SHARE)
        max_videos = math.ceil(target_seconds / VIDEO_SLOT_SECONDS * VIDEO_SHARE)
        item_cap = min(len(media), math.ceil(target_seconds / SECONDS_PER_ITEM))

        picked: list[MediaDescriptor] = []
        total = 0.0
        n_photos = n_videos = 0

        while len(picked) < item_cap:
            videos_left = n_videos < len(videos)
            photos_left = n_photos < len(images)
            if not videos_left and not photos_left:
                break

            take_video: bool
            if videos_left and n_videos < max_videos and self.rng.random() < self.video_weight:
                take_video = True
            elif photos_left and n_photos < max_photos:
                take_video = False
            else:
                # preferred type is capped out, fall back to whatever remains
                take_video = videos_left

            if take_video:
                item = videos[n_videos]
                n_videos += 1
                total += video_contribution(item, max_video_duration)
            else:
                item = images[n_photos]
                n_photos += 1
                total += photo_duration
            picked.append(item)

            if total >= target_seconds:
                break

        # merge back into one narrative timeline
        picked = chronological(picked)
        return SelectionResult(
            items=picked,
            estimated_duration=total,
            scores=scores,
            photo_count=n_photos,
            video_count=n_videos,
        )


def select_best_media(
    media: Sequence[MediaDescriptor],
    target_seconds: float,
    *,
    photo_duration: float,
    max_video_duration: float,
    rng: random.Random | None = None,
    video_weight: float = VIDEO_SHARE,
) -> list[MediaDescriptor]:
    """Ordered subset of ``media`` fitting ``target_seconds`` (soft bound)."""
    selector = MediaSelector(rng=rng, video_weight=video_weight)
    return selector.select(
        media, target_seconds,
        photo_duration=photo_duration, max_video_duration=max_video_duration,
    ).items
