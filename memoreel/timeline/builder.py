"""Timeline assembly: selected media + template → ordered clip list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from memoreel.media.descriptor import MediaDescriptor, MediaType
from memoreel.media.selector import video_contribution
from memoreel.templates.catalog import Template, TitleSpec, TransitionSpec


@dataclass(frozen=True)
class Layer:
    """What a clip shows: one media item or a synthetic title card."""
    type: str                     # image | video | title
    path: str = ""
    media_id: str = ""
    # image
    zoom_direction: str | None = None
    zoom_amount: float = 0.0
    # video
    mix_volume: float = 1.0
    has_audio: bool = False
    # title
    text: str = ""
    text_color: str = "#ffffff"
    background_color: str = "#000000"
    position: str = "center"

    @property
    def is_title(self) -> bool:
        return self.type == "title"


@dataclass(frozen=True)
class Clip:
    duration: float
    layers: tuple[Layer, ...] = field(default_factory=tuple)
    transition: TransitionSpec | None = None

    @property
    def layer(self) -> Layer:
        return self.layers[0]

    @property
    def is_title(self) -> bool:
        return bool(self.layers) and self.layers[0].is_title


def _title_clip(spec: TitleSpec) -> Clip:
    return Clip(
        duration=spec.duration,
        layers=(Layer(
            type="title",
            text=spec.text,
            text_color=spec.text_color,
            background_color=spec.background_color,
            position=spec.position,
        ),),
    )


def _media_layer(item: MediaDescriptor, template: Template) -> Layer:
    if item.type == MediaType.image:
        return Layer(
            type="image", path=item.path, media_id=item.id,
            zoom_direction=template.image_layer.zoom_direction,
            zoom_amount=template.image_layer.zoom_amount,
        )
    return Layer(
        type="video", path=item.path, media_id=item.id,
        mix_volume=template.video_layer.mix_volume,
        has_audio=item.metadata.has_audio,
    )


def build_clips(selected: Sequence[MediaDescriptor], template: Template) -> list[Clip]:
    """Map each selected photo/video to a clip and wrap them in intro/outro titles.

    Every media clip except the last carries the template's transition.
    Audio items are skipped; they are not timeline content.
    """
    visual = [m for m in selected if m.type in (MediaType.image, MediaType.video)]
    clips: list[Clip] = []
    for i, item in enumerate(visual):
        is_last = i == len(visual) - 1
        if item.type == MediaType.image:
            duration = template.image_duration
        else:
            duration = video_contribution(item, template.max_video_duration)
        clips.append(Clip(
            duration=duration,
            layers=(_media_layer(item, template),),
            transition=None if is_last else template.transition,
        ))

    if template.intro:
        clips.insert(0, _title_clip(template.intro))
    if template.outro:
        clips.append(_title_clip(template.outro))
    return clips


def effective_transition(clip: Clip, next_clip: Clip) -> float:
    """Overlap between two neighbours; never more than half of either clip."""
    if clip.transition is None:
        return 0.0
    return max(0.0, min(clip.transition.duration, clip.duration / 2, next_clip.duration / 2))


def timeline_duration(clips: Sequence[Clip]) -> float:
    total = sum(c.duration for c in clips)
    for cur, nxt in zip(clips, clips[1:]):
        total -= effective_transition(cur, nxt)
    return total
