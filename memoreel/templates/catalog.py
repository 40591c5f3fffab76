"""Named style templates: render defaults, transitions, zoom, intro/outro titles."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

DEFAULT_STYLE = "memories"


@dataclass(frozen=True)
class TransitionSpec:
    name: str = "fade"
    duration: float = 0.5


@dataclass(frozen=True)
class ImageLayerDefaults:
    zoom_direction: str | None = None   # in | out | random | None
    zoom_amount: float = 0.0


@dataclass(frozen=True)
class VideoLayerDefaults:
    mix_volume: float = 0.3


@dataclass(frozen=True)
class TitleSpec:
    """Synthetic title card used for intro/outro clips."""
    duration: float
    text: str = ""
    text_color: str = "#ffffff"
    background_color: str = "#000000"
    position: str = "center"


@dataclass(frozen=True)
class RenderBase:
    width: int = 1280
    height: int = 720
    fps: int = 30
    audio_mix_volume: float = 0.8
    audio_norm: bool = True


@dataclass(frozen=True)
class Template:
    name: str
    description: str
    base: RenderBase = field(default_factory=RenderBase)
    image_duration: float = 3.5
    max_video_duration: float = 8.0
    transition: TransitionSpec | None = field(default_factory=TransitionSpec)
    image_layer: ImageLayerDefaults = field(default_factory=ImageLayerDefaults)
    video_layer: VideoLayerDefaults = field(default_factory=VideoLayerDefaults)
    intro: TitleSpec | None = None
    outro: TitleSpec | None = None
    music: str | None = None

    @property
    def display_name(self) -> str:
        return self.name[:1].upper() + self.name[1:]


_TEMPLATES: dict[str, Template] = {
    "memories": Template(
        name="memories",
        description="Soft transitions and gentle pacing, perfect for cherished moments",
        base=RenderBase(fps=30, audio_mix_volume=0.8),
        image_duration=3.5, max_video_duration=8,
        transition=TransitionSpec("fade", 0.8),
        image_layer=ImageLayerDefaults("in", 0.1),
        video_layer=VideoLayerDefaults(0.3),
        intro=TitleSpec(2.0, "Memories", "#ffffff", "#000000"),
        outro=TitleSpec(1.5, "", background_color="#000000"),
        music="gentle-piano.mp3",
    ),
    "nostalgia": Template(
        name="nostalgia",
        description="Vintage feel with slower transitions and warm tones",
        base=RenderBase(fps=24, audio_mix_volume=0.7),
        image_duration=4.5, max_video_duration=10,
        transition=TransitionSpec("crossfade", 1.2),
        image_layer=ImageLayerDefaults("out", 0.05),
        video_layer=VideoLayerDefaults(0.2),
        intro=TitleSpec(3.0, "Once Upon a Time", "#f5f5dc", "#2b2b2b"),
        music="nostalgic-strings.mp3",
    ),
    "dynamic": Template(
        name="dynamic",
        description="Fast-paced and energetic, great for action and adventure",
        base=RenderBase(fps=30, audio_mix_volume=1.0),
        image_duration=2.5, max_video_duration=5,
        transition=TransitionSpec("directional-left", 0.4),
        image_layer=ImageLayerDefaults("random", 0.2),
        video_layer=VideoLayerDefaults(0.4),
        intro=TitleSpec(1.5, "Let's Go!", "#00ff00", "#000000"),
        music="upbeat-electronic.mp3",
    ),
    "smooth": Template(
        name="smooth",
        description="Fluid transitions with elegant motion, perfect for storytelling",
        base=RenderBase(fps=30, audio_mix_volume=0.7),
        image_duration=4.0, max_video_duration=8,
        transition=TransitionSpec("crossfade", 1.0),
        image_layer=ImageLayerDefaults("in", 0.05),
        video_layer=VideoLayerDefaults(0.25),
        intro=TitleSpec(2.5, "Smooth Memories", "#ffffff", "rgba(0,0,0,0.7)"),
    ),
    "minimal": Template(
        name="minimal",
        description="Clean and simple, focusing on content without distractions",
        base=RenderBase(fps=24, audio_mix_volume=0.5),
        image_duration=5.0, max_video_duration=6,
        transition=TransitionSpec("fade", 0.3),
        image_layer=ImageLayerDefaults(None, 0.0),
        video_layer=VideoLayerDefaults(0.2),
        intro=TitleSpec(1.0, "", background_color="#ffffff"),
        outro=TitleSpec(1.0, "", background_color="#ffffff"),
    ),
    "classic": Template(
        name="classic",
        description="Simple and elegant, timeless presentation",
        base=RenderBase(fps=25, audio_mix_volume=0.6),
        image_duration=4.0, max_video_duration=7,
        transition=TransitionSpec("fade", 0.5),
        image_layer=ImageLayerDefaults(None, 0.0),
        video_layer=VideoLayerDefaults(0.3),
        intro=TitleSpec(2.0, "Beautiful Moments", "#ffffff", "#1a1a1a"),
        outro=TitleSpec(2.0, "The End", "#ffffff", "#1a1a1a"),
        music="classical-light.mp3",
    ),
}


class TemplateCatalog:
    """Read-only registry of style templates.

    Lookups never fail: an unknown or missing style name resolves to the
    ``memories`` template.
    """

    def __init__(self, templates: Mapping[str, Template] | None = None,
                 default: str = DEFAULT_STYLE):
        source = dict(templates if templates is not None else _TEMPLATES)
        if default not in source:
            raise ValueError(f"Default template '{default}' is not in the catalog")
        self._templates: Mapping[str, Template] = MappingProxyType(source)
        self._default = default

    @property
    def default_name(self) -> str:
        return self._default

    def names(self) -> list[str]:
        return list(self._templates)

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def get_template(self, name: str | None) -> Template:
        if name and name in self._templates:
            return self._templates[name]
        return self._templates[self._default]

    def list_templates(self) -> list[dict[str, str]]:
        return [
            {"id": key, "displayName": t.display_name, "description": t.description}
            for key, t in self._templates.items()
        ]

    def music_for(self, name: str | None) -> str | None:
        """Music track filename for a style; styles without one borrow the default's."""
        music = self.get_template(name).music
        return music or self._templates[self._default].music
