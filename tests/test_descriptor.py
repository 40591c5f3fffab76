"""Tests for media descriptors built from analysis payloads."""

from __future__ import annotations

from datetime import datetime, timezone


class TestFromDict:

    def test_camel_case_payload(self):
        from memoreel.media.descriptor import MediaDescriptor, MediaType
        m = MediaDescriptor.from_dict({
            "id": "abc", "type": "video", "path": "/u/clip.mov", "filename": "clip.mov",
            "uploadedAt": "2024-05-01T08:00:00Z",
            "metadata": {"width": 1920, "height": 1080, "duration": 12.5,
                         "date": "2024:04:30 19:15:00", "gps": True, "hasAudio": True},
        })
        assert m.type == MediaType.video
        assert m.metadata.duration == 12.5
        assert m.metadata.has_audio and m.metadata.has_gps
        assert m.metadata.captured_at == datetime(2024, 4, 30, 19, 15, tzinfo=timezone.utc)
        assert m.uploaded_at == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def test_type_from_extension(self):
        from memoreel.media.descriptor import MediaDescriptor, MediaType
        assert MediaDescriptor.from_dict({"path": "/x/photo.JPG"}).type == MediaType.image
        assert MediaDescriptor.from_dict({"path": "/x/song.mp3"}).type == MediaType.audio
        assert MediaDescriptor.from_dict({"path": "/x/readme.txt"}).type == MediaType.unknown

    def test_bad_metadata_degrades_to_empty(self):
        from memoreel.media.descriptor import MediaDescriptor
        m = MediaDescriptor.from_dict({
            "id": "a", "type": "image", "path": "/a.jpg",
            "metadata": {"width": "wide", "duration": None, "date": "yesterday-ish"},
        })
        assert m.metadata.width == 0
        assert m.metadata.duration == 0.0
        assert m.metadata.captured_at is None

    def test_non_dict_metadata(self):
        from memoreel.media.descriptor import MediaDescriptor, MediaMetadata
        m = MediaDescriptor.from_dict({"id": "a", "type": "image", "path": "/a.jpg", "metadata": [1, 2]})
        assert m.metadata == MediaMetadata()

    def test_epoch_milliseconds(self):
        from memoreel.media.descriptor import MediaDescriptor
        m = MediaDescriptor.from_dict({
            "id": "a", "type": "image", "path": "/a.jpg",
            "metadata": {"date": 1_700_000_000_000},
        })
        assert m.metadata.captured_at == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)

    def test_usable(self):
        from memoreel.media.descriptor import MediaDescriptor
        assert MediaDescriptor.from_dict({"type": "audio", "path": "/s.mp3"}).is_usable
        assert not MediaDescriptor.from_dict({"type": "image", "path": ""}).is_usable
        assert not MediaDescriptor.from_dict({"path": "/notes.txt"}).is_usable

    def test_to_dict(self, media_factory):
        d = media_factory(3).to_dict()
        assert d["type"] == "image"
        assert d["metadata"]["captured_at"].startswith("2024-06-01T12:03")
