# tests/conftest.py
from __future__ import annotations

import logging

import pytest

from assay.config.schema import CheckParameterValue, Track
from assay.order.results import Entry
from fakes import FakeBackend, FakeMedia, audio_packets, audio_stream, interleave, video_packets, video_stream


@pytest.fixture
def make_entry():
    """Build metadata entries the way an Order would hand them back."""

    def _make(stream_id: int, tags: dict[str, object] | None = None, pts: int | None = None) -> Entry:
        return Entry(pts=pts, stream_id=stream_id, tags={key: str(value) for key, value in (tags or {}).items()})

    return _make


@pytest.fixture
def duration_params():
    def _make(min: int | None = None, max: int | None = None) -> dict[str, CheckParameterValue]:
        return {"duration": CheckParameterValue(min=min, max=max)}

    return _make


@pytest.fixture
def stereo_pairing():
    return {"pairing_list": CheckParameterValue(pairs=[[Track(index=1, channel=2)]])}


@pytest.fixture
def av_media() -> FakeMedia:
    """One 25 fps video stream and one stereo audio stream, 4 seconds each.

    Video frames 25..75 carry a black span, audio frames 12..50 a silence.
    """

    video = video_packets(
        0,
        {25: {"lavfi.black_start": "1.0"}, 76: {"lavfi.black_end": "3.04"}},
        100,
    )
    audio = audio_packets(
        1,
        {12: {"lavfi.silence_start": "0.5"}, 51: {"lavfi.silence_end": "2.04"}},
        100,
    )
    return FakeMedia(
        streams=[video_stream(0, duration=4.0, nb_frames=100), audio_stream(1, duration=4.0)],
        packets=interleave(video, audio),
    )


@pytest.fixture
def backend(av_media: FakeMedia) -> FakeBackend:
    return FakeBackend({"clip.mov": av_media})


@pytest.fixture(autouse=True)
def propagate_logs(monkeypatch):
    """Let caplog see records from the `assay` logger."""

    monkeypatch.setattr(logging.getLogger("assay"), "propagate", True)
