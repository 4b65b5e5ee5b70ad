"""Stream facts gathered once per probe and shared by the checks."""

from __future__ import annotations

from dataclasses import dataclass

from assay.backend.base import StreamInfo
from assay.graph.parameters import Rational


DEFAULT_FRAME_RATE = 25.0


@dataclass(frozen=True, slots=True)
class VideoDetails:
    frame_rate: float = DEFAULT_FRAME_RATE
    stream_duration: float | None = None
    time_base: Rational = Rational(1, 25)
    nb_frames: int = 0
    width: int = 0
    height: int = 0
    sample_aspect_ratio: Rational = Rational(1, 1)
    bits_per_raw_sample: int | None = None

    @property
    def frame_duration(self) -> float:
        return 1.0 / self.frame_rate

    @property
    def frame_duration_ms(self) -> int:
        return round(self.frame_duration * 1000)


@dataclass(frozen=True, slots=True)
class AudioDetails:
    sample_rate: int = 48000
    stream_duration: float | None = None
    channels: int = 0
    samples_per_frame: int = 0
    sample_format: str = ""


def video_details(info: StreamInfo | None) -> VideoDetails:
    """Return video facts for a stream, 25 fps defaults when unknown."""

    if info is None:
        return VideoDetails()
    frame_rate = info.frame_rate.to_float() if info.frame_rate is not None else 0.0
    if frame_rate <= 0:
        frame_rate = DEFAULT_FRAME_RATE
    nb_frames = info.nb_frames or 0
    if not nb_frames and info.duration:
        nb_frames = round(info.duration * frame_rate)
    return VideoDetails(
        frame_rate=frame_rate,
        stream_duration=info.duration,
        time_base=info.time_base,
        nb_frames=nb_frames,
        width=info.width,
        height=info.height,
        sample_aspect_ratio=info.sample_aspect_ratio if info.sample_aspect_ratio.den else Rational(1, 1),
        bits_per_raw_sample=info.bits_per_raw_sample,
    )


def audio_details(info: StreamInfo) -> AudioDetails:
    return AudioDetails(
        sample_rate=info.sample_rate or 48000,
        stream_duration=info.duration,
        channels=info.channels,
        samples_per_frame=info.frame_size,
        sample_format=info.sample_format or "",
    )
