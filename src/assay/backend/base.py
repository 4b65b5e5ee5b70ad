"""Media backend interface consumed by the graph compiler and the Order loop.

The backend owns every native handle: containers, codec contexts, filter
graphs, frames and packets. assay only orchestrates them through the protocols
below, so an in-memory implementation can stand in for tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

import numpy as np

from assay.graph.parameters import ParamValue, Rational


class MediaType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"
    DATA = "data"


class WouldBlock(Exception):
    """No output available for this tick; more input is needed."""


class EndOfStream(Exception):
    """The source, decoder, encoder or sink is fully drained."""


@dataclass(frozen=True, slots=True)
class StreamInfo:
    """Read-only description of one elementary stream of a container."""

    index: int
    media_type: MediaType
    codec_name: str = ""
    time_base: Rational = Rational(1, 1)
    duration: float | None = None
    frame_rate: Rational | None = None
    nb_frames: int | None = None
    width: int = 0
    height: int = 0
    sample_aspect_ratio: Rational = Rational(1, 1)
    bits_per_raw_sample: int | None = None
    sample_rate: int = 0
    channels: int = 0
    frame_size: int = 0
    sample_format: str = ""
    bit_rate: int | None = None
    color_space: str | None = None
    color_range: str | None = None
    color_primaries: str | None = None
    color_trc: str | None = None
    color_matrix: str | None = None


class Packet(Protocol):
    stream_index: int
    size: int
    label: str | None

    def rescale(self, source: Rational, target: Rational) -> None:
        ...


class Frame(Protocol):
    @property
    def pts(self) -> int | None:
        ...

    @property
    def metadata(self) -> Mapping[str, str]:
        ...

    def to_samples(self) -> np.ndarray:
        """Return audio samples shaped `(channels, nb_samples)`."""
        ...


class Decoder(Protocol):
    stream_index: int
    media_type: MediaType
    sample_rate: int
    channels: int
    channel_layout: int
    sample_format: str
    width: int
    height: int
    frame_rate: Rational
    time_base: Rational
    sample_aspect_ratio: Rational
    pixel_format: str

    def decode(self, packet: Packet | None) -> Frame:
        """Return the next frame; raise WouldBlock or EndOfStream otherwise."""
        ...

    def close(self) -> None:
        ...


class Encoder(Protocol):
    media_type: MediaType
    frame_size: int
    time_base: Rational

    def encode(self, frame: Frame | None, pts: int | None = None) -> Packet | None:
        """Send a frame (None flushes) and return a packet when one is ready.

        A given `pts` replaces the frame timestamp, expressed in `time_base`.
        """
        ...

    def build_audio_frame(self, samples: np.ndarray, pts: int) -> Frame:
        ...

    def close(self) -> None:
        ...


class InputContainer(Protocol):
    path: str
    streams: Sequence[StreamInfo]
    bit_rate: int | None
    duration: float | None

    def next_packet(self) -> Packet:
        """Return the next demuxed packet or raise EndOfStream."""
        ...

    def close(self) -> None:
        ...


class OutputContainer(Protocol):
    path: str

    def add_stream(self, encoder: Encoder) -> int:
        ...

    def stream_time_base(self, stream_index: int) -> Rational:
        ...

    def write_header(self) -> None:
        ...

    def write_packet(self, packet: Packet, stream_index: int) -> None:
        ...

    def write_trailer(self) -> None:
        ...

    def close(self) -> None:
        ...


class FilterNode(Protocol):
    name: str
    label: str

    def set_int(self, key: str, value: int) -> None:
        ...

    def set_double(self, key: str, value: float) -> None:
        ...

    def set_rational(self, key: str, num: int, den: int) -> None:
        ...

    def set_string(self, key: str, value: str) -> None:
        ...

    def set_channel_layout(self, key: str, mask: int) -> None:
        ...

    def init(self) -> None:
        ...


class GraphHandle(Protocol):
    def create_filter(self, name: str, label: str) -> FilterNode:
        """Allocate a named node; raise FilterNotFound for unknown filters."""
        ...

    def link(self, source: FilterNode, source_pad: int, target: FilterNode, target_pad: int) -> None:
        ...

    def configure(self) -> None:
        ...

    def push(self, source: FilterNode, frame: Frame) -> None:
        ...

    def pull(self, sink: FilterNode) -> Frame:
        """Return one frame or raise WouldBlock / EndOfStream."""
        ...

    def describe(self) -> str:
        ...

    def close(self) -> None:
        ...


class MediaBackend(Protocol):
    def open_input(self, path: str) -> InputContainer:
        ...

    def open_frames(self, path: str, frames: Sequence[Any]) -> InputContainer:
        """Open a raw file read as one video stream of pre-indexed byte ranges."""
        ...

    def create_decoder(self, container: InputContainer, stream_index: int) -> Decoder:
        ...

    def create_codec_decoder(self, codec: str, width: int, height: int, stream_index: int = 0) -> Decoder:
        ...

    def codec_media_type(self, codec: str) -> MediaType | None:
        ...

    def create_encoder(self, codec: str, parameters: Mapping[str, ParamValue]) -> Encoder:
        ...

    def open_output(self, path: str, parameters: Mapping[str, ParamValue]) -> OutputContainer:
        ...

    def allocate_graph(self) -> GraphHandle:
        ...
