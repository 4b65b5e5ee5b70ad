"""PyAV implementation of the media backend protocols."""

from __future__ import annotations

from collections import deque
from fractions import Fraction
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

import av
import av.error
import av.filter
import numpy as np

from assay.backend.base import EndOfStream, MediaType, StreamInfo, WouldBlock
from assay.errors import BackendError, FilterNotFound, GraphConfigError, SetupError
from assay.graph.parameters import ParamValue, Rational, RationalValue


# Speaker positions of the native 64-bit channel mask.
_CHANNEL_BITS = {
    "FL": 0,
    "FR": 1,
    "FC": 2,
    "LFE": 3,
    "BL": 4,
    "BR": 5,
    "FLC": 6,
    "FRC": 7,
    "BC": 8,
    "SL": 9,
    "SR": 10,
    "TC": 11,
    "TFL": 12,
    "TFC": 13,
    "TFR": 14,
    "TBL": 15,
    "TBC": 16,
    "TBR": 17,
    "DL": 29,
    "DR": 30,
}

_SAMPLE_DTYPES = {
    "u8": np.uint8,
    "s16": np.int16,
    "s32": np.int32,
    "s64": np.int64,
    "flt": np.float32,
    "dbl": np.float64,
}

_COLOR_RANGES = {"head": "MPEG", "full": "JPEG"}


def _rational(value: Fraction | None, default: Rational = Rational(1, 1)) -> Rational:
    return Rational.from_fraction(value, default) or default


def _fraction(value: Rational) -> Fraction:
    return Fraction(value.num, value.den or 1)


def _enum_name(value: Any) -> str | None:
    if value is None:
        return None
    name = getattr(value, "name", None)
    if isinstance(name, str):
        return name.lower()
    return str(value)


def _media_type(name: str | None) -> MediaType:
    try:
        return MediaType(name)
    except ValueError:
        return MediaType.DATA


def _layout_mask(layout: Any) -> int:
    mask = 0
    for channel in getattr(layout, "channels", ()):
        bit = _CHANNEL_BITS.get(getattr(channel, "name", ""))
        if bit is None:
            return 0
        mask |= 1 << bit
    return mask


def _stream_info(stream: Any) -> StreamInfo:
    ctx = stream.codec_context
    media_type = _media_type(stream.type)
    duration = None
    if stream.duration is not None and stream.time_base is not None:
        duration = float(stream.duration * stream.time_base)

    info: dict[str, Any] = {
        "index": stream.index,
        "media_type": media_type,
        "codec_name": getattr(ctx, "name", "") or "",
        "time_base": _rational(stream.time_base),
        "duration": duration,
        "nb_frames": stream.frames or None,
        "bit_rate": getattr(ctx, "bit_rate", None) or None,
    }
    if media_type is MediaType.VIDEO:
        pix = ctx.format
        bits = pix.components[0].bits if pix is not None and pix.components else None
        info.update(
            frame_rate=Rational.from_fraction(stream.average_rate or stream.guessed_rate),
            width=ctx.width,
            height=ctx.height,
            sample_aspect_ratio=_rational(ctx.sample_aspect_ratio),
            bits_per_raw_sample=bits,
            color_space=_enum_name(getattr(ctx, "colorspace", None)),
            color_range=_enum_name(getattr(ctx, "color_range", None)),
            color_primaries=_enum_name(getattr(ctx, "color_primaries", None)),
            color_trc=_enum_name(getattr(ctx, "color_trc", None)),
            color_matrix=_enum_name(getattr(ctx, "colorspace", None)),
        )
    elif media_type is MediaType.AUDIO:
        info.update(
            sample_rate=ctx.sample_rate,
            channels=ctx.channels,
            frame_size=ctx.frame_size,
            sample_format=ctx.format.name if ctx.format is not None else "",
        )
    return StreamInfo(**info)


class PyAVPacket:
    """Packet wrapper carrying the routing label used for subtitle wrapping."""

    def __init__(self, raw: av.Packet, stream_index: int) -> None:
        self.raw = raw
        self.stream_index = stream_index
        self.label: str | None = None

    @property
    def size(self) -> int:
        return self.raw.size

    def rescale(self, source: Rational, target: Rational) -> None:
        scale = _fraction(source) / _fraction(target)
        for attr in ("pts", "dts", "duration"):
            value = getattr(self.raw, attr)
            if value is not None:
                setattr(self.raw, attr, round(value * scale))
        self.raw.time_base = _fraction(target)


class PyAVFrame:
    def __init__(self, raw: av.AudioFrame | av.VideoFrame) -> None:
        self.raw = raw

    @property
    def pts(self) -> int | None:
        return self.raw.pts

    @property
    def metadata(self) -> Mapping[str, str]:
        return dict(getattr(self.raw, "metadata", None) or {})

    def to_samples(self) -> np.ndarray:
        array = self.raw.to_ndarray()
        if self.raw.format.is_planar:
            return array
        channels = len(self.raw.layout.channels)
        return array.reshape(-1, channels).T


class PyAVInputContainer:
    def __init__(self, path: str) -> None:
        self.path = path
        try:
            self._container = av.open(path)
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to open input file {path!r}", str(exc)) from exc
        self.streams = [_stream_info(stream) for stream in self._container.streams]
        self.bit_rate = self._container.bit_rate or None
        self.duration = (
            self._container.duration / av.time_base if self._container.duration is not None else None
        )
        self._packets: Iterator[av.Packet] | None = None

    def stream(self, index: int) -> Any:
        return self._container.streams[index]

    def next_packet(self) -> PyAVPacket:
        if self._packets is None:
            self._packets = self._container.demux()
        try:
            for raw in self._packets:
                # demux() ends with empty flush packets; decoders are flushed explicitly.
                if raw.size == 0 and raw.dts is None:
                    continue
                return PyAVPacket(raw, raw.stream_index)
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to read packet from {self.path!r}", str(exc)) from exc
        raise EndOfStream(self.path)

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None


class PyAVFramesContainer:
    """One video stream made of byte ranges of a raw elementary file."""

    def __init__(self, path: str, frames: Sequence[Any]) -> None:
        self.path = path
        self._frames = sorted(frames, key=lambda frame: frame.index)
        self._position = 0
        self.streams = [StreamInfo(index=0, media_type=MediaType.VIDEO, nb_frames=len(self._frames))]
        self.bit_rate = None
        self.duration = None
        try:
            self._handle = Path(path).open("rb")
        except OSError as exc:
            raise BackendError(f"Unable to open input file {path!r}", str(exc)) from exc

    def next_packet(self) -> PyAVPacket:
        if self._position >= len(self._frames):
            raise EndOfStream(self.path)
        address = self._frames[self._position]
        self._position += 1
        self._handle.seek(address.offset)
        data = self._handle.read(address.size)
        return PyAVPacket(av.Packet(data), 0)

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


class PyAVDecoder:
    def __init__(self, ctx: Any, stream_index: int, media_type: MediaType, time_base: Rational) -> None:
        self._ctx = ctx
        self._pending: deque[PyAVFrame] = deque()
        self._flushed = False
        self.stream_index = stream_index
        self.media_type = media_type
        self.time_base = time_base
        self.sample_rate = 0
        self.channels = 0
        self.channel_layout = 0
        self.sample_format = ""
        self.width = 0
        self.height = 0
        self.frame_rate = Rational(25, 1)
        self.sample_aspect_ratio = Rational(1, 1)
        self.pixel_format = ""
        if media_type is MediaType.AUDIO:
            self.sample_rate = ctx.sample_rate
            self.channels = ctx.channels
            self.channel_layout = _layout_mask(ctx.layout)
            self.sample_format = ctx.format.name if ctx.format is not None else ""
            self.time_base = Rational(1, self.sample_rate or 1)
        elif media_type is MediaType.VIDEO:
            self.width = ctx.width
            self.height = ctx.height
            self.sample_aspect_ratio = _rational(ctx.sample_aspect_ratio)
            self.pixel_format = ctx.pix_fmt or "yuv420p"
            self.frame_rate = _rational(getattr(ctx, "framerate", None), Rational(25, 1))

    def decode(self, packet: PyAVPacket | None) -> PyAVFrame:
        if packet is not None:
            self._send(packet.raw)
        elif not self._pending and not self._flushed:
            self._flushed = True
            self._send(None)
        if self._pending:
            return self._pending.popleft()
        if packet is None:
            raise EndOfStream(self.stream_index)
        raise WouldBlock(self.stream_index)

    def _send(self, raw: av.Packet | None) -> None:
        try:
            frames = self._ctx.decode(raw)
        except av.error.EOFError:
            frames = []
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to decode stream {self.stream_index}", str(exc)) from exc
        for frame in frames:
            if self.media_type is MediaType.AUDIO:
                # Audio timestamps are counted in samples.
                if frame.pts is not None and frame.time_base is not None:
                    frame.pts = round(frame.pts * frame.time_base * self.sample_rate)
                frame.time_base = Fraction(1, self.sample_rate or 1)
            self._pending.append(PyAVFrame(frame))

    def close(self) -> None:
        self._pending.clear()
        self._ctx = None


class PyAVEncoder:
    """Encoder settings bound to an output stream once the container adds it."""

    def __init__(self, codec: str, media_type: MediaType, parameters: Mapping[str, ParamValue]) -> None:
        self.codec = codec
        self.media_type = media_type
        self.parameters = dict(parameters)
        self.time_base = Rational(1, 25)
        self._stream: Any = None
        self._pending: deque[PyAVPacket] = deque()
        self._flushed = False
        rate = self.parameters.get("sample_rate") or self.parameters.get("frame_rate")
        if isinstance(rate, RationalValue):
            self.time_base = rate.value.invert()

    @property
    def frame_size(self) -> int:
        if self._stream is None:
            return 0
        return self._stream.codec_context.frame_size or 0

    def bind(self, stream: Any) -> None:
        ctx = stream.codec_context
        extra: dict[str, str] = {}
        for key, value in self.parameters.items():
            raw = value.value.to_fraction() if isinstance(value, RationalValue) else value.value
            if key == "sample_rate":
                ctx.sample_rate = int(raw)
            elif key == "sample_fmt":
                ctx.format = raw
            elif key == "channel_layout":
                ctx.layout = raw
            elif key == "frame_rate":
                ctx.framerate = raw
            elif key == "pixel_format":
                ctx.pix_fmt = raw
            elif key in {"width", "height", "gop_size", "max_b_frames", "sample_aspect_ratio"}:
                setattr(ctx, key, raw)
            elif key == "bitrate":
                ctx.bit_rate = int(raw)
            elif key == "color_range":
                extra["color_range"] = _COLOR_RANGES.get(str(raw), str(raw)).lower()
            else:
                extra[key] = str(int(raw) if isinstance(raw, bool) else raw)
        ctx.time_base = _fraction(self.time_base)
        stream.time_base = _fraction(self.time_base)
        if extra:
            ctx.options = {**ctx.options, **extra}
        self._stream = stream

    def build_audio_frame(self, samples: np.ndarray, pts: int) -> PyAVFrame:
        ctx = self._stream.codec_context
        fmt = ctx.format
        dtype = _SAMPLE_DTYPES.get(fmt.name.rstrip("p"), np.float32)
        array = samples.astype(dtype, copy=False)
        if not fmt.is_planar:
            array = array.T.reshape(1, -1)
        frame = av.AudioFrame.from_ndarray(np.ascontiguousarray(array), format=fmt.name, layout=ctx.layout.name)
        frame.sample_rate = ctx.sample_rate
        frame.pts = pts
        frame.time_base = _fraction(self.time_base)
        return PyAVFrame(frame)

    def _send(self, raw: Any) -> None:
        try:
            packets = self._stream.encode(raw)
        except av.error.EOFError:
            packets = []
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to encode with {self.codec}", str(exc)) from exc
        self._pending.extend(PyAVPacket(packet, self._stream.index) for packet in packets)

    def encode(self, frame: PyAVFrame | None, pts: int | None = None) -> PyAVPacket | None:
        if self._stream is None:
            raise BackendError(f"Encoder {self.codec} is not attached to an output stream")
        if frame is not None:
            if pts is not None:
                frame.raw.pts = pts
            frame.raw.time_base = _fraction(self.time_base)
            self._send(frame.raw)
        elif not self._pending and not self._flushed:
            self._flushed = True
            self._send(None)
        if not self._pending:
            return None
        return self._pending.popleft()

    def close(self) -> None:
        self._pending.clear()
        self._stream = None


class PyAVOutputContainer:
    def __init__(self, path: str, parameters: Mapping[str, ParamValue]) -> None:
        self.path = path
        options = {key: str(value.value) for key, value in parameters.items() if not isinstance(value, RationalValue)}
        try:
            self._container = av.open(path, mode="w", options=options)
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to open output file {path!r}", str(exc)) from exc
        self._streams: list[Any] = []
        self._started = False

    def add_stream(self, encoder: PyAVEncoder) -> int:
        rate = encoder.parameters.get("sample_rate") or encoder.parameters.get("frame_rate")
        kwargs: dict[str, Any] = {}
        if isinstance(rate, RationalValue):
            value = rate.value.to_fraction()
            kwargs["rate"] = int(value) if encoder.media_type is MediaType.AUDIO else value
        try:
            stream = self._container.add_stream(encoder.codec, **kwargs)
        except (ValueError, av.error.FFmpegError) as exc:
            raise BackendError(f"Unable to create {encoder.codec} stream", str(exc)) from exc
        encoder.bind(stream)
        self._streams.append(stream)
        return stream.index

    def stream_time_base(self, stream_index: int) -> Rational:
        return _rational(self._streams[stream_index].time_base)

    def write_header(self) -> None:
        try:
            self._container.start_encoding()
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to write header of {self.path!r}", str(exc)) from exc
        self._started = True

    def write_packet(self, packet: PyAVPacket, stream_index: int) -> None:
        packet.raw.stream = self._streams[stream_index]
        try:
            self._container.mux(packet.raw)
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to write packet to {self.path!r}", str(exc)) from exc

    def write_trailer(self) -> None:
        # The trailer is written when the PyAV container closes.
        self.close()

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None


class PyAVFilterNode:
    """Options are staged as strings until `init` instantiates the filter."""

    def __init__(self, graph: av.filter.Graph, name: str, label: str) -> None:
        self._graph = graph
        self.name = name
        self.label = label
        self.options: dict[str, str] = {}
        self.context: Any = None

    def set_int(self, key: str, value: int) -> None:
        self.options[key] = str(value)

    def set_double(self, key: str, value: float) -> None:
        self.options[key] = repr(value)

    def set_rational(self, key: str, num: int, den: int) -> None:
        self.options[key] = f"{num}/{den}"

    def set_string(self, key: str, value: str) -> None:
        self.options[key] = value

    def set_channel_layout(self, key: str, mask: int) -> None:
        self.options[key] = hex(mask)

    def init(self) -> None:
        try:
            self.context = self._graph.add(self.name, **self.options)
        except (ValueError, av.error.FFmpegError) as exc:
            raise BackendError(f"Unable to initialise filter {self.name} ({self.label})", str(exc)) from exc


class PyAVGraph:
    def __init__(self) -> None:
        self._graph: av.filter.Graph | None = av.filter.Graph()
        self._nodes: list[PyAVFilterNode] = []

    def create_filter(self, name: str, label: str) -> PyAVFilterNode:
        if name not in av.filter.filters_available:
            raise FilterNotFound(f"Unknown filter {name!r}")
        node = PyAVFilterNode(self._graph, name, label)
        self._nodes.append(node)
        return node

    def link(self, source: PyAVFilterNode, source_pad: int, target: PyAVFilterNode, target_pad: int) -> None:
        try:
            source.context.link_to(target.context, source_pad, target_pad)
        except (ValueError, av.error.FFmpegError) as exc:
            raise BackendError(f"Unable to link {source.label} -> {target.label}", str(exc)) from exc

    def configure(self) -> None:
        try:
            self._graph.configure(auto_buffer=False)
        except (ValueError, av.error.FFmpegError) as exc:
            raise GraphConfigError("Unable to configure filter graph", str(exc)) from exc

    def push(self, source: PyAVFilterNode, frame: PyAVFrame) -> None:
        try:
            source.context.push(frame.raw)
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to push frame into {source.label}", str(exc)) from exc

    def pull(self, sink: PyAVFilterNode) -> PyAVFrame:
        try:
            return PyAVFrame(sink.context.pull())
        except BlockingIOError as exc:
            raise WouldBlock(sink.label) from exc
        except av.error.EOFError as exc:
            raise EndOfStream(sink.label) from exc
        except av.error.FFmpegError as exc:
            raise BackendError(f"Unable to pull frame from {sink.label}", str(exc)) from exc

    def describe(self) -> str:
        lines = ["Filter Graph:"]
        for node in self._nodes:
            options = ", ".join(f"{key}={value}" for key, value in node.options.items())
            lines.append(f"  {node.label} [{node.name}] {options}".rstrip())
        return "\n".join(lines)

    def close(self) -> None:
        self._nodes.clear()
        self._graph = None


class PyAVBackend:
    """Media backend driving FFmpeg through PyAV."""

    def open_input(self, path: str) -> PyAVInputContainer:
        return PyAVInputContainer(path)

    def open_frames(self, path: str, frames: Sequence[Any]) -> PyAVFramesContainer:
        return PyAVFramesContainer(path, frames)

    def create_decoder(self, container: PyAVInputContainer, stream_index: int) -> PyAVDecoder:
        info = container.streams[stream_index]
        ctx = container.stream(stream_index).codec_context
        return PyAVDecoder(ctx, stream_index, info.media_type, info.time_base)

    def create_codec_decoder(self, codec: str, width: int, height: int, stream_index: int = 0) -> PyAVDecoder:
        try:
            ctx = av.CodecContext.create(codec, "r")
        except (ValueError, av.error.FFmpegError) as exc:
            raise SetupError(f"Unable to find decoder {codec!r}") from exc
        ctx.width = width
        ctx.height = height
        return PyAVDecoder(ctx, stream_index, MediaType.VIDEO, Rational(1, 25))

    def codec_media_type(self, codec: str) -> MediaType | None:
        try:
            return _media_type(av.Codec(codec, "w").type)
        except (ValueError, av.error.FFmpegError):
            return None

    def create_encoder(self, codec: str, parameters: Mapping[str, ParamValue]) -> PyAVEncoder:
        media_type = self.codec_media_type(codec)
        if media_type is None:
            raise SetupError(f"Unable to find codec {codec!r}")
        return PyAVEncoder(codec, media_type, parameters)

    def open_output(self, path: str, parameters: Mapping[str, ParamValue]) -> PyAVOutputContainer:
        return PyAVOutputContainer(path, parameters)

    def allocate_graph(self) -> PyAVGraph:
        return PyAVGraph()
