"""DeepProbe report records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any
from uuid import UUID

from rich.console import Console
from rich.table import Table


@dataclass(slots=True)
class IntervalResult:
    """Closed interval in milliseconds."""

    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


SilenceResult = IntervalResult
BlackResult = IntervalResult
BlackFadeResult = IntervalResult
BlackAndSilenceResult = IntervalResult
DualMonoResult = IntervalResult
FreezeResult = IntervalResult


@dataclass(slots=True)
class CropResult:
    pts: int
    width: int
    height: int
    aspect_ratio: float


@dataclass(slots=True)
class SceneResult:
    frame_start: int
    frame_end: int
    frames_length: int
    score: int
    index: int


@dataclass(slots=True)
class FalseSceneResult:
    frame: int


@dataclass(slots=True)
class OcrResult:
    frame_start: int
    frame_end: int
    text: str
    confidence: str


@dataclass(slots=True)
class LoudnessWindow:
    min: float
    max: float


@dataclass(slots=True)
class LoudnessResult:
    integrated: float
    range: float
    true_peaks: list[float]
    momentary: LoudnessWindow | None = None
    short_term: LoudnessWindow | None = None


@dataclass(slots=True)
class SineResult:
    channel: int
    start: int
    end: int


_DETECTION_LABELS = {
    "detected_silence": "Silence detection",
    "silent_stream": "Silent stream",
    "detected_black": "Black detection",
    "detected_blackfade": "Black fade detection",
    "detected_black_and_silence": "Black and silence detection",
    "detected_crop": "Crop detection",
    "detected_scene": "Scene detection",
    "detected_false_scene": "False scene detection",
    "detected_ocr": "Media offline detection",
    "detected_loudness": "Loudness detection",
    "detected_dualmono": "DualMono detection",
    "detected_sine": "1000Hz detection",
    "detected_freeze": "Freeze detection",
    "detected_bitrate": "Bitrate detection",
}


def _plain(value: Any) -> Any:
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return {key: item for key, item in asdict(value).items() if item is not None}
    return value


@dataclass(slots=True)
class StreamProbeResult:
    """Per-stream aggregate; detection fields stay None unless that check ran."""

    stream_index: int
    count_packets: int = 0
    min_packet_size: int | None = None
    max_packet_size: int | None = None
    color_space: str | None = None
    color_range: str | None = None
    color_primaries: str | None = None
    color_trc: str | None = None
    color_matrix: str | None = None
    detected_silence: list[SilenceResult] | None = None
    silent_stream: bool | None = None
    detected_black: list[BlackResult] | None = None
    detected_blackfade: list[BlackFadeResult] | None = None
    detected_black_and_silence: list[BlackAndSilenceResult] | None = None
    detected_crop: list[CropResult] | None = None
    detected_scene: list[SceneResult] | None = None
    detected_false_scene: list[FalseSceneResult] | None = None
    detected_ocr: list[OcrResult] | None = None
    detected_loudness: list[LoudnessResult] | None = None
    detected_dualmono: list[DualMonoResult] | None = None
    detected_sine: list[SineResult] | None = None
    detected_freeze: list[FreezeResult] | None = None
    detected_bitrate: int | None = None

    def record_packet(self, size: int) -> None:
        self.count_packets += 1
        self.min_packet_size = size if self.min_packet_size is None else min(self.min_packet_size, size)
        self.max_packet_size = size if self.max_packet_size is None else max(self.max_packet_size, size)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "stream_index": self.stream_index,
            "count_packets": self.count_packets,
            "min_packet_size": self.min_packet_size or 0,
            "max_packet_size": self.max_packet_size or 0,
        }
        for item in fields(self):
            if item.name in payload:
                continue
            value = getattr(self, item.name)
            if value is not None:
                payload[item.name] = _plain(value)
        return payload


@dataclass(slots=True)
class FormatProbeResult:
    detected_bitrate_format: int | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.detected_bitrate_format is None:
            return {}
        return {"detected_bitrate_format": self.detected_bitrate_format}


@dataclass(slots=True)
class DeepProbeResult:
    streams: list[StreamProbeResult] = field(default_factory=list)
    format: FormatProbeResult = field(default_factory=FormatProbeResult)

    def to_dict(self) -> dict[str, Any]:
        return {
            "streams": [stream.to_dict() for stream in self.streams],
            "format": self.format.to_dict(),
        }

    def render_table(self) -> Table:
        """Return a rich table with one column per stream."""

        table = Table(title="Deep probe")
        table.add_column("Field", style="bold")
        for stream in self.streams:
            table.add_column(f"Stream {stream.stream_index}")

        def row(label: str, values: list[Any]) -> None:
            table.add_row(label, *["-" if value is None else str(value) for value in values])

        row("Number of packets", [stream.count_packets for stream in self.streams])
        row("Minimum packet size", [stream.min_packet_size for stream in self.streams])
        row("Maximum packet size", [stream.max_packet_size for stream in self.streams])
        row("Color space", [stream.color_space for stream in self.streams])
        row("Color range", [stream.color_range for stream in self.streams])
        row("Color primaries", [stream.color_primaries for stream in self.streams])
        row("Transfer characteristics", [stream.color_trc for stream in self.streams])
        row("Matrix coefficients", [stream.color_matrix for stream in self.streams])
        for name, label in _DETECTION_LABELS.items():
            values = [getattr(stream, name) for stream in self.streams]
            if all(value is None for value in values):
                continue
            row(label, [len(value) if isinstance(value, list) else value for value in values])
        if self.format.detected_bitrate_format is not None:
            table.caption = f"Container bitrate: {self.format.detected_bitrate_format}"
        return table

    def render_text(self, width: int = 120) -> str:
        console = Console(width=width)
        with console.capture() as capture:
            console.print(self.render_table())
        return capture.get()


@dataclass(slots=True)
class DeepProbeReport:
    """Serializable probe envelope: run id and optional result."""

    id: UUID
    result: DeepProbeResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "result": self.result.to_dict() if self.result is not None else None,
        }
