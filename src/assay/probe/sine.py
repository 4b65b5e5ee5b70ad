"""1000 Hz tone detection from per-channel crest factor and zero crossings."""

from __future__ import annotations

import math

from assay.config.schema import Track
from assay.graph.parameters import Bool, Int64, String
from assay.order.results import Entry
from assay.order.spec import OrderSpec, OutputKind
from assay.probe.common import (
    CheckParams,
    ProbeContext,
    metadata_output,
    pairing_list,
    run_order,
    source_filter,
    streams_input,
)
from assay.probe.details import AudioDetails
from assay.probe.intervals import DurationBounds, entries_by_stream, to_ms
from assay.probe.results import SineResult


SINE_CREST_FACTOR = math.sqrt(2)
CREST_TOLERANCE = 1e-3
ZERO_CROSSINGS_PER_MS = 2.0
ZERO_CROSSINGS_TOLERANCE = 0.02
DEFAULT_SAMPLES_PER_FRAME = 1024

_FULL_SCALE = {
    "s16": float(2**15 - 1),
    "s32": float(2**31 - 1),
    "s64": float(2**63 - 1),
}


def sample_range(sample_format: str) -> float:
    """Full-scale value astats measures against; planar formats share their packed range."""

    return _FULL_SCALE.get(sample_format.removesuffix("p"), 1.0)


def crest_key(channel: int) -> str:
    return f"lavfi.astats.{channel}.Crest_factor"


def zero_crossings_key(channel: int) -> str:
    return f"lavfi.astats.{channel}.Zero_crossings"


def in_band(crest_factor: float) -> bool:
    return SINE_CREST_FACTOR - CREST_TOLERANCE <= crest_factor < SINE_CREST_FACTOR + CREST_TOLERANCE


def create_graph(path: str, channels: dict[int, int]) -> OrderSpec:
    spec = OrderSpec()
    for index, count in channels.items():
        source = f"sine_audio_input_{index}"
        sink = f"sine_audio_output_{index}"
        keys: list[str] = []
        for channel in range(1, count + 1):
            keys.extend([crest_key(channel), zero_crossings_key(channel)])
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(
            source_filter(
                "astats",
                f"astats_{index}",
                {"metadata": Bool(True), "reset": Int64(1)},
                sources=[source],
            )
        )
        spec.graph.append(source_filter("aformat", f"aformat_{index}", {"channel_layouts": String("mono")}, sink=sink))
        spec.outputs.append(metadata_output(OutputKind.AUDIO_METADATA, sink, keys))
    return spec


class ToneTracker:
    """Idle/tracking state machine for one channel of one stream.

    Frame positions are sample counts: the entry pts when the sink reports
    one, otherwise the previous position plus the last frame length. The
    crest factor is divided by ``full_scale`` before the band check. A
    candidate opens on the first in-band frame and is accepted when its
    zero crossings per millisecond are 2 and ``end - start`` fits the bounds.
    """

    def __init__(
        self,
        channel: int,
        *,
        sample_rate: int,
        samples_per_frame: int,
        bounds: DurationBounds,
        full_scale: float = 1.0,
    ) -> None:
        self.channel = channel
        self.sample_rate = sample_rate
        self.bounds = bounds
        self.full_scale = full_scale
        self.step = samples_per_frame
        self.position: int | None = None
        self.start: int | None = None
        self.zero_crossings = 0.0
        self.detected: list[SineResult] = []

    def sample_ms(self, position: int) -> int:
        return to_ms(position / self.sample_rate)

    def _next_position(self) -> int:
        return 0 if self.position is None else self.position + self.step

    def feed(self, crest_factor: float | None, zero_crossings: float | None, pts: int | None = None) -> None:
        position = pts if pts is not None else self._next_position()
        if self.position is not None and position > self.position:
            self.step = position - self.position
        if crest_factor is not None and in_band(crest_factor / self.full_scale):
            if self.start is None:
                self.start = self.sample_ms(position)
                self.zero_crossings = 0.0
            self.zero_crossings += zero_crossings or 0.0
        elif self.start is not None:
            self._close(end=self.sample_ms(self.position), duration=self.sample_ms(position) - self.start)
        self.position = position

    def finish(self, stream_end: int | None = None, stream_length: int | None = None) -> list[SineResult]:
        """Close a tone still open at the end of the stream.

        ``stream_end`` replaces the last frame time as the reported end;
        ``stream_length`` caps the measured duration when the last frame is short.
        """

        if self.start is not None:
            end = stream_end if stream_end is not None else self.sample_ms(self.position)
            duration = self.sample_ms(self._next_position()) - self.start
            if stream_length is not None:
                duration = min(duration, stream_length - self.start)
            self._close(end=end, duration=duration)
        return self.detected

    def _close(self, *, end: int, duration: int) -> None:
        start = self.start
        crossings = self.zero_crossings
        self.start = None
        self.zero_crossings = 0.0
        if start is None or duration <= 0:
            return
        end = max(end, start)
        if abs(crossings / duration - ZERO_CROSSINGS_PER_MS) > ZERO_CROSSINGS_TOLERANCE:
            return
        if not self.bounds.accepts(end - start):
            return
        self.detected.append(SineResult(channel=self.channel, start=start, end=end))


def collect_sine(
    entries: list[Entry],
    *,
    channels: int,
    audio: AudioDetails,
    bounds: DurationBounds,
    stream_end: int | None = None,
    stream_length: int | None = None,
) -> list[SineResult]:
    trackers = [
        ToneTracker(
            channel,
            sample_rate=audio.sample_rate,
            samples_per_frame=audio.samples_per_frame or DEFAULT_SAMPLES_PER_FRAME,
            bounds=bounds,
            full_scale=sample_range(audio.sample_format),
        )
        for channel in range(1, channels + 1)
    ]
    for entry in entries:
        for tracker in trackers:
            tracker.feed(
                entry.get_float(crest_key(tracker.channel)),
                entry.get_float(zero_crossings_key(tracker.channel)),
                entry.pts,
            )
    detected: list[SineResult] = []
    for tracker in trackers:
        detected.extend(tracker.finish(stream_end, stream_length))
    return detected


def detect_sine(context: ProbeContext, params: CheckParams) -> None:
    groups = pairing_list(params, "sine_detect")
    channels: dict[int, int] = {}
    for index in context.audio_indexes:
        channels[index] = Track.get_channels_number(groups, index) or context.audio_for(index).channels
    entries = run_order(context, create_graph(context.path, channels))
    grouped = entries_by_stream(entries)
    bounds = DurationBounds.from_params(params)
    frame_duration = context.video.frame_duration
    for index, count in channels.items():
        audio = context.audio_for(index)
        stream_end = stream_length = None
        if audio.stream_duration is not None:
            stream_end = max(0, to_ms(audio.stream_duration - frame_duration))
            stream_length = to_ms(audio.stream_duration)
        context.streams[index].detected_sine = collect_sine(
            grouped.get(index, []),
            channels=count,
            audio=audio,
            bounds=bounds,
            stream_end=stream_end,
            stream_length=stream_length,
        )
