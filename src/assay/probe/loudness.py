"""EBU R128 loudness metering per pairing group."""

from __future__ import annotations

import math
from dataclasses import dataclass

from assay.config.schema import Track
from assay.graph.parameters import Int64, ParamValue, String
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
from assay.probe.intervals import entries_by_stream
from assay.probe.results import LoudnessResult, LoudnessWindow


INTEGRATED_KEY = "lavfi.r128.I"
RANGE_KEY = "lavfi.r128.LRA"
MOMENTARY_KEY = "lavfi.r128.M"
SHORT_TERM_KEY = "lavfi.r128.S"
TRUE_PEAK_KEYS = [f"lavfi.r128.true_peaks_ch{channel}" for channel in range(9)]

OUTPUT_SAMPLE_RATE = 48000
MOMENTARY_SETTLE_SECONDS = 0.3
SHORT_TERM_SETTLE_SECONDS = 3.0
FLOOR_DB = -99.0
SILENT_INTEGRATED = -70.0

LAYOUTS = {1: "mono", 2: "stereo", 6: "5.1", 8: "7.1"}


def _aformat_parameters(channels: int) -> dict[str, ParamValue]:
    parameters: dict[str, ParamValue] = {
        "sample_fmts": String("s16"),
        "sample_rates": String(str(OUTPUT_SAMPLE_RATE)),
    }
    layout = LAYOUTS.get(channels)
    if layout is not None:
        parameters["channel_layouts"] = String(layout)
    return parameters


def create_graph(path: str, groups: list[list[Track]]) -> OrderSpec:
    """One input, one meter chain and one sink per pairing group."""

    ebur128: dict[str, ParamValue] = {"metadata": String("true"), "peak": String("true")}
    spec = OrderSpec()
    for position, group in enumerate(groups):
        labels = {track.index: f"loudness_audio_input_{track.index}" for track in group}
        sink = f"loudness_audio_output_{position}"
        spec.inputs.append(streams_input(position + 1, path, labels))
        if len(group) > 1:
            spec.graph.append(
                source_filter(
                    "amerge",
                    f"amerge_{position}",
                    {"inputs": Int64(len(group))},
                    sources=list(labels.values()),
                )
            )
            spec.graph.append(source_filter("ebur128", f"ebur128_{position}", dict(ebur128)))
        else:
            spec.graph.append(
                source_filter("ebur128", f"ebur128_{position}", dict(ebur128), sources=list(labels.values()))
            )
        channels = sum(track.channel for track in group)
        spec.graph.append(source_filter("aformat", f"aformat_{position}", _aformat_parameters(channels), sink=sink))
        keys = [INTEGRATED_KEY, RANGE_KEY, MOMENTARY_KEY, SHORT_TERM_KEY, *TRUE_PEAK_KEYS]
        spec.outputs.append(metadata_output(OutputKind.AUDIO_METADATA, sink, keys))
    return spec


def true_peak_db(energy: float) -> float:
    """Linear true-peak energy to dB, floored at -99 for silence."""

    if energy <= 0:
        return FLOOR_DB
    return round(20 * math.log10(energy), 2)


def integrated_loudness(value: float) -> float:
    rounded = round(value, 2)
    return FLOOR_DB if rounded == SILENT_INTEGRATED else rounded


def channel_slice(group: list[Track], index: int) -> slice:
    """Return the true-peak channel range a stream occupies in its group."""

    start = 0
    for track in group:
        if track.index == index:
            return slice(start, start + track.channel)
        start += track.channel
    return slice(0, 0)


@dataclass(slots=True)
class _Window:
    settle_seconds: float
    low: float | None = None
    high: float | None = None

    def sample(self, seconds: float, value: float | None) -> None:
        if value is None or seconds < self.settle_seconds:
            return
        self.low = value if self.low is None else min(self.low, value)
        self.high = value if self.high is None else max(self.high, value)

    def result(self) -> LoudnessWindow | None:
        if self.low is None or self.high is None:
            return None
        return LoudnessWindow(min=self.low, max=self.high)


def collect_loudness(entries: list[Entry], *, group: list[Track], index: int) -> LoudnessResult | None:
    """Fold one stream's entries; the last measurement wins."""

    momentary = _Window(MOMENTARY_SETTLE_SECONDS)
    short_term = _Window(SHORT_TERM_SETTLE_SECONDS)
    latest: Entry | None = None
    for entry in entries:
        seconds = (entry.pts or 0) / OUTPUT_SAMPLE_RATE
        momentary.sample(seconds, entry.get_float(MOMENTARY_KEY))
        short_term.sample(seconds, entry.get_float(SHORT_TERM_KEY))
        if entry.get(INTEGRATED_KEY) is not None:
            latest = entry
    if latest is None:
        return None
    integrated = latest.get_float(INTEGRATED_KEY)
    loudness_range = latest.get_float(RANGE_KEY)

    peaks = [true_peak_db(value) for key in TRUE_PEAK_KEYS if (value := latest.get_float(key)) is not None]
    if len(group) > 1:
        peaks = peaks[channel_slice(group, index)]
    return LoudnessResult(
        integrated=integrated_loudness(integrated if integrated is not None else SILENT_INTEGRATED),
        range=round(loudness_range, 2) if loudness_range is not None else 0.0,
        true_peaks=peaks,
        momentary=momentary.result(),
        short_term=short_term.result(),
    )


def detect_loudness(context: ProbeContext, params: CheckParams) -> None:
    groups = pairing_list(params, "loudness_detect")
    entries = run_order(context, create_graph(context.path, groups))
    grouped = entries_by_stream(entries)
    for group in groups:
        for track in group:
            result = collect_loudness(grouped.get(track.index, []), group=group, index=track.index)
            context.streams[track.index].detected_loudness = [result] if result is not None else []
