"""Silence detection on audio streams."""

from __future__ import annotations

from typing import Mapping

from assay.graph.parameters import ParamValue, String
from assay.order.results import Entry
from assay.order.spec import OrderSpec, OutputKind
from assay.probe.common import (
    CheckParams,
    ProbeContext,
    metadata_output,
    run_order,
    source_filter,
    streams_input,
)
from assay.probe.details import VideoDetails
from assay.probe.intervals import DurationBounds, clip_end_ms, entries_by_stream, track_intervals
from assay.probe.results import SilenceResult


START_KEY = "lavfi.silence_start"
END_KEY = "lavfi.silence_end"
DURATION_KEY = "lavfi.silence_duration"


def create_graph(path: str, audio_indexes: list[int], params: CheckParams) -> OrderSpec:
    spec = OrderSpec()
    for index in audio_indexes:
        source = f"audio_input_{index}"
        sink = f"audio_output_{index}"
        detect_params: dict[str, ParamValue] = {}
        bounds = DurationBounds.from_params(params)
        if bounds.min is not None:
            detect_params["duration"] = String(f"{bounds.min}ms")
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(source_filter("silencedetect", f"silencedetect_{index}", detect_params, sources=[source]))
        spec.graph.append(source_filter("aformat", f"aformat_{index}", {"channel_layouts": String("mono")}, sink=sink))
        spec.outputs.append(metadata_output(OutputKind.AUDIO_METADATA, sink, [START_KEY, END_KEY, DURATION_KEY]))
    return spec


def collect_silence(
    entries: list[Entry],
    *,
    audio_indexes: list[int],
    bounds: DurationBounds,
    video: VideoDetails,
    stream_durations: Mapping[int, float | None],
) -> dict[int, tuple[list[SilenceResult], bool]]:
    """Return per-stream silences and whether the whole stream is silent."""

    grouped = entries_by_stream(entries)
    collected: dict[int, tuple[list[SilenceResult], bool]] = {}
    for index in audio_indexes:
        clip_end = clip_end_ms(
            stream_duration=stream_durations.get(index),
            frame_duration=video.frame_duration,
            frame_rate=video.frame_rate,
            entry_count=len(entries),
            qualifying_count=len(audio_indexes),
        )
        tracker = track_intervals(
            grouped.get(index, []),
            start_key=START_KEY,
            end_key=END_KEY,
            bounds=bounds,
            default_end=clip_end,
            frame_duration=video.frame_duration,
        )
        open_span = tracker.unterminated
        silent = (
            tracker.closed_count == 0
            and open_span is not None
            and open_span.start == 0
            and open_span.end == clip_end
        )
        collected[index] = (tracker.intervals, silent)
    return collected


def detect_silence(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.audio_indexes, params))
    collected = collect_silence(
        entries,
        audio_indexes=context.audio_indexes,
        bounds=DurationBounds.from_params(params),
        video=context.video,
        stream_durations={index: context.audio_for(index).stream_duration for index in context.audio_indexes},
    )
    for index, (silences, silent) in collected.items():
        context.streams[index].detected_silence = silences
        context.streams[index].silent_stream = silent
