"""Frozen picture detection on video streams."""

from __future__ import annotations

from assay.graph.parameters import Float, ParamValue, String
from assay.order.results import Entry
from assay.order.spec import OrderSpec, OutputKind
from assay.probe.common import (
    CheckParams,
    ProbeContext,
    metadata_output,
    run_order,
    source_filter,
    streams_input,
    threshold,
)
from assay.probe.details import VideoDetails
from assay.probe.intervals import DurationBounds, clip_end_ms, entries_by_stream, track_intervals
from assay.probe.results import FreezeResult


START_KEY = "lavfi.freezedetect.freeze_start"
END_KEY = "lavfi.freezedetect.freeze_end"
DURATION_KEY = "lavfi.freezedetect.freeze_duration"


def create_graph(path: str, video_indexes: list[int], params: CheckParams) -> OrderSpec:
    parameters: dict[str, ParamValue] = {}
    bounds = DurationBounds.from_params(params)
    if bounds.min is not None:
        parameters["duration"] = String(f"{bounds.min}ms")
    noise = threshold(params, "noise")
    if noise is not None:
        parameters["noise"] = Float(noise)

    spec = OrderSpec()
    for index in video_indexes:
        source = f"freeze_video_input_{index}"
        sink = f"freeze_video_output_{index}"
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(source_filter("freezedetect", f"freezedetect_{index}", dict(parameters), sources=[source], sink=sink))
        spec.outputs.append(metadata_output(OutputKind.VIDEO_METADATA, sink, [START_KEY, END_KEY, DURATION_KEY]))
    return spec


def collect_freeze(
    entries: list[Entry],
    *,
    video_indexes: list[int],
    bounds: DurationBounds,
    details: dict[int, VideoDetails],
) -> dict[int, list[FreezeResult]]:
    grouped = entries_by_stream(entries)
    collected: dict[int, list[FreezeResult]] = {}
    for index in video_indexes:
        video = details[index]
        stream_entries = grouped.get(index, [])
        tracker = track_intervals(
            stream_entries,
            start_key=START_KEY,
            end_key=END_KEY,
            bounds=bounds,
            default_end=clip_end_ms(
                stream_duration=video.stream_duration,
                frame_duration=video.frame_duration,
                frame_rate=video.frame_rate,
                entry_count=len(stream_entries),
                qualifying_count=1,
            ),
            frame_duration=video.frame_duration,
        )
        collected[index] = tracker.intervals
    return collected


def detect_freeze(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.video_indexes, params))
    collected = collect_freeze(
        entries,
        video_indexes=context.video_indexes,
        bounds=DurationBounds.from_params(params),
        details={index: context.video_for(index) for index in context.video_indexes},
    )
    for index, freezes in collected.items():
        context.streams[index].detected_freeze = freezes
