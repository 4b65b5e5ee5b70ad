"""Black frame detection on video streams."""

from __future__ import annotations

from assay.graph.parameters import Float, ParamValue
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
from assay.probe.results import BlackResult


START_KEY = "lavfi.black_start"
END_KEY = "lavfi.black_end"


def blackdetect_parameters(params: CheckParams) -> dict[str, ParamValue]:
    parameters: dict[str, ParamValue] = {}
    picture = threshold(params, "picture")
    if picture is not None:
        parameters["picture_black_ratio_th"] = Float(picture)
    pixel = threshold(params, "pixel")
    if pixel is not None:
        parameters["pixel_black_th"] = Float(pixel)
    return parameters


def create_graph(path: str, video_indexes: list[int], params: CheckParams, *, prefix: str = "black") -> OrderSpec:
    spec = OrderSpec()
    for index in video_indexes:
        source = f"{prefix}_video_input_{index}"
        sink = f"{prefix}_video_output_{index}"
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(
            source_filter(
                "blackdetect",
                f"{prefix}detect_{index}",
                blackdetect_parameters(params),
                sources=[source],
                sink=sink,
            )
        )
        spec.outputs.append(metadata_output(OutputKind.VIDEO_METADATA, sink, [START_KEY, END_KEY]))
    return spec


def collect_black(
    entries: list[Entry],
    *,
    video_indexes: list[int],
    bounds: DurationBounds,
    details: dict[int, VideoDetails],
) -> dict[int, list[BlackResult]]:
    grouped = entries_by_stream(entries)
    collected: dict[int, list[BlackResult]] = {}
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


def detect_black(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.video_indexes, params))
    collected = collect_black(
        entries,
        video_indexes=context.video_indexes,
        bounds=DurationBounds.from_params(params),
        details={index: context.video_for(index) for index in context.video_indexes},
    )
    for index, blacks in collected.items():
        context.streams[index].detected_black = blacks
