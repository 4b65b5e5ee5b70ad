"""Dual-mono detection: phase comparison of stereo-equivalent groups."""

from __future__ import annotations

import logging

from assay.config.schema import Track
from assay.graph.parameters import Bool, Float, Int64, ParamValue, String
from assay.observability.logging import get_logger, log_event
from assay.order.results import Entry
from assay.order.spec import OrderSpec, OutputKind
from assay.probe.common import (
    CheckParams,
    ProbeContext,
    is_stereo_equivalent,
    metadata_output,
    pairing_list,
    run_order,
    source_filter,
    streams_input,
)
from assay.probe.details import VideoDetails
from assay.probe.intervals import DurationBounds, clip_end_ms, entries_by_stream, track_intervals
from assay.probe.results import DualMonoResult


_LOGGER = get_logger("assay.probe.dualmono")

START_KEY = "lavfi.aphasemeter.mono_start"
END_KEY = "lavfi.aphasemeter.mono_end"
DURATION_KEY = "lavfi.aphasemeter.mono_duration"


def stereo_groups(groups: list[list[Track]]) -> list[list[Track]]:
    """Keep the groups that form one stereo pair, logging the others."""

    kept: list[list[Track]] = []
    for group in groups:
        if is_stereo_equivalent(group):
            kept.append(group)
        else:
            log_event(
                _LOGGER,
                "probe.dualmono.group_skipped",
                level=logging.WARNING,
                tracks=[f"{track.index}:{track.channel}" for track in group],
            )
    return kept


def create_graph(path: str, groups: list[list[Track]], params: CheckParams) -> OrderSpec:
    aphasemeter: dict[str, ParamValue] = {
        "video": Bool(False),
        "phasing": Bool(True),
        "tolerance": Float(0.001),
    }
    bounds = DurationBounds.from_params(params)
    if bounds.min is not None:
        aphasemeter["duration"] = String(f"{bounds.min}ms")

    spec = OrderSpec()
    for position, group in enumerate(groups):
        labels = {track.index: f"dualmono_audio_input_{track.index}" for track in group}
        sink = f"dualmono_audio_output_{position}"
        spec.inputs.append(streams_input(position, path, labels))
        if len(group) > 1:
            spec.graph.append(
                source_filter(
                    "amerge",
                    f"amerge_{position}",
                    {"inputs": Int64(len(group))},
                    sources=list(labels.values()),
                )
            )
            spec.graph.append(source_filter("aphasemeter", f"aphasemeter_{position}", dict(aphasemeter)))
        else:
            spec.graph.append(
                source_filter("aphasemeter", f"aphasemeter_{position}", dict(aphasemeter), sources=list(labels.values()))
            )
        spec.graph.append(source_filter("aformat", f"aformat_{position}", {"channel_layouts": String("mono")}, sink=sink))
        spec.outputs.append(metadata_output(OutputKind.AUDIO_METADATA, sink, [START_KEY, END_KEY, DURATION_KEY]))
    return spec


def collect_dualmono(
    entries: list[Entry],
    *,
    groups: list[list[Track]],
    bounds: DurationBounds,
    video: VideoDetails,
    stream_durations: dict[int, float | None],
) -> dict[int, list[DualMonoResult]]:
    grouped = entries_by_stream(entries)
    qualifying = sum(len(group) for group in groups)
    collected: dict[int, list[DualMonoResult]] = {}
    for group in groups:
        for track in group:
            tracker = track_intervals(
                grouped.get(track.index, []),
                start_key=START_KEY,
                end_key=END_KEY,
                bounds=bounds,
                default_end=clip_end_ms(
                    stream_duration=stream_durations.get(track.index),
                    frame_duration=video.frame_duration,
                    frame_rate=video.frame_rate,
                    entry_count=len(entries),
                    qualifying_count=qualifying,
                ),
                frame_duration=video.frame_duration,
            )
            collected[track.index] = tracker.intervals
    return collected


def detect_dualmono(context: ProbeContext, params: CheckParams) -> None:
    groups = stereo_groups(pairing_list(params, "dualmono_detect"))
    for index in context.audio_indexes:
        context.streams[index].detected_dualmono = []
    if not groups:
        return
    entries = run_order(context, create_graph(context.path, groups, params))
    collected = collect_dualmono(
        entries,
        groups=groups,
        bounds=DurationBounds.from_params(params),
        video=context.video,
        stream_durations={
            track.index: context.audio_for(track.index).stream_duration for group in groups for track in group
        },
    )
    for index, intervals in collected.items():
        context.streams[index].detected_dualmono = intervals
