"""Black fade detection: black-ish spans that straddle a black boundary."""

from __future__ import annotations

from typing import Mapping

from assay.order.results import Entry
from assay.order.spec import OrderSpec
from assay.probe import black
from assay.probe.common import CheckParams, ProbeContext, run_order
from assay.probe.details import VideoDetails
from assay.probe.intervals import DurationBounds, clip_end_ms, entries_by_stream, track_intervals
from assay.probe.results import BlackFadeResult, BlackResult


def create_graph(path: str, video_indexes: list[int], params: CheckParams) -> OrderSpec:
    return black.create_graph(path, video_indexes, params, prefix="blackfade")


def straddles_black(fade: BlackFadeResult, blacks: list[BlackResult]) -> bool:
    """True when a black interval starts or ends strictly inside the fade."""

    for item in blacks:
        if fade.start < item.start <= fade.end or fade.start <= item.end < fade.end:
            return True
    return False


def collect_blackfade(
    entries: list[Entry],
    *,
    video_indexes: list[int],
    bounds: DurationBounds,
    details: Mapping[int, VideoDetails],
    blacks: Mapping[int, list[BlackResult] | None],
) -> dict[int, list[BlackFadeResult]]:
    grouped = entries_by_stream(entries)
    collected: dict[int, list[BlackFadeResult]] = {}
    for index in video_indexes:
        video = details[index]
        stream_entries = grouped.get(index, [])
        tracker = track_intervals(
            stream_entries,
            start_key=black.START_KEY,
            end_key=black.END_KEY,
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
        known_blacks = blacks.get(index) or []
        collected[index] = [fade for fade in tracker.intervals if straddles_black(fade, known_blacks)]
    return collected


def detect_blackfade(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.video_indexes, params))
    collected = collect_blackfade(
        entries,
        video_indexes=context.video_indexes,
        bounds=DurationBounds.from_params(params),
        details={index: context.video_for(index) for index in context.video_indexes},
        blacks={index: context.streams[index].detected_black for index in context.video_indexes},
    )
    for index, fades in collected.items():
        context.streams[index].detected_blackfade = fades
