"""Correlation of black video spans with audio silences."""

from __future__ import annotations

from typing import Mapping

from assay.probe.common import CheckParams, ProbeContext
from assay.probe.intervals import DurationBounds
from assay.probe.results import BlackAndSilenceResult, BlackResult, SilenceResult


def overlap(black: BlackResult, silence: SilenceResult, frame_ms: int) -> BlackAndSilenceResult | None:
    """Return the overlap extended by one frame, None when they do not overlap."""

    start = max(black.start, silence.start)
    end = min(black.end, silence.end)
    if start >= end:
        return None
    return BlackAndSilenceResult(start=start, end=end + frame_ms)


def collect_black_and_silence(
    blacks: Mapping[int, list[BlackResult]],
    silences: Mapping[int, list[SilenceResult]],
    *,
    bounds: DurationBounds,
    frame_ms: int,
) -> dict[int, list[BlackAndSilenceResult]]:
    """Pair every black interval of every video stream with every silence.

    Results are keyed by audio stream index.
    """

    collected: dict[int, list[BlackAndSilenceResult]] = {index: [] for index in silences}
    for video_blacks in blacks.values():
        for item in video_blacks:
            for audio_index, audio_silences in silences.items():
                for silence in audio_silences:
                    event = overlap(item, silence, frame_ms)
                    if event is not None and bounds.accepts(event.end - event.start):
                        collected[audio_index].append(event)
    return collected


def detect_black_and_silence(context: ProbeContext, params: CheckParams) -> None:
    blacks = {index: context.streams[index].detected_black or [] for index in context.video_indexes}
    silences = {index: context.streams[index].detected_silence or [] for index in context.audio_indexes}
    collected = collect_black_and_silence(
        blacks,
        silences,
        bounds=DurationBounds.from_params(params),
        frame_ms=context.video.frame_duration_ms,
    )
    for index, events in collected.items():
        context.streams[index].detected_black_and_silence = events
