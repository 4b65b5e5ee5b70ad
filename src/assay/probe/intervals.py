"""Open/close interval tracking with duration-bound rejection."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Mapping

from assay.config.schema import CheckParameterValue
from assay.order.results import Entry
from assay.probe.results import IntervalResult


@dataclass(frozen=True, slots=True)
class DurationBounds:
    """Inclusive `[min, max]` duration window in milliseconds."""

    min: int | None = None
    max: int | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, CheckParameterValue], key: str = "duration") -> DurationBounds:
        value = params.get(key)
        if value is None:
            return cls()
        return cls(min=value.min, max=value.max)

    def accepts(self, duration: int) -> bool:
        if self.min is not None and duration < self.min:
            return False
        if self.max is not None and duration > self.max:
            return False
        return True


def to_ms(seconds: float) -> int:
    return round(seconds * 1000)


def clip_end_ms(
    *,
    stream_duration: float | None,
    frame_duration: float,
    frame_rate: float,
    entry_count: int,
    qualifying_count: int,
) -> int:
    """Return the default end of an interval still open at end of stream.

    The declared stream duration wins; otherwise the end is inferred from the
    number of entries each qualifying stream produced.
    """

    if stream_duration is not None:
        return max(0, to_ms(stream_duration - frame_duration))
    if qualifying_count <= 0 or frame_rate <= 0:
        return 0
    return max(0, to_ms((entry_count / qualifying_count - 1) / frame_rate))


def entries_by_stream(entries: Iterable[Entry]) -> dict[int, list[Entry]]:
    grouped: dict[int, list[Entry]] = defaultdict(list)
    for entry in entries:
        if entry.stream_id is not None:
            grouped[entry.stream_id].append(entry)
    return dict(grouped)


class IntervalTracker:
    """Pairs `<tag>_start` / `<tag>_end` entries into bounded intervals.

    A start opens an interval ending at `default_end`. An end closes the most
    recent open interval one frame earlier than reported. Any interval whose
    `end - start` falls outside `bounds` is dropped, including one still open
    at `finish()`, which is kept aside as `unterminated` either way.
    """

    def __init__(
        self,
        *,
        start_key: str,
        end_key: str,
        bounds: DurationBounds,
        default_end: int,
        frame_duration: float,
    ) -> None:
        self.start_key = start_key
        self.end_key = end_key
        self.bounds = bounds
        self.default_end = default_end
        self.frame_duration = frame_duration
        self.intervals: list[IntervalResult] = []
        self.closed_count = 0
        self.unterminated: IntervalResult | None = None
        self._open: IntervalResult | None = None

    def feed(self, entry: Entry) -> None:
        start = entry.get_float(self.start_key)
        if start is not None:
            self._open = IntervalResult(start=to_ms(start), end=self.default_end)
            self.intervals.append(self._open)

        end = entry.get_float(self.end_key)
        if end is not None and self._open is not None:
            interval = self._open
            self._open = None
            self.closed_count += 1
            interval.end = max(interval.start, to_ms(end - self.frame_duration))
            self._apply_bounds(interval)

    def _apply_bounds(self, interval: IntervalResult) -> None:
        if not self.bounds.accepts(interval.end - interval.start):
            self.intervals = [item for item in self.intervals if item is not interval]

    def finish(self) -> list[IntervalResult]:
        if self._open is not None:
            interval = self._open
            self._open = None
            interval.end = max(interval.start, interval.end)
            self.unterminated = IntervalResult(start=interval.start, end=interval.end)
            self._apply_bounds(interval)
        return self.intervals


def track_intervals(
    entries: Iterable[Entry],
    *,
    start_key: str,
    end_key: str,
    bounds: DurationBounds,
    default_end: int,
    frame_duration: float,
) -> IntervalTracker:
    """Feed every entry to a fresh tracker and finish it."""

    tracker = IntervalTracker(
        start_key=start_key,
        end_key=end_key,
        bounds=bounds,
        default_end=default_end,
        frame_duration=frame_duration,
    )
    for entry in entries:
        tracker.feed(entry)
    tracker.finish()
    return tracker
