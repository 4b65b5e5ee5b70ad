from __future__ import annotations

from assay.config.schema import CheckParameterValue
from assay.probe.intervals import DurationBounds, clip_end_ms, entries_by_stream, track_intervals
from assay.probe.results import IntervalResult


START = "lavfi.black_start"
END = "lavfi.black_end"


def _track(entries, bounds=DurationBounds(), default_end=9960):
    return track_intervals(
        entries,
        start_key=START,
        end_key=END,
        bounds=bounds,
        default_end=default_end,
        frame_duration=0.04,
    )


def test_end_is_pulled_back_by_one_frame(make_entry):
    tracker = _track([make_entry(0, {START: 1.0}), make_entry(0, {END: 3.04})])

    assert tracker.intervals == [IntervalResult(start=1000, end=3000)]
    assert tracker.closed_count == 1
    assert tracker.unterminated is None


def test_open_interval_is_closed_at_default_end(make_entry):
    tracker = _track([make_entry(0, {START: 5.0})])

    assert tracker.intervals == [IntervalResult(start=5000, end=9960)]
    assert tracker.unterminated == IntervalResult(start=5000, end=9960)


def test_intervals_outside_bounds_are_dropped(make_entry):
    entries = [
        make_entry(0, {START: 1.0}),
        make_entry(0, {END: 1.54}),
        make_entry(0, {START: 2.0}),
        make_entry(0, {END: 4.04}),
    ]

    tracker = _track(entries, bounds=DurationBounds(min=1000, max=3000))

    assert tracker.intervals == [IntervalResult(start=2000, end=4000)]
    assert tracker.closed_count == 2


def test_end_never_precedes_start(make_entry):
    tracker = _track([make_entry(0, {START: 1.0}), make_entry(0, {END: 1.0})])

    assert tracker.intervals[0].start <= tracker.intervals[0].end


def test_bounds_come_from_duration_parameter():
    bounds = DurationBounds.from_params({"duration": CheckParameterValue(min=100, max=2000)})

    assert bounds.accepts(100)
    assert bounds.accepts(2000)
    assert not bounds.accepts(99)
    assert not bounds.accepts(2001)
    assert DurationBounds.from_params({}).accepts(10**9)


def test_clip_end_prefers_declared_duration():
    assert clip_end_ms(stream_duration=10.0, frame_duration=0.04, frame_rate=25, entry_count=0, qualifying_count=1) == 9960
    assert clip_end_ms(stream_duration=None, frame_duration=0.04, frame_rate=25, entry_count=500, qualifying_count=2) == 9960


def test_entries_are_grouped_by_stream(make_entry):
    grouped = entries_by_stream([make_entry(0), make_entry(2), make_entry(0)])

    assert {index: len(items) for index, items in grouped.items()} == {0: 2, 2: 1}
