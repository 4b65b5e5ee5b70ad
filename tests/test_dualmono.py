from __future__ import annotations

import logging

from assay.config.schema import Track
from assay.graph.parameters import Bool, String
from assay.probe.details import VideoDetails
from assay.probe.dualmono import END_KEY, START_KEY, collect_dualmono, create_graph, stereo_groups
from assay.probe.intervals import DurationBounds
from assay.probe.results import DualMonoResult


STEREO = [Track(index=1, channel=2)]
PAIR = [Track(index=2, channel=1), Track(index=3, channel=1)]
SURROUND = [Track(index=4, channel=6)]


def test_only_stereo_equivalent_groups_are_kept(caplog):
    with caplog.at_level(logging.WARNING):
        kept = stereo_groups([STEREO, PAIR, SURROUND])

    assert kept == [STEREO, PAIR]
    assert "probe.dualmono.group_skipped" in caplog.text


def test_graph_merges_mono_pairs(duration_params):
    spec = create_graph("clip.mov", [STEREO, PAIR], duration_params(min=1000))

    names = [node.name for node in spec.graph]
    assert names == ["aphasemeter", "aformat", "amerge", "aphasemeter", "aformat"]
    meter = spec.graph[0].parameters
    assert meter["video"] == Bool(False)
    assert meter["phasing"] == Bool(True)
    assert meter["duration"] == String("1000ms")
    assert spec.graph[1].parameters == {"channel_layouts": String("mono")}


def test_mono_spans_are_reported_for_each_group_member(make_entry):
    entries = [
        make_entry(2, {START_KEY: 1.0}),
        make_entry(3, {START_KEY: 1.0}),
        make_entry(2, {END_KEY: 2.04}),
        make_entry(3, {END_KEY: 2.04}),
    ]

    collected = collect_dualmono(
        entries,
        groups=[PAIR],
        bounds=DurationBounds(),
        video=VideoDetails(frame_rate=25.0),
        stream_durations={2: 10.0, 3: 10.0},
    )

    assert collected == {2: [DualMonoResult(start=1000, end=2000)], 3: [DualMonoResult(start=1000, end=2000)]}


def test_open_span_runs_to_clip_end(make_entry):
    collected = collect_dualmono(
        [make_entry(1, {START_KEY: 6.0})],
        groups=[STEREO],
        bounds=DurationBounds(),
        video=VideoDetails(frame_rate=25.0),
        stream_durations={1: 10.0},
    )

    assert collected == {1: [DualMonoResult(start=6000, end=9960)]}
