from __future__ import annotations

import pytest

from assay.config.schema import Track
from assay.graph.parameters import Int64, String
from assay.probe.loudness import (
    INTEGRATED_KEY,
    MOMENTARY_KEY,
    RANGE_KEY,
    SHORT_TERM_KEY,
    channel_slice,
    collect_loudness,
    create_graph,
    integrated_loudness,
    true_peak_db,
)
from assay.probe.results import LoudnessWindow


STEREO = [Track(index=1, channel=2)]
DUAL_MONO = [Track(index=1, channel=1), Track(index=2, channel=1)]


def test_single_stream_group_meters_directly():
    spec = create_graph("clip.mov", [STEREO])

    assert [node.name for node in spec.graph] == ["ebur128", "aformat"]
    assert spec.inputs[0].id == 1
    assert spec.graph[1].parameters["channel_layouts"] == String("stereo")
    assert spec.graph[1].parameters["sample_rates"] == String("48000")


def test_multi_stream_group_is_merged_first():
    spec = create_graph("clip.mov", [STEREO, DUAL_MONO])

    merge = spec.graph[2]
    assert merge.name == "amerge"
    assert merge.parameters == {"inputs": Int64(2)}
    assert [item.stream_label for item in merge.inputs] == ["loudness_audio_input_1", "loudness_audio_input_2"]
    assert [item.id for item in spec.inputs] == [1, 2]
    assert spec.outputs[1].stream == "loudness_audio_output_1"


def test_unknown_channel_count_leaves_layout_unset():
    spec = create_graph("clip.mov", [[Track(index=1, channel=3)]])

    assert "channel_layouts" not in spec.graph[1].parameters


def test_peak_and_integrated_conversions():
    assert true_peak_db(1.0) == 0.0
    assert true_peak_db(0.5) == pytest.approx(-6.02)
    assert true_peak_db(0.0) == -99.0
    assert integrated_loudness(-70.0) == -99.0
    assert integrated_loudness(-23.456) == -23.46


def test_channel_slice_follows_group_order():
    group = [Track(index=1, channel=2), Track(index=2, channel=1)]

    assert channel_slice(group, 1) == slice(0, 2)
    assert channel_slice(group, 2) == slice(2, 3)


def test_last_measurement_wins_and_windows_settle(make_entry):
    entries = [
        make_entry(1, {MOMENTARY_KEY: -10.0, SHORT_TERM_KEY: -10.0}, pts=0),
        make_entry(1, {MOMENTARY_KEY: -20.0, SHORT_TERM_KEY: -21.0, INTEGRATED_KEY: -30.0}, pts=24000),
        make_entry(
            1,
            {
                MOMENTARY_KEY: -18.0,
                SHORT_TERM_KEY: -19.0,
                INTEGRATED_KEY: -23.456,
                RANGE_KEY: 7.891,
                "lavfi.r128.true_peaks_ch0": 1.0,
                "lavfi.r128.true_peaks_ch1": 0.5,
            },
            pts=192000,
        ),
    ]

    result = collect_loudness(entries, group=STEREO, index=1)

    assert result is not None
    assert result.integrated == -23.46
    assert result.range == 7.89
    assert result.true_peaks == [0.0, pytest.approx(-6.02)]
    assert result.momentary == LoudnessWindow(min=-20.0, max=-18.0)
    assert result.short_term == LoudnessWindow(min=-19.0, max=-19.0)


def test_group_member_gets_its_own_peaks(make_entry):
    tags = {INTEGRATED_KEY: -24.0, "lavfi.r128.true_peaks_ch0": 1.0, "lavfi.r128.true_peaks_ch1": 0.0}

    first = collect_loudness([make_entry(1, tags)], group=DUAL_MONO, index=1)
    second = collect_loudness([make_entry(2, tags)], group=DUAL_MONO, index=2)

    assert first.true_peaks == [0.0]
    assert second.true_peaks == [-99.0]


def test_no_measurement_gives_none(make_entry):
    assert collect_loudness([make_entry(1, {MOMENTARY_KEY: -10.0})], group=STEREO, index=1) is None
