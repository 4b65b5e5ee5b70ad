from __future__ import annotations

from assay.config.schema import CheckParameterValue
from assay.graph.parameters import Float
from assay.probe import black, blackfade, freeze
from assay.probe.details import VideoDetails
from assay.probe.intervals import DurationBounds
from assay.probe.results import BlackFadeResult, BlackResult, FreezeResult


DETAILS = {0: VideoDetails(frame_rate=25.0, stream_duration=10.0)}


def test_blackdetect_thresholds_become_filter_parameters():
    params = {
        "picture": CheckParameterValue(th=0.98),
        "pixel": CheckParameterValue(th=0.1),
    }

    spec = black.create_graph("clip.mov", [0], params)

    node = spec.graph[0]
    assert node.name == "blackdetect"
    assert node.parameters == {"picture_black_ratio_th": Float(0.98), "pixel_black_th": Float(0.1)}
    assert spec.outputs[0].keys == [black.START_KEY, black.END_KEY]


def test_black_intervals_respect_duration_bounds(make_entry):
    entries = [
        make_entry(0, {black.START_KEY: 1.0}),
        make_entry(0, {black.END_KEY: 3.04}),
        make_entry(0, {black.START_KEY: 5.0}),
        make_entry(0, {black.END_KEY: 5.08}),
    ]

    collected = black.collect_black(entries, video_indexes=[0], bounds=DurationBounds(min=100), details=DETAILS)

    assert collected == {0: [BlackResult(start=1000, end=3000)]}


def test_blackfade_kept_only_when_straddling_a_black_boundary(make_entry):
    entries = [
        make_entry(0, {black.START_KEY: 0.8}),
        make_entry(0, {black.END_KEY: 1.24}),
        make_entry(0, {black.START_KEY: 6.0}),
        make_entry(0, {black.END_KEY: 6.54}),
    ]
    blacks = {0: [BlackResult(start=1000, end=3000)]}

    collected = blackfade.collect_blackfade(
        entries,
        video_indexes=[0],
        bounds=DurationBounds(),
        details=DETAILS,
        blacks=blacks,
    )

    assert collected == {0: [BlackFadeResult(start=800, end=1200)]}


def test_blackfade_graph_uses_its_own_labels():
    spec = blackfade.create_graph("clip.mov", [0], {})

    assert spec.outputs[0].stream == "blackfade_video_output_0"


def test_freeze_open_until_end_of_stream(make_entry, duration_params):
    entries = [make_entry(0, {freeze.START_KEY: 8.0})]

    collected = freeze.collect_freeze(
        entries,
        video_indexes=[0],
        bounds=DurationBounds.from_params(duration_params(min=1000)),
        details=DETAILS,
    )

    assert collected == {0: [FreezeResult(start=8000, end=9960)]}


def test_freeze_graph_sets_noise_and_minimum_duration(duration_params):
    params = dict(duration_params(min=2000))
    params["noise"] = CheckParameterValue(th=0.001)

    spec = freeze.create_graph("clip.mov", [0], params)

    assert spec.graph[0].parameters["noise"] == Float(0.001)
    assert spec.graph[0].parameters["duration"].value == "2000ms"
