from __future__ import annotations

from assay.config.schema import CheckParameterValue
from assay.graph.parameters import Float
from assay.probe.details import VideoDetails
from assay.probe.results import FalseSceneResult, SceneResult
from assay.probe.scene import SCORE_KEY, TIME_KEY, SceneSegmenter, collect_scenes, create_graph


VIDEO = VideoDetails(frame_rate=25.0, nb_frames=500)


def test_threshold_is_passed_to_scdet():
    spec = create_graph("clip.mov", [0], {"threshold": CheckParameterValue(th=12.5)})

    assert spec.graph[0].name == "scdet"
    assert spec.graph[0].parameters == {"threshold": Float(12.5)}


def test_near_duplicate_cut_is_reported_as_false_scene(make_entry):
    entries = [
        make_entry(0, {TIME_KEY: 10.00, SCORE_KEY: 41.2}),
        make_entry(0, {TIME_KEY: 10.03, SCORE_KEY: 38.9}),
    ]

    scenes, false_scenes = collect_scenes(entries, video=VIDEO)

    assert scenes == [
        SceneResult(frame_start=250, frame_end=250, frames_length=1, score=41, index=1),
        SceneResult(frame_start=251, frame_end=499, frames_length=249, score=38, index=2),
    ]
    assert false_scenes == [FalseSceneResult(frame=251)]


def test_segments_are_contiguous():
    segmenter = SceneSegmenter(frame_rate=25.0, nb_frames=500)
    for time in (0.0, 4.0, 12.0):
        segmenter.cut(time, 30.0)

    scenes = segmenter.scenes
    assert [scene.index for scene in scenes] == [1, 2, 3]
    for previous, current in zip(scenes, scenes[1:]):
        assert previous.frame_end == current.frame_start - 1
    assert scenes[-1].frame_end == 499
    assert segmenter.false_scenes == []


def test_entries_without_cut_time_are_ignored(make_entry):
    scenes, false_scenes = collect_scenes([make_entry(0, {SCORE_KEY: 3.0})], video=VIDEO)

    assert scenes == []
    assert false_scenes == []
