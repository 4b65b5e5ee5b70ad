from __future__ import annotations

import pytest

from assay.errors import ArityMismatch, FilterNotFound, GraphConfigError, UnknownLabel
from assay.graph.filter_graph import FilterGraph, LabeledFrame
from assay.graph.parameters import Rational, String
from assay.order.spec import FilterSpec
from fakes import FakeBackend, FakeDecoder, FakeFrame, audio_stream, video_stream


def _audio_graph(backend: FakeBackend) -> FilterGraph:
    graph = FilterGraph(backend)
    graph.add_input_from_audio_decoder("a_in", FakeDecoder(audio_stream(1)))
    graph.add_audio_output("a_out")
    node = graph.add_filter(FilterSpec(name="aformat", parameters={"channel_layouts": String("mono")}))
    graph.connect_input("a_in", 0, node, 0)
    graph.connect_output(node, 0, "a_out")
    return graph


def test_sources_receive_decoder_parameters():
    backend = FakeBackend()
    graph = FilterGraph(backend)
    audio = graph.add_input_from_audio_decoder("a_in", FakeDecoder(audio_stream(1)))
    video = graph.add_input_from_video_decoder("v_in", FakeDecoder(video_stream(0, time_base=Rational(0, 1))))

    assert audio.options["sample_rate"] == 48000
    assert audio.options["time_base"] == Rational(1, 48000)
    assert audio.options["channels"] == 2
    assert video.options["time_base"] == Rational(1, 25)
    assert video.options["width"] == 1920
    assert graph.audio_input_labels == ["a_in"]
    assert graph.video_input_labels == ["v_in"]


def test_filter_label_defaults_to_name_and_position():
    graph = FilterGraph(FakeBackend())
    node = graph.add_filter(FilterSpec(name="volume"))

    assert node.label == "volume_0"
    assert node.initialised


def test_unknown_filter_is_reported():
    graph = FilterGraph(FakeBackend(unknown_filters={"nosuchfilter"}))

    with pytest.raises(FilterNotFound):
        graph.add_filter(FilterSpec(name="nosuchfilter"))


def test_connect_input_rejects_unknown_label():
    graph = FilterGraph(FakeBackend())
    node = graph.add_filter(FilterSpec(name="volume"))

    with pytest.raises(UnknownLabel):
        graph.connect_input("missing", 0, node, 0)


def test_validate_rejects_unlinked_sink():
    graph = FilterGraph(FakeBackend())
    graph.add_audio_output("a_out")

    with pytest.raises(GraphConfigError):
        graph.validate()


def test_process_requires_one_frame_per_source():
    graph = _audio_graph(FakeBackend())
    graph.validate()

    with pytest.raises(ArityMismatch):
        graph.process([], [])


def test_process_returns_frames_tagged_with_sink():
    graph = _audio_graph(FakeBackend())
    graph.validate()

    produced = graph.process([LabeledFrame("a_in", FakeFrame(pts=0, metadata={"k": "v"}))], [])

    assert len(produced) == 1
    assert produced[0].label == "a_out"
    assert produced[0].index == 0
    assert produced[0].frame.metadata == {"k": "v"}


def test_close_releases_backend_graph_once():
    backend = FakeBackend()
    graph = _audio_graph(backend)
    graph.close()
    graph.close()

    assert backend.graphs[0].closed
