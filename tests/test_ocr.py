from __future__ import annotations

from assay.probe.details import VideoDetails
from assay.probe.ocr import CONFIDENCE_KEY, TEXT_KEY, TIME_KEY, collect_ocr, create_graph, format_confidence
from assay.probe.results import OcrResult


VIDEO = VideoDetails(frame_rate=25.0, nb_frames=1000)


def test_scdet_runs_in_pass_mode_before_ocr():
    spec = create_graph("clip.mov", [0], {})

    scdet, ocr = spec.graph
    assert scdet.parameters["sc_pass"].value == 1
    assert ocr.name == "ocr"
    assert ocr.outputs[0].stream_label == "ocr_video_output_0"


def test_confidence_tokens_get_percent_signs():
    assert format_confidence("91 87") == "91%,87%"
    assert format_confidence("") == ""


def test_offline_card_runs_until_next_cut(make_entry):
    entries = [
        make_entry(0, {TIME_KEY: 4.0, TEXT_KEY: "MEDIA OFFLINE", CONFIDENCE_KEY: "91 87"}),
        make_entry(0, {TEXT_KEY: "MEDIA OFFLINE", CONFIDENCE_KEY: "90 88"}),
        make_entry(0, {TIME_KEY: 8.0, TEXT_KEY: "Credits"}),
    ]

    assert collect_ocr(entries, video=VIDEO) == [
        OcrResult(frame_start=100, frame_end=199, text="MEDIA OFFLINE", confidence="91%,87%"),
    ]


def test_offline_card_without_following_cut_runs_to_the_end(make_entry):
    entries = [make_entry(0, {TIME_KEY: 30.0, TEXT_KEY: "OFFLINE", CONFIDENCE_KEY: "75"})]

    detected = collect_ocr(entries, video=VIDEO)

    assert detected == [OcrResult(frame_start=750, frame_end=1000, text="OFFLINE", confidence="75%")]


def test_other_text_is_ignored(make_entry):
    assert collect_ocr([make_entry(0, {TIME_KEY: 1.0, TEXT_KEY: "Scene 12"})], video=VIDEO) == []
