from __future__ import annotations

import pytest

from assay.config.schema import CheckParameterValue
from assay.graph.parameters import Int64, Rational, String
from assay.probe.crop import black_limit, collect_crop, create_graph, spot_check_expression
from assay.probe.details import VideoDetails
from assay.probe.results import CropResult


VIDEO = VideoDetails(
    frame_rate=25.0,
    time_base=Rational(1, 25),
    nb_frames=1000,
    width=1920,
    height=1080,
    sample_aspect_ratio=Rational(1, 1),
)


def _crop(x1, x2, y1, y2):
    return {
        "lavfi.cropdetect.x1": x1,
        "lavfi.cropdetect.x2": x2,
        "lavfi.cropdetect.y1": y1,
        "lavfi.cropdetect.y2": y2,
    }


@pytest.mark.parametrize(("bits", "limit"), [(None, 16), (8, 16), (10, 64), (12, 256)])
def test_black_limit_follows_sample_depth(bits, limit):
    assert black_limit(bits) == limit


def test_spot_check_selects_every_nth_frame():
    assert spot_check_expression(1000, 5) == "not(mod(n,199))"
    assert spot_check_expression(1000, None) is None


def test_graph_chains_cropdetect_into_select():
    details = {0: VideoDetails(nb_frames=1000, bits_per_raw_sample=10)}
    params = {"spot_check": CheckParameterValue(max=5)}

    spec = create_graph("clip.mov", [0], params, details)

    cropdetect, select = spec.graph
    assert cropdetect.parameters == {"limit": Int64(64)}
    assert select.inputs is None
    assert select.parameters == {"expr": String("not(mod(n,199))")}
    assert select.outputs[0].stream_label == "crop_video_output_0"


def test_only_size_transitions_are_reported(make_entry):
    entries = [
        make_entry(0, _crop(0, 1919, 0, 1079), pts=0),
        make_entry(0, _crop(0, 1919, 140, 939), pts=25),
        make_entry(0, _crop(0, 1919, 140, 939), pts=50),
        make_entry(0, _crop(0, 1919, 0, 1079), pts=75),
    ]

    crops = collect_crop(entries, video=VIDEO)

    assert crops == [
        CropResult(pts=1000, width=1920, height=800, aspect_ratio=pytest.approx(2.4)),
        CropResult(pts=3000, width=1920, height=1080, aspect_ratio=pytest.approx(16 / 9)),
    ]
