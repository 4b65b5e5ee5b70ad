from __future__ import annotations

import pytest

from assay.errors import SetupError
from assay.graph.parameters import (
    Bool,
    ChannelLayout,
    Float,
    Int64,
    Rational,
    RationalValue,
    String,
    apply_parameters,
    param_from_json,
    param_to_json,
)
from fakes import FakeNode


def test_json_values_decode_to_tagged_parameters():
    assert param_from_json(True) == Bool(True)
    assert param_from_json(3) == Int64(3)
    assert param_from_json(0.5) == Float(0.5)
    assert param_from_json("mono") == String("mono")
    assert param_from_json({"num": 1, "den": 25}) == RationalValue(Rational(1, 25))


def test_unsupported_json_value_is_a_setup_error():
    with pytest.raises(SetupError):
        param_from_json([1, 2])


def test_rational_round_trips_through_json_form():
    assert param_to_json(RationalValue(Rational(30000, 1001))) == {"num": 30000, "den": 1001}
    assert param_to_json(Int64(7)) == 7


def test_rational_helpers():
    assert Rational(25, 1).invert() == Rational(1, 25)
    assert Rational(50, 2).reduce() == Rational(25, 1)
    assert Rational(1, 0).to_float() == 0.0


def test_every_value_kind_reaches_its_typed_setter():
    node = FakeNode("abuffer", "in")
    apply_parameters(
        node,
        {
            "flag": Bool(True),
            "sample_rate": Int64(48000),
            "tolerance": Float(0.001),
            "time_base": RationalValue(Rational(1, 48000)),
            "sample_fmt": String("s16"),
            "channel_layout": ChannelLayout(3),
        },
    )

    assert node.options == {
        "flag": 1,
        "sample_rate": 48000,
        "tolerance": 0.001,
        "time_base": Rational(1, 48000),
        "sample_fmt": "s16",
        "channel_layout": 3,
    }
