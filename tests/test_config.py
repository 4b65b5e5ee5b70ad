from __future__ import annotations

import json

import pytest

from assay.cli.commands_probe import resolve_check
from assay.config.loader import check_from_dict, check_to_dict, load_check
from assay.config.profiles import apply_profile, available_profiles, build_profile_check
from assay.config.schema import CheckParameterValue, DeepProbeCheck, Track


PAYLOAD = {
    "silence_detect": {"duration": {"min": 500}},
    "loudness_detect": {
        "pairing_list": {"pairs": [[{"index": 1, "channel": 1}, {"index": 2, "channel": 1}]]},
    },
    "unknown_check": {"duration": {"min": 1}},
}


def test_check_is_rebuilt_from_plain_dict():
    check = check_from_dict(PAYLOAD)

    assert check.requested() == ["silence_detect", "loudness_detect"]
    assert check.silence_detect == {"duration": CheckParameterValue(min=500)}
    pairs = check.loudness_detect["pairing_list"].pairs
    assert pairs == [[Track(index=1, channel=1), Track(index=2, channel=1)]]
    assert Track.get_channels_number(pairs, 2) == 1
    assert Track.get_channels_number(pairs, 7) == 0


def test_check_to_dict_drops_unset_fields():
    check = DeepProbeCheck(black_detect={"picture": CheckParameterValue(th=0.98)})

    assert check_to_dict(check) == {"black_detect": {"picture": {"th": 0.98}}}


def test_json_file_is_loaded(tmp_path):
    path = tmp_path / "checks.json"
    path.write_text(json.dumps(PAYLOAD), encoding="utf-8")

    check = load_check(str(path))

    assert check.silence_detect["duration"].min == 500


def test_python_reference_is_loaded(tmp_path):
    module = tmp_path / "qc_checks.py"
    module.write_text(
        "from assay.config.schema import CheckParameterValue, DeepProbeCheck\n"
        "CHECK = DeepProbeCheck(freeze_detect={'duration': CheckParameterValue(min=2000)})\n",
        encoding="utf-8",
    )

    check = load_check(f"{module}:CHECK")

    assert check.requested() == ["freeze_detect"]


def test_reference_to_wrong_type_is_rejected(tmp_path):
    module = tmp_path / "not_checks.py"
    module.write_text("CHECK = 42\n", encoding="utf-8")

    with pytest.raises(TypeError):
        load_check(f"{module}:CHECK")


def test_malformed_parameter_is_rejected():
    with pytest.raises(TypeError):
        check_from_dict({"black_detect": {"picture": 0.98}})


def test_profiles_never_enable_pairing_checks():
    for name in available_profiles():
        check = build_profile_check(name)
        assert check.loudness_detect is None
        assert check.dualmono_detect is None
        assert check.sine_detect is None


def test_profile_fills_only_unset_checks():
    check = DeepProbeCheck(silence_detect={"duration": CheckParameterValue(min=2000)})

    profile = apply_profile(check, "FULL")

    assert profile.name == "full"
    assert check.silence_detect["duration"].min == 2000
    assert check.black_detect is not None
    assert check.black_and_silence_detect is not None


def test_unknown_profile_is_rejected():
    with pytest.raises(ValueError, match="Available profiles"):
        build_profile_check("broadcast")


def test_probe_command_requires_some_check():
    with pytest.raises(ValueError):
        resolve_check(None, None)

    assert resolve_check(None, "audio-qc").requested() == ["silence_detect"]
