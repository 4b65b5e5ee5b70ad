"""Check ordering and registry selection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from assay.config.schema import DeepProbeCheck
from assay.probe import (
    black,
    black_and_silence,
    blackfade,
    crop,
    dualmono,
    freeze,
    loudness,
    ocr,
    scene,
    silence,
    sine,
)
from assay.probe.common import CheckParams, ProbeContext


class CheckRunner(Protocol):
    """Call signature every check runner must implement."""

    def __call__(self, context: ProbeContext, params: CheckParams) -> None:
        ...


@dataclass(frozen=True, slots=True)
class CheckDefinition:
    """Declarative check metadata and execution hook."""

    name: str
    params: CheckParams
    runner: CheckRunner


def default_check_sequence(check: DeepProbeCheck) -> list[CheckDefinition]:
    """Return the requested checks in dependency order.

    Black fade needs black results; black-and-silence needs both black and
    silence results, so each runs only when its inputs are requested.
    """

    checks: list[CheckDefinition] = []
    if check.silence_detect is not None:
        checks.append(CheckDefinition("silence", check.silence_detect, silence.detect_silence))
    if check.black_detect is not None:
        checks.append(CheckDefinition("black", check.black_detect, black.detect_black))
        if check.blackfade_detect is not None:
            checks.append(CheckDefinition("blackfade", check.blackfade_detect, blackfade.detect_blackfade))
        if check.black_and_silence_detect is not None and check.silence_detect is not None:
            checks.append(
                CheckDefinition(
                    "black_and_silence",
                    check.black_and_silence_detect,
                    black_and_silence.detect_black_and_silence,
                )
            )
    if check.crop_detect is not None:
        checks.append(CheckDefinition("crop", check.crop_detect, crop.detect_crop))
    if check.scene_detect is not None:
        checks.append(CheckDefinition("scene", check.scene_detect, scene.detect_scene))
    if check.ocr_detect is not None:
        checks.append(CheckDefinition("ocr", check.ocr_detect, ocr.detect_ocr))
    if check.loudness_detect is not None:
        checks.append(CheckDefinition("loudness", check.loudness_detect, loudness.detect_loudness))
    if check.dualmono_detect is not None:
        checks.append(CheckDefinition("dualmono", check.dualmono_detect, dualmono.detect_dualmono))
    if check.sine_detect is not None:
        checks.append(CheckDefinition("sine", check.sine_detect, sine.detect_sine))
    if check.freeze_detect is not None:
        checks.append(CheckDefinition("freeze", check.freeze_detect, freeze.detect_freeze))
    return checks
