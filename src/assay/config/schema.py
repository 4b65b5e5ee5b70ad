"""Dataclass-based check configuration schema for DeepProbe."""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True, slots=True)
class Track:
    """Audio stream index with its channel count."""

    index: int
    channel: int

    @staticmethod
    def get_channels_number(pairing_list: list[list[Track]], index: int) -> int:
        """Return the channel count declared for a stream, 0 when absent."""

        for tracks in pairing_list:
            for track in tracks:
                if track.index == index:
                    return track.channel
        return 0


@dataclass(slots=True)
class CheckParameterValue:
    """Generic threshold bag shared by every check."""

    min: int | None = None
    max: int | None = None
    num: int | None = None
    den: int | None = None
    th: float | None = None
    pairs: list[list[Track]] | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        for key in ("min", "max", "num", "den", "th"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.pairs is not None:
            payload["pairs"] = [
                [{"index": track.index, "channel": track.channel} for track in group] for group in self.pairs
            ]
        return payload


CheckParameters = dict[str, CheckParameterValue]


@dataclass(slots=True)
class DeepProbeCheck:
    """Checks requested for one probe run; None disables a check."""

    silence_detect: CheckParameters | None = None
    black_detect: CheckParameters | None = None
    blackfade_detect: CheckParameters | None = None
    black_and_silence_detect: CheckParameters | None = None
    crop_detect: CheckParameters | None = None
    scene_detect: CheckParameters | None = None
    ocr_detect: CheckParameters | None = None
    loudness_detect: CheckParameters | None = None
    dualmono_detect: CheckParameters | None = None
    sine_detect: CheckParameters | None = None
    freeze_detect: CheckParameters | None = None

    def requested(self) -> list[str]:
        return [item.name for item in fields(self) if getattr(self, item.name) is not None]

