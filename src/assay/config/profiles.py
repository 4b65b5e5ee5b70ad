"""Built-in check profiles for common quality-control runs."""

from __future__ import annotations

from dataclasses import dataclass

from assay.config.schema import CheckParameterValue, DeepProbeCheck


@dataclass(frozen=True, slots=True)
class ProfileSpec:
    """Declarative check defaults for a named profile."""

    name: str
    description: str
    min_duration_ms: int
    max_duration_ms: int
    video_checks: bool
    audio_checks: bool
    black_picture_th: float = 0.98
    black_pixel_th: float = 0.1
    scene_th: float = 10.0
    spot_check_max: int = 5


_PROFILES: dict[str, ProfileSpec] = {
    "video-qc": ProfileSpec(
        name="video-qc",
        description="Black frames, black fades, crop, scene cuts and freezes.",
        min_duration_ms=40,
        max_duration_ms=10_000,
        video_checks=True,
        audio_checks=False,
    ),
    "audio-qc": ProfileSpec(
        name="audio-qc",
        description="Silence detection on every audio stream.",
        min_duration_ms=100,
        max_duration_ms=3_600_000,
        video_checks=False,
        audio_checks=True,
    ),
    "full": ProfileSpec(
        name="full",
        description="Every pairing-free check plus black-and-silence correlation.",
        min_duration_ms=40,
        max_duration_ms=3_600_000,
        video_checks=True,
        audio_checks=True,
    ),
}


def available_profiles() -> dict[str, ProfileSpec]:
    """Return built-in profiles by name."""

    return dict(_PROFILES)


def resolve_profile(name: str) -> ProfileSpec:
    """Resolve one profile by name."""

    key = name.strip().lower()
    profile = _PROFILES.get(key)
    if profile is None:
        known = ", ".join(sorted(_PROFILES))
        raise ValueError(f"Unknown profile '{name}'. Available profiles: {known}")
    return profile


def build_profile_check(profile_name: str) -> DeepProbeCheck:
    """Build a DeepProbeCheck from a profile.

    Pairing-dependent checks (loudness, dual-mono, tone) need per-file stream
    groups and are never enabled by a profile.
    """

    profile = resolve_profile(profile_name)
    duration = CheckParameterValue(min=profile.min_duration_ms, max=profile.max_duration_ms)
    check = DeepProbeCheck()
    if profile.video_checks:
        check.black_detect = {
            "duration": duration,
            "picture": CheckParameterValue(th=profile.black_picture_th),
            "pixel": CheckParameterValue(th=profile.black_pixel_th),
        }
        check.blackfade_detect = {"duration": duration}
        check.crop_detect = {"spot_check": CheckParameterValue(max=profile.spot_check_max)}
        check.scene_detect = {"threshold": CheckParameterValue(th=profile.scene_th)}
        check.freeze_detect = {"duration": duration, "noise": CheckParameterValue(th=0.001)}
    if profile.audio_checks:
        check.silence_detect = {"duration": duration}
    if profile.video_checks and profile.audio_checks:
        check.black_and_silence_detect = {"duration": CheckParameterValue(min=profile.min_duration_ms)}
    return check


def apply_profile(check: DeepProbeCheck, profile_name: str) -> ProfileSpec:
    """Fill checks the caller left unset with the profile defaults."""

    profile = resolve_profile(profile_name)
    defaults = build_profile_check(profile_name)
    for name in defaults.requested():
        if getattr(check, name) is None:
            setattr(check, name, getattr(defaults, name))
    return profile
