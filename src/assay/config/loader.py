"""Load DeepProbe check configs from JSON files or Python references."""

from __future__ import annotations

import importlib
import importlib.util
import json
from pathlib import Path
from types import ModuleType
from typing import Any

from assay.config.schema import CheckParameterValue, DeepProbeCheck, Track


def _load_module(module_ref: str) -> ModuleType:
    path_candidate = Path(module_ref).expanduser()
    if path_candidate.exists():
        module_name = f"_assay_cfg_{path_candidate.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path_candidate)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load module from path: {path_candidate}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_ref)


def _resolve_attr(obj: Any, attr_path: str) -> Any:
    value = obj
    for part in attr_path.split("."):
        value = getattr(value, part)
    return value


def load_object(reference: str) -> Any:
    """Load object by `module_or_path:attribute` reference."""

    if ":" not in reference:
        raise ValueError("Config reference must be in form 'module_or_path:attribute'.")
    module_ref, attr = reference.split(":", maxsplit=1)
    module = _load_module(module_ref)
    return _resolve_attr(module, attr)


def track_from_dict(payload: dict[str, Any]) -> Track:
    return Track(index=int(payload["index"]), channel=int(payload["channel"]))


def parameter_from_dict(payload: dict[str, Any]) -> CheckParameterValue:
    """Reconstruct one CheckParameterValue; unknown keys are ignored."""

    if not isinstance(payload, dict):
        raise TypeError(f"Check parameter must be an object, got {type(payload).__name__}.")
    pairs = payload.get("pairs")
    return CheckParameterValue(
        min=int(payload["min"]) if payload.get("min") is not None else None,
        max=int(payload["max"]) if payload.get("max") is not None else None,
        num=int(payload["num"]) if payload.get("num") is not None else None,
        den=int(payload["den"]) if payload.get("den") is not None else None,
        th=float(payload["th"]) if payload.get("th") is not None else None,
        pairs=[[track_from_dict(track) for track in group] for group in pairs] if pairs is not None else None,
    )


def check_from_dict(payload: dict[str, Any]) -> DeepProbeCheck:
    """Reconstruct a DeepProbeCheck from a plain dictionary."""

    check = DeepProbeCheck()
    for name in DeepProbeCheck.__dataclass_fields__:
        raw = payload.get(name)
        if raw is None:
            continue
        if not isinstance(raw, dict):
            raise TypeError(f"Check '{name}' must map parameter names to values.")
        setattr(check, name, {key: parameter_from_dict(value) for key, value in raw.items()})
    return check


def check_to_dict(check: DeepProbeCheck) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name in check.requested():
        parameters = getattr(check, name)
        payload[name] = {key: value.to_dict() for key, value in parameters.items()}
    return payload


def load_check(reference: str) -> DeepProbeCheck:
    """Load a DeepProbeCheck from a JSON file or a `module_or_path:attribute` reference."""

    path = Path(reference).expanduser()
    if path.suffix.lower() == ".json" and path.exists():
        return check_from_dict(json.loads(path.read_text(encoding="utf-8")))

    loaded = load_object(reference)
    if isinstance(loaded, dict):
        return check_from_dict(loaded)
    if not isinstance(loaded, DeepProbeCheck):
        type_name = type(loaded).__name__
        raise TypeError(f"Check reference must resolve to DeepProbeCheck, got {type_name}.")
    return loaded
