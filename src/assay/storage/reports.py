"""Probe report persistence with atomic replace semantics."""

from __future__ import annotations

from pathlib import Path
import json
import os
import tempfile
from typing import Any

from assay.probe.results import DeepProbeReport


def atomic_write_text(path: Path, content: str) -> None:
    """Write into a sibling temp file, then rename over the target."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


def report_json(report: DeepProbeReport, indent: int = 2) -> str:
    return json.dumps(report.to_dict(), indent=indent) + "\n"


def write_report(path: Path, report: DeepProbeReport) -> Path:
    """Persist a report as JSON and return its path."""

    atomic_write_text(path, report_json(report))
    return path


def read_report(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, dict) or "id" not in payload:
        raise ValueError(f"Not a probe report: {path}")
    return payload
