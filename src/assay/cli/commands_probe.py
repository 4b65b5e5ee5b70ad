"""`assay probe` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import json
from typing import Annotated

from rich.console import Console
import tyro

from assay.config.loader import load_check
from assay.config.profiles import apply_profile
from assay.config.schema import DeepProbeCheck
from assay.observability.logging import configure_logging
from assay.probe.deep import DeepProbe
from assay.storage.reports import write_report


@dataclass(slots=True)
class ProbeCommand:
    """Run the requested detection checks on one media file."""

    path: Annotated[Path, tyro.conf.Positional]
    checks: str | None = None
    profile: str | None = None
    output: Path | None = None
    table: bool = False
    log_level: str = "INFO"


def resolve_check(checks: str | None, profile: str | None) -> DeepProbeCheck:
    """Load the check config and fill unset checks from a profile."""

    check = load_check(checks) if checks else DeepProbeCheck()
    if profile:
        apply_profile(check, profile)
    if not check.requested():
        raise ValueError("No checks requested; pass --checks and/or --profile.")
    return check


def execute(command: ProbeCommand) -> None:
    configure_logging(command.log_level)
    check = resolve_check(command.checks, command.profile)
    probe = DeepProbe(str(command.path))
    result = probe.process(check)
    report = probe.report()

    if command.output is not None:
        write_report(command.output, report)
        print(f"probe id={report.id} path={command.output}")
    if command.table and result is not None:
        Console().print(result.render_table())
    elif command.output is None:
        print(json.dumps(report.to_dict(), indent=2))
