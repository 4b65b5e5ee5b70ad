"""Tyro CLI application entrypoint."""

from __future__ import annotations

from typing import Annotated

import tyro

from assay.cli import commands_graph, commands_probe


TopLevelCommand = Annotated[
    commands_graph.GraphCommand,
    tyro.conf.subcommand(name="graph"),
] | Annotated[
    commands_probe.ProbeCommand,
    tyro.conf.subcommand(name="probe"),
]


def dispatch(command: TopLevelCommand) -> None:
    """Dispatch parsed top-level command object."""

    if isinstance(command, commands_graph.GraphCommand):
        commands_graph.execute(command)
        return
    if isinstance(command, commands_probe.ProbeCommand):
        commands_probe.execute(command)
        return
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run requested command."""

    command = tyro.cli(TopLevelCommand, args=argv)
    dispatch(command)
