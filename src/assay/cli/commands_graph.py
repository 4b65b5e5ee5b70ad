"""`assay graph` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import json
from typing import Annotated

import tyro

from assay.observability.logging import configure_logging, get_logger, log_event
from assay.order.order import Order
from assay.order.results import EncodedPacket, Entry, ProcessStatistics


_LOGGER = get_logger("assay.cli.graph")


@dataclass(slots=True)
class GraphCommand:
    """Parse, set up and run one Order described in a JSON file."""

    order: Annotated[Path, tyro.conf.Positional]
    log_level: str = "INFO"


def execute(command: GraphCommand) -> None:
    configure_logging(command.log_level)
    text = command.order.read_text(encoding="utf-8")
    entries = 0
    packets = 0
    with Order.new_parse(text) as order:
        order.setup()
        for result in order.process():
            if isinstance(result, Entry):
                entries += 1
                log_event(_LOGGER, "graph.entry", **result.to_dict())
            elif isinstance(result, EncodedPacket):
                packets += 1
            elif isinstance(result, ProcessStatistics):
                print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    print(f"graph order={command.order} entries={entries} packets={packets}")
