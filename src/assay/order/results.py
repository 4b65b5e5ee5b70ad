"""Records returned by Order.process."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from assay.backend.base import Packet


@dataclass(slots=True)
class Entry:
    """Metadata tags read off one frame pulled from a metadata sink."""

    pts: int | None
    stream_id: int | None
    tags: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str | None:
        return self.tags.get(key)

    def get_float(self, key: str) -> float | None:
        value = self.tags.get(key)
        if value is None:
            return None
        try:
            return float(value)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, str]:
        payload = {"pts": str(self.pts) if self.pts is not None else ""}
        if self.stream_id is not None:
            payload["stream_id"] = str(self.stream_id)
        payload.update(self.tags)
        return payload


@dataclass(slots=True)
class EncodedPacket:
    """Packet produced by a `packet` output, handed back instead of written."""

    label: str
    stream_index: int
    packet: Packet


@dataclass(slots=True)
class ProcessStatistics:
    packets_read: int = 0
    frames_decoded: int = 0
    graph_ticks: int = 0
    entries: int = 0
    packets_encoded: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "packets_read": self.packets_read,
            "frames_decoded": self.frames_decoded,
            "graph_ticks": self.graph_ticks,
            "entries": self.entries,
            "packets_encoded": self.packets_encoded,
            "elapsed_seconds": round(self.elapsed_seconds, 6),
        }


OrderResult = Entry | EncodedPacket | ProcessStatistics
