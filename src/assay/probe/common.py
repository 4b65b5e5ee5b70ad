"""Shared plumbing for detection checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from assay.backend.base import MediaBackend, StreamInfo
from assay.config.schema import CheckParameterValue, Track
from assay.errors import PairingConfigWarning
from assay.graph.parameters import ParamValue
from assay.observability.logging import get_logger, log_event
from assay.order.order import Order, entries_of
from assay.order.results import Entry
from assay.order.spec import (
    FilterInput,
    FilterOutput,
    FilterSpec,
    InputKind,
    OrderSpec,
    Output,
    OutputKind,
    StreamRef,
    StreamsInput,
)
from assay.probe.details import AudioDetails, VideoDetails, audio_details, video_details
from assay.probe.results import StreamProbeResult


_LOGGER = get_logger("assay.probe")

CheckParams = Mapping[str, CheckParameterValue]


@dataclass(slots=True)
class ProbeContext:
    """Everything a check needs: the file, its streams and the report."""

    path: str
    streams: list[StreamProbeResult]
    stream_info: list[StreamInfo]
    audio_indexes: list[int]
    video_indexes: list[int]
    backend: MediaBackend | None = None

    @property
    def video(self) -> VideoDetails:
        """Return details of the first video stream, defaults without one."""

        if not self.video_indexes:
            return video_details(None)
        return video_details(self.stream_info[self.video_indexes[0]])

    def video_for(self, index: int) -> VideoDetails:
        return video_details(self.stream_info[index])

    def audio_for(self, index: int) -> AudioDetails:
        return audio_details(self.stream_info[index])


def run_order(context: ProbeContext, spec: OrderSpec) -> list[Entry]:
    """Set up and run one analysis Order, returning its metadata entries."""

    with Order(spec, backend=context.backend) as order:
        order.setup()
        results = order.process()
    entries = entries_of(results)
    log_event(_LOGGER, "probe.order.finished", path=context.path, entries=len(entries))
    return entries


def streams_input(input_id: int, path: str, labels: Mapping[int, str]) -> StreamsInput:
    """Input reading the given stream indexes under their source labels."""

    refs = tuple(StreamRef(index=index, label=label) for index, label in labels.items())
    return StreamsInput(id=input_id, path=path, streams=refs)


def source_filter(
    name: str,
    label: str,
    parameters: dict[str, ParamValue],
    *,
    sources: list[str] | None = None,
    sink: str | None = None,
) -> FilterSpec:
    """Filter node fed by named stream sources and/or feeding a named sink."""

    return FilterSpec(
        name=name,
        label=label,
        parameters=parameters,
        inputs=[FilterInput(InputKind.STREAM, source) for source in sources] if sources is not None else None,
        outputs=[FilterOutput(sink)] if sink is not None else None,
    )


def metadata_output(kind: OutputKind, sink: str, keys: list[str]) -> Output:
    return Output(kind=kind, keys=list(keys), stream=sink)


def pairing_list(params: CheckParams, check: str) -> list[list[Track]]:
    """Return the `pairing_list` groups or raise PairingConfigWarning."""

    value = params.get("pairing_list")
    if value is None or not value.pairs:
        raise PairingConfigWarning(f"No pairing_list given for {check}; stream groups are required")
    return [list(group) for group in value.pairs]


def is_stereo_equivalent(group: list[Track]) -> bool:
    """One 2-channel track or two 1-channel tracks."""

    if len(group) == 1:
        return group[0].channel == 2
    if len(group) == 2:
        return all(track.channel == 1 for track in group)
    return False


def threshold(params: CheckParams, key: str) -> float | None:
    value = params.get(key)
    return value.th if value is not None else None
