"""Named-node filter graph with a push/pull execution contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping

from assay.backend.base import (
    Decoder,
    EndOfStream,
    FilterNode,
    Frame,
    GraphHandle,
    MediaBackend,
    WouldBlock,
)
from assay.errors import ArityMismatch, BackendError, UnknownLabel
from assay.graph.parameters import (
    ChannelLayout,
    Int64,
    ParamValue,
    Rational,
    RationalValue,
    String,
    apply_parameters,
)
from assay.observability.logging import get_logger, log_event

if TYPE_CHECKING:
    from assay.order.spec import FilterSpec


_LOGGER = get_logger("assay.graph")


@dataclass(frozen=True, slots=True)
class LabeledFrame:
    """A decoded frame addressed to the graph source of the same label."""

    label: str
    frame: Frame


@dataclass(frozen=True, slots=True)
class OutputFrame:
    """A frame pulled from a sink, tagged with the sink label and position."""

    label: str
    index: int
    frame: Frame


def _audio_source_parameters(decoder: Decoder) -> dict[str, ParamValue]:
    parameters: dict[str, ParamValue] = {
        "time_base": RationalValue(Rational(1, decoder.sample_rate or 1)),
        "sample_rate": Int64(decoder.sample_rate),
        "sample_fmt": String(decoder.sample_format),
    }
    if decoder.channel_layout:
        parameters["channel_layout"] = ChannelLayout(decoder.channel_layout)
    else:
        parameters["channels"] = Int64(decoder.channels)
    return parameters


def _video_source_parameters(decoder: Decoder) -> dict[str, ParamValue]:
    time_base = decoder.time_base
    if not time_base.num or not time_base.den:
        rate = decoder.frame_rate if decoder.frame_rate.num else Rational(25, 1)
        time_base = rate.invert()
    return {
        "width": Int64(decoder.width),
        "height": Int64(decoder.height),
        "time_base": RationalValue(time_base),
        "pixel_aspect": RationalValue(decoder.sample_aspect_ratio),
        "pix_fmt": String(decoder.pixel_format),
    }


class FilterGraph:
    """Directed graph of named nodes driven one frame-set at a time."""

    def __init__(self, backend: MediaBackend) -> None:
        self._handle: GraphHandle | None = backend.allocate_graph()
        self._audio_inputs: list[FilterNode] = []
        self._video_inputs: list[FilterNode] = []
        self._outputs: list[FilterNode] = []
        self._filters: list[FilterNode] = []

    @property
    def handle(self) -> GraphHandle:
        if self._handle is None:
            raise BackendError("Filter graph is closed")
        return self._handle

    @property
    def audio_input_count(self) -> int:
        return len(self._audio_inputs)

    @property
    def video_input_count(self) -> int:
        return len(self._video_inputs)

    @property
    def audio_input_labels(self) -> list[str]:
        return [node.label for node in self._audio_inputs]

    @property
    def video_input_labels(self) -> list[str]:
        return [node.label for node in self._video_inputs]

    @property
    def output_labels(self) -> list[str]:
        return [node.label for node in self._outputs]

    def _create(self, name: str, label: str, parameters: Mapping[str, ParamValue]) -> FilterNode:
        node = self.handle.create_filter(name, label)
        apply_parameters(node, parameters)
        node.init()
        return node

    def add_input_from_audio_decoder(self, label: str, decoder: Decoder) -> FilterNode:
        node = self._create("abuffer", label, _audio_source_parameters(decoder))
        self._audio_inputs.append(node)
        return node

    def add_input_from_video_decoder(self, label: str, decoder: Decoder) -> FilterNode:
        node = self._create("buffer", label, _video_source_parameters(decoder))
        self._video_inputs.append(node)
        return node

    def add_audio_output(self, label: str) -> FilterNode:
        node = self._create("abuffersink", label, {})
        self._outputs.append(node)
        return node

    def add_video_output(self, label: str) -> FilterNode:
        node = self._create("buffersink", label, {})
        self._outputs.append(node)
        return node

    def add_filter(self, spec: FilterSpec) -> FilterNode:
        """Instantiate, configure and initialise one processing node."""

        label = spec.label or f"{spec.name}_{len(self._filters)}"
        node = self._create(spec.name, label, spec.parameters)
        self._filters.append(node)
        return node

    def connect(self, source: FilterNode, source_pad: int, target: FilterNode, target_pad: int) -> None:
        self.handle.link(source, source_pad, target, target_pad)

    def _input_node(self, label: str) -> FilterNode:
        for node in (*self._audio_inputs, *self._video_inputs):
            if node.label == label:
                return node
        raise UnknownLabel(f"No graph input labelled {label!r}")

    def _output_node(self, label: str) -> FilterNode:
        for node in self._outputs:
            if node.label == label:
                return node
        raise UnknownLabel(f"No graph output labelled {label!r}")

    def connect_input(self, label: str, source_pad: int, target: FilterNode, target_pad: int) -> None:
        self.connect(self._input_node(label), source_pad, target, target_pad)

    def connect_output(self, source: FilterNode, source_pad: int, label: str) -> None:
        self.connect(source, source_pad, self._output_node(label), 0)

    def validate(self) -> None:
        self.handle.configure()
        log_event(
            _LOGGER,
            "graph.validated",
            audio_inputs=self.audio_input_count,
            video_inputs=self.video_input_count,
            filters=len(self._filters),
            outputs=len(self._outputs),
        )

    def process(self, audio_frames: list[LabeledFrame], video_frames: list[LabeledFrame]) -> list[OutputFrame]:
        """Push one frame per source, then drain every sink for this tick.

        Sinks are pulled in declaration order until the backend has nothing
        more to give for this tick or reports end of stream.
        """

        if len(audio_frames) != self.audio_input_count or len(video_frames) != self.video_input_count:
            raise ArityMismatch(
                f"Expected {self.audio_input_count} audio and {self.video_input_count} video frames, "
                f"got {len(audio_frames)} and {len(video_frames)}"
            )

        handle = self.handle
        for item in (*audio_frames, *video_frames):
            handle.push(self._input_node(item.label), item.frame)

        produced: list[OutputFrame] = []
        for index, sink in enumerate(self._outputs):
            while True:
                try:
                    frame = handle.pull(sink)
                except (WouldBlock, EndOfStream):
                    break
                produced.append(OutputFrame(label=sink.label, index=index, frame=frame))
        return produced

    def describe(self) -> str:
        return self.handle.describe()

    def close(self) -> None:
        if self._handle is None:
            return
        self._handle.close()
        self._handle = None
        self._audio_inputs.clear()
        self._video_inputs.clear()
        self._outputs.clear()
        self._filters.clear()
