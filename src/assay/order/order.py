"""Order compiler and synchronous execution loop."""

from __future__ import annotations

from collections import deque
import time
from typing import Any

from assay.backend.base import MediaBackend
from assay.errors import AssayError, SetupError, UnknownLabel, UnresolvedInput
from assay.graph.filter_graph import FilterGraph, LabeledFrame, OutputFrame
from assay.observability.logging import get_logger, log_event
from assay.order.decoding import InputFormat, InputTick
from assay.order.encoding import OutputFormat
from assay.order.results import EncodedPacket, Entry, OrderResult, ProcessStatistics
from assay.order.spec import (
    InputKind,
    Output,
    OutputKind,
    OrderSpec,
    StreamsInput,
    order_from_dict,
    parse_order,
)


_LOGGER = get_logger("assay.order")


def _default_backend() -> MediaBackend:
    from assay.backend.pyav import PyAVBackend

    return PyAVBackend()


class _FrameQueues:
    """Per-source frame backlog released one complete frame-set at a time."""

    def __init__(self, audio_labels: list[str], video_labels: list[str]) -> None:
        self._audio = {label: deque() for label in audio_labels}
        self._video = {label: deque() for label in video_labels}

    def extend(self, tick: InputTick) -> None:
        for queues, frames in ((self._audio, tick.audio), (self._video, tick.video)):
            for item in frames:
                queues.setdefault(item.label, deque()).append(item)

    def pop_ready(self) -> tuple[list[LabeledFrame], list[LabeledFrame]] | None:
        queues = (*self._audio.values(), *self._video.values())
        if not queues or not all(queues):
            return None
        audio = [queue.popleft() for queue in self._audio.values()]
        video = [queue.popleft() for queue in self._video.values()]
        return audio, video


class Order:
    """Compiled pipeline of inputs, a filter graph and outputs.

    An Order is set up once, processed once and closed once. Every native
    resource it acquires is released by `close()`, including when `setup()`
    fails part way.
    """

    def __init__(self, spec: OrderSpec, *, backend: MediaBackend | None = None) -> None:
        self.spec = spec
        self._backend = backend or _default_backend()
        self.filter_graph: FilterGraph | None = None
        self.total_streams = 0
        self._inputs: list[InputFormat] = []
        self._outputs: list[OutputFormat] = []
        self._sink_sources: dict[str, set[str]] = {}
        self._state = "new"

    @classmethod
    def new_parse(cls, text: str, *, backend: MediaBackend | None = None) -> Order:
        return cls(parse_order(text), backend=backend)

    @classmethod
    def from_dict(cls, payload: dict[str, Any], *, backend: MediaBackend | None = None) -> Order:
        return cls(order_from_dict(payload), backend=backend)

    def __enter__(self) -> Order:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def setup(self) -> None:
        if self._state != "new":
            raise SetupError(f"Order cannot be set up in state {self._state!r}")
        self._state = "setting_up"
        try:
            self.filter_graph = FilterGraph(self._backend)
            self._build_inputs()
            self._build_outputs()
            self._build_graph()
            self.filter_graph.validate()
        except Exception:
            self.close()
            raise
        self._state = "ready"
        log_event(
            _LOGGER,
            "order.setup",
            inputs=len(self._inputs),
            outputs=len(self.spec.outputs),
            filters=len(self.spec.graph),
            total_streams=self.total_streams,
        )
        _LOGGER.debug(self.filter_graph.describe())

    def _build_inputs(self) -> None:
        for spec in self.spec.inputs:
            input_format = InputFormat(self._backend, self.filter_graph, spec)
            self._inputs.append(input_format)
            self.total_streams += input_format.stream_count

    def _build_outputs(self) -> None:
        for output in self.spec.outputs:
            if output.kind in (OutputKind.FILE, OutputKind.PACKET):
                self._outputs.append(OutputFormat(self._backend, self.filter_graph, output))
            elif output.kind is OutputKind.AUDIO_METADATA and output.stream is not None:
                self.filter_graph.add_audio_output(output.stream)
            elif output.kind is OutputKind.VIDEO_METADATA and output.stream is not None:
                self.filter_graph.add_video_output(output.stream)

    def _build_graph(self) -> None:
        """Wire every filter and record which source labels feed each sink."""

        graph = self.filter_graph
        previous = None
        previous_sources: set[str] = set()
        for spec in self.spec.graph:
            node = graph.add_filter(spec)
            sources: set[str] = set()
            if spec.inputs is not None:
                for pad, declared in enumerate(spec.inputs):
                    if declared.kind is not InputKind.STREAM:
                        continue
                    try:
                        graph.connect_input(declared.stream_label, 0, node, pad)
                    except UnknownLabel as exc:
                        raise UnresolvedInput(f"unable to connect input stream {declared.stream_label}: {exc}") from exc
                    sources.update(self._sink_sources.get(declared.stream_label, {declared.stream_label}))
            elif previous is not None:
                graph.connect(previous, 0, node, 0)
                sources = set(previous_sources)
            else:
                try:
                    graph.connect_input("", 0, node, 0)
                except UnknownLabel as exc:
                    raise UnresolvedInput(f"unable to auto-connect with input: {exc}") from exc
                sources.add("")
            for pad, declared in enumerate(spec.outputs or ()):
                graph.connect_output(node, pad, declared.stream_label)
                self._sink_sources.setdefault(declared.stream_label, set()).update(sources)
            previous, previous_sources = node, sources

    def _metadata_entries(self, output_frame: OutputFrame, output: Output) -> list[Entry]:
        tags: dict[str, str] = {}
        metadata = output_frame.frame.metadata
        for key in output.keys:
            value = metadata.get(key)
            if value is not None:
                tags[key] = value
        pts = output_frame.frame.pts
        sources = self._sink_sources.get(output_frame.label, set())
        audio_indexes: list[int] = []
        for source in self._inputs:
            if not isinstance(source.spec, StreamsInput):
                if source.video_indexes_for(sources):
                    return [Entry(pts=pts, stream_id=0, tags=tags)]
                continue
            if output.kind is OutputKind.VIDEO_METADATA:
                indexes = source.video_indexes_for(sources)
                if indexes:
                    return [Entry(pts=pts, stream_id=indexes[0], tags=tags)]
            else:
                audio_indexes.extend(source.audio_indexes_for(sources))
        if not audio_indexes:
            return [Entry(pts=pts, stream_id=None, tags=tags)]
        return [Entry(pts=pts, stream_id=index, tags=dict(tags)) for index in audio_indexes]

    def _route(self, output_frame: OutputFrame, results: list[OrderResult], stats: ProcessStatistics) -> None:
        for output in self.spec.outputs:
            if output.kind not in (OutputKind.AUDIO_METADATA, OutputKind.VIDEO_METADATA):
                continue
            if output.stream != output_frame.label:
                continue
            entries = self._metadata_entries(output_frame, output)
            stats.entries += len(entries)
            results.extend(entries)
        for output_format in self._outputs:
            if output_format.accepts(output_frame.label):
                results.extend(output_format.encode(output_frame))

    def process(self) -> list[OrderResult]:
        """Run the pull loop until every registered stream is exhausted.

        Returns metadata entries and detached packets in production order,
        followed by one ProcessStatistics record.
        """

        if self._state != "ready":
            raise SetupError(f"Order cannot be processed in state {self._state!r}")
        self._state = "processing"
        graph = self.filter_graph
        started = time.perf_counter()
        stats = ProcessStatistics()
        results: list[OrderResult] = []
        queues = _FrameQueues(graph.audio_input_labels, graph.video_input_labels)

        while True:
            tick = InputTick()
            for input_format in self._inputs:
                input_format.read(tick)
            stats.packets_read += tick.packets_read
            stats.frames_decoded += tick.frames_decoded
            if tick.exhausted == self.total_streams:
                break

            queues.extend(tick)
            while (ready := queues.pop_ready()) is not None:
                audio_frames, video_frames = ready
                stats.graph_ticks += 1
                for output_frame in graph.process(audio_frames, video_frames):
                    self._route(output_frame, results, stats)

            for packet in tick.subtitles:
                for output_format in self._outputs:
                    results.extend(output_format.wrap(packet))

        for output_format in self._outputs:
            results.extend(output_format.flush())
            output_format.finish()
            stats.packets_encoded += output_format.packets_encoded

        stats.elapsed_seconds = time.perf_counter() - started
        self._state = "done"
        log_event(_LOGGER, "order.finished", **stats.to_dict())
        results.append(stats)
        return results

    def close(self) -> None:
        """Release decoders, encoders, containers and the graph exactly once."""

        if self._state == "closed":
            return
        errors: list[AssayError] = []
        for resource in (*self._outputs, *self._inputs):
            try:
                resource.close()
            except AssayError as exc:
                errors.append(exc)
        self._outputs.clear()
        self._inputs.clear()
        if self.filter_graph is not None:
            self.filter_graph.close()
            self.filter_graph = None
        self._state = "closed"
        if errors:
            raise errors[0]


def packets_of(results: list[OrderResult]) -> list[EncodedPacket]:
    return [item for item in results if isinstance(item, EncodedPacket)]


def entries_of(results: list[OrderResult]) -> list[Entry]:
    return [item for item in results if isinstance(item, Entry)]
