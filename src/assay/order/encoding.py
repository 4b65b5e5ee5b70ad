"""Order outputs backed by a container: encoders, sample FIFOs and muxing."""

from __future__ import annotations

from dataclasses import dataclass

from assay.backend.base import Encoder, Frame, MediaBackend, MediaType, OutputContainer, Packet
from assay.errors import SetupError
from assay.graph.filter_graph import FilterGraph, OutputFrame
from assay.observability.logging import get_logger, log_event
from assay.order.fifo import SampleFifo
from assay.order.results import EncodedPacket
from assay.order.spec import Output, OutputKind


_LOGGER = get_logger("assay.order.output")


@dataclass(slots=True)
class _EncodedStream:
    label: str
    encoder: Encoder
    stream_index: int
    fifo: SampleFifo | None = None
    next_pts: int = 0


class OutputFormat:
    """One `file` or `packet` output: a container plus one encoder per stream."""

    def __init__(self, backend: MediaBackend, graph: FilterGraph, output: Output) -> None:
        if output.kind not in (OutputKind.FILE, OutputKind.PACKET):
            raise SetupError(f"Output kind {output.kind} is not encoded")
        if not output.path:
            raise SetupError("Missing path for encoded output")
        self.kind = output.kind
        self.path = output.path
        self._streams: list[_EncodedStream] = []
        self.packets_encoded = 0
        self.container: OutputContainer | None = backend.open_output(output.path, output.parameters)
        try:
            for declared in output.streams:
                label = declared.label or ""
                encoder = backend.create_encoder(declared.codec, declared.parameters)
                self._streams.append(_EncodedStream(label, encoder, -1))
                self._streams[-1].stream_index = self.container.add_stream(encoder)
                if encoder.media_type is MediaType.AUDIO:
                    graph.add_audio_output(label)
                elif encoder.media_type is MediaType.VIDEO:
                    graph.add_video_output(label)
            self.container.write_header()
        except Exception:
            self.close()
            raise
        log_event(_LOGGER, "order.output.opened", path=self.path, kind=self.kind.value, streams=len(self._streams))

    def accepts(self, label: str) -> bool:
        return any(stream.label == label for stream in self._streams)

    def _emit(self, stream: _EncodedStream, packet: Packet | None, out: list[EncodedPacket]) -> None:
        if packet is None:
            return
        packet.rescale(stream.encoder.time_base, self.container.stream_time_base(stream.stream_index))
        self.packets_encoded += 1
        if self.kind is OutputKind.FILE:
            self.container.write_packet(packet, stream.stream_index)
        else:
            out.append(EncodedPacket(label=stream.label, stream_index=stream.stream_index, packet=packet))

    def _encode_audio(self, stream: _EncodedStream, frame: Frame, out: list[EncodedPacket]) -> None:
        samples = frame.to_samples()
        if stream.fifo is None:
            stream.fifo = SampleFifo(samples.shape[0], dtype=samples.dtype)
        stream.fifo.write(samples)
        frame_size = stream.encoder.frame_size
        while len(stream.fifo) and len(stream.fifo) >= frame_size:
            self._encode_fifo(stream, frame_size or len(stream.fifo), out)

    def _encode_fifo(self, stream: _EncodedStream, count: int, out: list[EncodedPacket]) -> None:
        chunk = stream.fifo.read(count)
        built = stream.encoder.build_audio_frame(chunk, stream.next_pts)
        stream.next_pts += chunk.shape[1]
        self._emit(stream, stream.encoder.encode(built), out)

    def encode(self, output_frame: OutputFrame) -> list[EncodedPacket]:
        """Encode a sink frame on every stream bound to the sink label."""

        produced: list[EncodedPacket] = []
        for stream in self._streams:
            if stream.label != output_frame.label:
                continue
            if stream.encoder.media_type is MediaType.AUDIO:
                self._encode_audio(stream, output_frame.frame, produced)
            else:
                packet = stream.encoder.encode(output_frame.frame, pts=stream.next_pts)
                stream.next_pts += 1
                self._emit(stream, packet, produced)
        return produced

    def wrap(self, packet: Packet) -> list[EncodedPacket]:
        """Route a subtitle packet to the stream whose label it carries."""

        produced: list[EncodedPacket] = []
        for stream in self._streams:
            if stream.label == packet.label and stream.encoder.media_type is MediaType.SUBTITLE:
                if self.kind is OutputKind.FILE:
                    self.container.write_packet(packet, stream.stream_index)
                    continue
                produced.append(EncodedPacket(label=stream.label, stream_index=stream.stream_index, packet=packet))
        return produced

    def flush(self) -> list[EncodedPacket]:
        """Encode leftover samples, then drain every encoder."""

        produced: list[EncodedPacket] = []
        for stream in self._streams:
            if stream.fifo is not None and len(stream.fifo):
                self._encode_fifo(stream, len(stream.fifo), produced)
            while True:
                packet = stream.encoder.encode(None)
                if packet is None:
                    break
                self._emit(stream, packet, produced)
        return produced

    def finish(self) -> None:
        if self.container is not None:
            self.container.write_trailer()

    def close(self) -> None:
        for stream in self._streams:
            stream.encoder.close()
        self._streams.clear()
        if self.container is not None:
            self.container.close()
            self.container = None
