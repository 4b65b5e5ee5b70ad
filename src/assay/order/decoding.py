"""Order inputs: one container per input, decoders registered as graph sources."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging

from assay.backend.base import (
    Decoder,
    EndOfStream,
    InputContainer,
    MediaBackend,
    MediaType,
    Packet,
    WouldBlock,
)
from assay.errors import BackendError, SetupError
from assay.graph.filter_graph import FilterGraph, LabeledFrame
from assay.observability.logging import get_logger, log_event
from assay.order.spec import FramesInput, Input


_LOGGER = get_logger("assay.order.input")


@dataclass(slots=True)
class InputTick:
    """Everything read from the inputs during one loop iteration."""

    audio: list[LabeledFrame] = field(default_factory=list)
    video: list[LabeledFrame] = field(default_factory=list)
    subtitles: list[Packet] = field(default_factory=list)
    exhausted: int = 0
    packets_read: int = 0
    frames_decoded: int = 0


@dataclass(slots=True)
class _Route:
    label: str
    decoder: Decoder


class InputFormat:
    """Open container of one Order input with its decoders."""

    def __init__(self, backend: MediaBackend, graph: FilterGraph, spec: Input) -> None:
        self.spec = spec
        self._audio: dict[int, _Route] = {}
        self._video: dict[int, _Route] = {}
        self._subtitles: dict[int, str] = {}
        if isinstance(spec, FramesInput):
            self.container: InputContainer | None = backend.open_frames(spec.path, spec.frames)
        else:
            self.container = backend.open_input(spec.path)
        try:
            self._build(backend, graph)
        except Exception:
            self.close()
            raise

    def _build(self, backend: MediaBackend, graph: FilterGraph) -> None:
        spec = self.spec
        if isinstance(spec, FramesInput):
            decoder = backend.create_codec_decoder(spec.codec, spec.width, spec.height)
            label = spec.label or ""
            self._video[0] = _Route(label, decoder)
            graph.add_input_from_video_decoder(label, decoder)
            return

        streams = self.container.streams
        for ref in spec.streams:
            if ref.index < 0 or ref.index >= len(streams):
                raise SetupError(f"Input {spec.id}: stream index {ref.index} not found in {spec.path!r}")
            label = ref.label or ""
            media_type = streams[ref.index].media_type
            if media_type is MediaType.AUDIO:
                decoder = backend.create_decoder(self.container, ref.index)
                self._audio[ref.index] = _Route(label, decoder)
                graph.add_input_from_audio_decoder(label, decoder)
            elif media_type is MediaType.VIDEO:
                decoder = backend.create_decoder(self.container, ref.index)
                self._video[ref.index] = _Route(label, decoder)
                graph.add_input_from_video_decoder(label, decoder)
            elif media_type is MediaType.SUBTITLE:
                self._subtitles[ref.index] = label
            else:
                log_event(_LOGGER, "order.input.stream_skipped", input=spec.id, stream=ref.index, media_type=media_type.value)

    @property
    def audio_indexes(self) -> list[int]:
        return list(self._audio)

    @property
    def video_indexes(self) -> list[int]:
        return list(self._video)

    def audio_indexes_for(self, labels: set[str]) -> list[int]:
        """Decoded audio streams registered under any of the given source labels."""

        return [index for index, route in self._audio.items() if route.label in labels]

    def video_indexes_for(self, labels: set[str]) -> list[int]:
        return [index for index, route in self._video.items() if route.label in labels]

    @property
    def stream_count(self) -> int:
        return len(self.container.streams) if self.container is not None else 0

    def _decode(self, route: _Route, packet: Packet | None) -> LabeledFrame | None:
        try:
            frame = route.decoder.decode(packet)
        except WouldBlock:
            return None
        except BackendError as exc:
            log_event(
                _LOGGER,
                "order.input.decode_failed",
                level=logging.WARNING,
                label=route.label,
                stream=route.decoder.stream_index,
                error=str(exc),
            )
            return None
        return LabeledFrame(route.label, frame)

    def _drain_video(self, tick: InputTick) -> bool:
        drained = False
        for route in self._video.values():
            try:
                frame = route.decoder.decode(None)
            except (WouldBlock, EndOfStream):
                continue
            tick.video.append(LabeledFrame(route.label, frame))
            tick.frames_decoded += 1
            drained = True
        return drained

    def read(self, tick: InputTick) -> None:
        """Read one packet per elementary stream of the container."""

        for _ in range(self.stream_count):
            try:
                packet = self.container.next_packet()
            except EndOfStream:
                if not self._drain_video(tick):
                    tick.exhausted += 1
                continue
            tick.packets_read += 1
            index = packet.stream_index
            if index in self._audio:
                labeled = self._decode(self._audio[index], packet)
                if labeled is not None:
                    tick.audio.append(labeled)
                    tick.frames_decoded += 1
            elif index in self._video:
                labeled = self._decode(self._video[index], packet)
                if labeled is not None:
                    tick.video.append(labeled)
                    tick.frames_decoded += 1
            elif index in self._subtitles:
                packet.label = self._subtitles[index]
                tick.subtitles.append(packet)

    def close(self) -> None:
        for route in (*self._audio.values(), *self._video.values()):
            route.decoder.close()
        self._audio.clear()
        self._video.clear()
        self._subtitles.clear()
        if self.container is not None:
            self.container.close()
            self.container = None
