"""DeepProbe orchestration: packet statistics plus the requested checks."""

from __future__ import annotations

import logging
import traceback
from uuid import UUID, uuid4

from assay.backend.base import EndOfStream, MediaBackend, MediaType
from assay.config.schema import DeepProbeCheck
from assay.errors import AssayError, PairingConfigWarning
from assay.observability.logging import get_logger, log_event
from assay.probe.common import ProbeContext
from assay.probe.registry import default_check_sequence
from assay.probe.results import DeepProbeReport, DeepProbeResult, FormatProbeResult, StreamProbeResult


_LOGGER = get_logger("assay.probe.deep")


def _default_backend() -> MediaBackend:
    from assay.backend.pyav import PyAVBackend

    return PyAVBackend()


class DeepProbe:
    """Analyse one media file and collect a per-stream report."""

    def __init__(self, path: str, id: UUID | None = None, *, backend: MediaBackend | None = None) -> None:
        self.path = path
        self.id = id or uuid4()
        self.backend = backend or _default_backend()
        self.result: DeepProbeResult | None = None

    def process(self, check: DeepProbeCheck) -> DeepProbeResult:
        """Run packet statistics then every requested check, in order.

        A failing check is logged and leaves its fields unset; the others
        still run. Failing to open the file raises.
        """

        context = self._scan()
        checks = default_check_sequence(check)
        log_event(
            _LOGGER,
            "probe.started",
            path=self.path,
            id=str(self.id),
            checks=[definition.name for definition in checks],
        )
        for definition in checks:
            try:
                definition.runner(context, definition.params)
            except PairingConfigWarning as exc:
                log_event(_LOGGER, "probe.check.skipped", level=logging.WARNING, check=definition.name, reason=str(exc))
            except AssayError as exc:
                log_event(_LOGGER, "probe.check.failed", level=logging.ERROR, check=definition.name, error=str(exc))
            except Exception as exc:
                log_event(
                    _LOGGER,
                    "probe.check.failed",
                    level=logging.ERROR,
                    check=definition.name,
                    error=f"{type(exc).__name__}: {exc}",
                    traceback=traceback.format_exc(),
                )
            else:
                log_event(_LOGGER, "probe.check.finished", check=definition.name)
        log_event(_LOGGER, "probe.finished", path=self.path, id=str(self.id))
        return self.result

    def _scan(self) -> ProbeContext:
        container = self.backend.open_input(self.path)
        try:
            streams = [StreamProbeResult(stream_index=info.index) for info in container.streams]
            while True:
                try:
                    packet = container.next_packet()
                except EndOfStream:
                    break
                if 0 <= packet.stream_index < len(streams):
                    streams[packet.stream_index].record_packet(packet.size)

            audio_indexes: list[int] = []
            video_indexes: list[int] = []
            for info in container.streams:
                stream = streams[info.index]
                stream.detected_bitrate = info.bit_rate
                if info.media_type is MediaType.AUDIO:
                    audio_indexes.append(info.index)
                elif info.media_type is MediaType.VIDEO:
                    video_indexes.append(info.index)
                    if stream.count_packets:
                        stream.color_space = info.color_space
                        stream.color_range = info.color_range
                        stream.color_primaries = info.color_primaries
                        stream.color_trc = info.color_trc
                        stream.color_matrix = info.color_matrix
            self.result = DeepProbeResult(
                streams=streams,
                format=FormatProbeResult(detected_bitrate_format=container.bit_rate),
            )
            stream_info = list(container.streams)
        finally:
            container.close()
        return ProbeContext(
            path=self.path,
            streams=streams,
            stream_info=stream_info,
            audio_indexes=audio_indexes,
            video_indexes=video_indexes,
            backend=self.backend,
        )

    def report(self) -> DeepProbeReport:
        return DeepProbeReport(id=self.id, result=self.result)
