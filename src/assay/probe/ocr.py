"""Media offline card detection from OCR text anchored on scene cuts."""

from __future__ import annotations

from assay.graph.parameters import Float, Int64, ParamValue
from assay.order.results import Entry
from assay.order.spec import OrderSpec, OutputKind
from assay.probe.common import (
    CheckParams,
    ProbeContext,
    metadata_output,
    run_order,
    source_filter,
    streams_input,
)
from assay.probe.details import VideoDetails
from assay.probe.intervals import entries_by_stream
from assay.probe.results import OcrResult


TEXT_KEY = "lavfi.ocr.text"
CONFIDENCE_KEY = "lavfi.ocr.confidence"
TIME_KEY = "lavfi.scd.time"

OFFLINE_PREFIXES = ("MEDIA OFFLINE", "OFFLINE")


def create_graph(path: str, video_indexes: list[int], params: CheckParams) -> OrderSpec:
    scdet: dict[str, ParamValue] = {"sc_pass": Int64(1)}
    value = params.get("threshold")
    if value is not None and value.th is not None:
        scdet["threshold"] = Float(value.th)

    spec = OrderSpec()
    for index in video_indexes:
        source = f"ocr_video_input_{index}"
        sink = f"ocr_video_output_{index}"
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(source_filter("scdet", f"ocr_scdet_{index}", dict(scdet), sources=[source]))
        spec.graph.append(source_filter("ocr", f"ocr_{index}", {}, sink=sink))
        spec.outputs.append(metadata_output(OutputKind.VIDEO_METADATA, sink, [TEXT_KEY, CONFIDENCE_KEY, TIME_KEY]))
    return spec


def format_confidence(raw: str) -> str:
    """`"91 87"` becomes `"91%,87%"`."""

    return ",".join(f"{token}%" for token in raw.split())


def is_offline_text(text: str) -> bool:
    return text.startswith(OFFLINE_PREFIXES)


def collect_ocr(entries: list[Entry], *, video: VideoDetails) -> list[OcrResult]:
    """Open an interval on offline text, close it on the next scene cut."""

    detected: list[OcrResult] = []
    current: OcrResult | None = None
    for entry in entries:
        cut = entry.get_float(TIME_KEY)
        if current is not None and cut is not None:
            current.frame_end = max(current.frame_start, round(cut * video.frame_rate) - 1)
            current = None

        text = entry.get(TEXT_KEY)
        if text is None or not is_offline_text(text):
            continue
        if current is not None:
            continue
        current = OcrResult(
            frame_start=round(cut * video.frame_rate) if cut is not None else 0,
            frame_end=video.nb_frames,
            text=text,
            confidence=format_confidence(entry.get(CONFIDENCE_KEY) or ""),
        )
        detected.append(current)
    return detected


def detect_ocr(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.video_indexes, params))
    grouped = entries_by_stream(entries)
    for index in context.video_indexes:
        context.streams[index].detected_ocr = collect_ocr(grouped.get(index, []), video=context.video_for(index))
