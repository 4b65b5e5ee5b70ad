"""Black border (crop) detection as a sparse timeline of size transitions."""

from __future__ import annotations

from assay.graph.parameters import Int64, ParamValue, String
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
from assay.probe.results import CropResult


KEYS = [
    "lavfi.cropdetect.w",
    "lavfi.cropdetect.h",
    "lavfi.cropdetect.x1",
    "lavfi.cropdetect.x2",
    "lavfi.cropdetect.y1",
    "lavfi.cropdetect.y2",
]


def black_limit(bits_per_raw_sample: int | None) -> int:
    """Return the cropdetect black threshold for a sample depth."""

    if bits_per_raw_sample == 10:
        return 64
    if bits_per_raw_sample == 12:
        return 256
    return 16


def spot_check_expression(nb_frames: int, max_checks: int | None) -> str | None:
    if not max_checks or nb_frames <= 0:
        return None
    scale = max(1, nb_frames // max_checks - 1)
    return f"not(mod(n,{scale}))"


def create_graph(path: str, video_indexes: list[int], params: CheckParams, details: dict[int, VideoDetails]) -> OrderSpec:
    spot_check = params.get("spot_check")
    spec = OrderSpec()
    for index in video_indexes:
        video = details[index]
        source = f"crop_video_input_{index}"
        sink = f"crop_video_output_{index}"
        select_params: dict[str, ParamValue] = {}
        expression = spot_check_expression(video.nb_frames, spot_check.max if spot_check is not None else None)
        if expression is not None:
            select_params["expr"] = String(expression)
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(
            source_filter(
                "cropdetect",
                f"cropdetect_{index}",
                {"limit": Int64(black_limit(video.bits_per_raw_sample))},
                sources=[source],
            )
        )
        spec.graph.append(source_filter("select", f"select_{index}", select_params, sink=sink))
        spec.outputs.append(metadata_output(OutputKind.VIDEO_METADATA, sink, KEYS))
    return spec


def _edge_span(entry: Entry, low_key: str, high_key: str) -> int | None:
    low = entry.get_float(low_key)
    high = entry.get_float(high_key)
    if low is None or high is None:
        return None
    return int(high) - int(low) + 1


def collect_crop(entries: list[Entry], *, video: VideoDetails) -> list[CropResult]:
    """Emit a record each time the detected picture size changes."""

    time_base = video.time_base.to_float()
    sar = video.sample_aspect_ratio
    width, height = video.width, video.height
    crops: list[CropResult] = []
    for entry in entries:
        new_width = _edge_span(entry, "lavfi.cropdetect.x1", "lavfi.cropdetect.x2")
        new_height = _edge_span(entry, "lavfi.cropdetect.y1", "lavfi.cropdetect.y2")
        if new_width is None and new_height is None:
            continue
        new_width = width if new_width is None else new_width
        new_height = height if new_height is None else new_height
        if (new_width, new_height) == (width, height):
            continue
        width, height = new_width, new_height
        aspect_ratio = (width * sar.num) / (height * sar.den) if height and sar.den else 0.0
        crops.append(
            CropResult(
                pts=round((entry.pts or 0) * time_base * 1000),
                width=width,
                height=height,
                aspect_ratio=aspect_ratio,
            )
        )
    return crops


def detect_crop(context: ProbeContext, params: CheckParams) -> None:
    details = {index: context.video_for(index) for index in context.video_indexes}
    entries = run_order(context, create_graph(context.path, context.video_indexes, params, details))
    grouped = entries_by_stream(entries)
    for index in context.video_indexes:
        context.streams[index].detected_crop = collect_crop(grouped.get(index, []), video=details[index])
