"""Scene cut segmentation with near-duplicate cut diagnostics."""

from __future__ import annotations

from assay.graph.parameters import Float, ParamValue
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
from assay.probe.results import FalseSceneResult, SceneResult


TIME_KEY = "lavfi.scd.time"
SCORE_KEY = "lavfi.scd.score"


def create_graph(path: str, video_indexes: list[int], params: CheckParams) -> OrderSpec:
    parameters: dict[str, ParamValue] = {}
    value = params.get("threshold")
    if value is not None and value.th is not None:
        parameters["threshold"] = Float(value.th)

    spec = OrderSpec()
    for index in video_indexes:
        source = f"scene_video_input_{index}"
        sink = f"scene_video_output_{index}"
        spec.inputs.append(streams_input(index, path, {index: source}))
        spec.graph.append(source_filter("scdet", f"scdet_{index}", dict(parameters), sources=[source], sink=sink))
        spec.outputs.append(metadata_output(OutputKind.VIDEO_METADATA, sink, [TIME_KEY, SCORE_KEY]))
    return spec


class SceneSegmenter:
    """Turns cut timestamps into contiguous frame segments.

    Each cut opens a segment running to the last frame; the previous segment
    is closed on the frame before the cut. A cut at most one frame after the
    previous one is also reported as a false scene.
    """

    def __init__(self, *, frame_rate: float, nb_frames: int) -> None:
        self.frame_rate = frame_rate
        self.last_frame = max(0, nb_frames - 1)
        self.scenes: list[SceneResult] = []
        self.false_scenes: list[FalseSceneResult] = []

    def cut(self, time: float, score: float) -> SceneResult:
        frame_start = round(time * self.frame_rate)
        if self.scenes:
            previous = self.scenes[-1]
            if frame_start - previous.frame_start <= 1:
                self.false_scenes.append(FalseSceneResult(frame=frame_start))
            previous.frame_end = max(previous.frame_start, frame_start - 1)
            previous.frames_length = previous.frame_end - previous.frame_start + 1
        scene = SceneResult(
            frame_start=frame_start,
            frame_end=max(frame_start, self.last_frame),
            frames_length=max(frame_start, self.last_frame) - frame_start + 1,
            score=int(score),
            index=len(self.scenes) + 1,
        )
        self.scenes.append(scene)
        return scene


def collect_scenes(entries: list[Entry], *, video: VideoDetails) -> tuple[list[SceneResult], list[FalseSceneResult]]:
    segmenter = SceneSegmenter(frame_rate=video.frame_rate, nb_frames=video.nb_frames)
    for entry in entries:
        time = entry.get_float(TIME_KEY)
        if time is None:
            continue
        segmenter.cut(time, entry.get_float(SCORE_KEY) or 0.0)
    return segmenter.scenes, segmenter.false_scenes


def detect_scene(context: ProbeContext, params: CheckParams) -> None:
    entries = run_order(context, create_graph(context.path, context.video_indexes, params))
    grouped = entries_by_stream(entries)
    for index in context.video_indexes:
        scenes, false_scenes = collect_scenes(grouped.get(index, []), video=context.video_for(index))
        context.streams[index].detected_scene = scenes
        context.streams[index].detected_false_scene = false_scenes
