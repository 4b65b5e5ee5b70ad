"""Declarative Order model and its JSON wire format."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any

from assay.errors import SetupError
from assay.graph.parameters import ParamValue, param_to_json, params_from_json


class InputKind(str, Enum):
    STREAM = "stream"
    FILTER = "filter"


class OutputKind(str, Enum):
    FILE = "file"
    PACKET = "packet"
    AUDIO_METADATA = "audio_metadata"
    VIDEO_METADATA = "video_metadata"


@dataclass(frozen=True, slots=True)
class StreamRef:
    index: int
    label: str | None = None


@dataclass(frozen=True, slots=True)
class FrameAddress:
    index: int
    offset: int
    size: int


@dataclass(frozen=True, slots=True)
class StreamsInput:
    """Container-backed input consuming selected elementary streams."""

    id: int
    path: str
    streams: tuple[StreamRef, ...]


@dataclass(frozen=True, slots=True)
class FramesInput:
    """Raw elementary video file addressed frame by frame."""

    id: int
    path: str
    codec: str
    width: int
    height: int
    frames: tuple[FrameAddress, ...]
    label: str | None = None


Input = StreamsInput | FramesInput


@dataclass(frozen=True, slots=True)
class FilterInput:
    kind: InputKind
    stream_label: str


@dataclass(frozen=True, slots=True)
class FilterOutput:
    stream_label: str


@dataclass(slots=True)
class FilterSpec:
    name: str
    label: str | None = None
    parameters: dict[str, ParamValue] = field(default_factory=dict)
    inputs: list[FilterInput] | None = None
    outputs: list[FilterOutput] | None = None


@dataclass(slots=True)
class OutputStream:
    codec: str
    label: str | None = None
    parameters: dict[str, ParamValue] = field(default_factory=dict)


@dataclass(slots=True)
class Output:
    kind: OutputKind | None = None
    keys: list[str] = field(default_factory=list)
    parameters: dict[str, ParamValue] = field(default_factory=dict)
    path: str | None = None
    stream: str | None = None
    streams: list[OutputStream] = field(default_factory=list)


@dataclass(slots=True)
class OrderSpec:
    inputs: list[Input] = field(default_factory=list)
    graph: list[FilterSpec] = field(default_factory=list)
    outputs: list[Output] = field(default_factory=list)


def _require(payload: Any, key: str, where: str) -> Any:
    if not isinstance(payload, dict):
        raise SetupError(f"{where} must be an object")
    if key not in payload or payload[key] is None:
        raise SetupError(f"{where} is missing required field {key!r}")
    return payload[key]


def _list(payload: dict[str, Any], key: str, where: str, *, required: bool = False) -> list[Any]:
    raw = _require(payload, key, where) if required else payload.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise SetupError(f"{where}.{key} must be a list")
    return raw


def _int(payload: dict[str, Any], key: str, where: str) -> int:
    value = _require(payload, key, where)
    if isinstance(value, bool) or not isinstance(value, int):
        raise SetupError(f"{where}.{key} must be an integer")
    return value


def _str(payload: dict[str, Any], key: str, where: str) -> str:
    value = _require(payload, key, where)
    if not isinstance(value, str):
        raise SetupError(f"{where}.{key} must be a string")
    return value


def _enum(enum_type: type[Enum], raw: Any, where: str) -> Any:
    try:
        return enum_type(raw)
    except ValueError as exc:
        raise SetupError(f"{where}: unknown value {raw!r}") from exc


def input_from_dict(payload: dict[str, Any], position: int = 0) -> Input:
    """Decode one input; the shape with a `frames` list is the frame-addressed one."""

    where = f"inputs[{position}]"
    if isinstance(payload, dict) and "frames" in payload:
        frames = tuple(
            FrameAddress(
                index=_int(item, "index", f"{where}.frames[{i}]"),
                offset=_int(item, "offset", f"{where}.frames[{i}]"),
                size=_int(item, "size", f"{where}.frames[{i}]"),
            )
            for i, item in enumerate(_list(payload, "frames", where))
        )
        return FramesInput(
            id=_int(payload, "id", where),
            path=_str(payload, "path", where),
            codec=_str(payload, "codec", where),
            width=_int(payload, "width", where),
            height=_int(payload, "height", where),
            frames=frames,
            label=payload.get("label"),
        )
    streams = tuple(
        StreamRef(index=_int(item, "index", f"{where}.streams[{i}]"), label=item.get("label"))
        for i, item in enumerate(_list(payload, "streams", where, required=True))
    )
    return StreamsInput(id=_int(payload, "id", where), path=_str(payload, "path", where), streams=streams)


def filter_from_dict(payload: dict[str, Any], position: int = 0) -> FilterSpec:
    where = f"graph[{position}]"
    inputs = None
    if isinstance(payload, dict) and payload.get("inputs") is not None:
        inputs = [
            FilterInput(
                kind=_enum(InputKind, _require(item, "kind", f"{where}.inputs[{i}]"), where),
                stream_label=_str(item, "stream_label", f"{where}.inputs[{i}]"),
            )
            for i, item in enumerate(_list(payload, "inputs", where))
        ]
    outputs = None
    if isinstance(payload, dict) and payload.get("outputs") is not None:
        outputs = [
            FilterOutput(stream_label=_str(item, "stream_label", f"{where}.outputs[{i}]"))
            for i, item in enumerate(_list(payload, "outputs", where))
        ]
    return FilterSpec(
        name=_str(payload, "name", where),
        label=payload.get("label"),
        parameters=params_from_json(_require(payload, "parameters", where)),
        inputs=inputs,
        outputs=outputs,
    )


def output_from_dict(payload: dict[str, Any], position: int = 0) -> Output:
    where = f"outputs[{position}]"
    if not isinstance(payload, dict):
        raise SetupError(f"{where} must be an object")
    kind = payload.get("kind")
    streams = [
        OutputStream(
            codec=_str(item, "codec", f"{where}.streams[{i}]"),
            label=item.get("label"),
            parameters=params_from_json(_require(item, "parameters", f"{where}.streams[{i}]")),
        )
        for i, item in enumerate(_list(payload, "streams", where))
    ]
    return Output(
        kind=_enum(OutputKind, kind, where) if kind is not None else None,
        keys=[str(key) for key in _list(payload, "keys", where)],
        parameters=params_from_json(payload.get("parameters")),
        path=payload.get("path"),
        stream=payload.get("stream"),
        streams=streams,
    )


def order_from_dict(payload: dict[str, Any]) -> OrderSpec:
    """Build an OrderSpec from decoded JSON; unknown fields are ignored."""

    if not isinstance(payload, dict):
        raise SetupError("Order must be a JSON object")
    return OrderSpec(
        inputs=[input_from_dict(item, i) for i, item in enumerate(_list(payload, "inputs", "order", required=True))],
        graph=[filter_from_dict(item, i) for i, item in enumerate(_list(payload, "graph", "order", required=True))],
        outputs=[output_from_dict(item, i) for i, item in enumerate(_list(payload, "outputs", "order", required=True))],
    )


def parse_order(text: str) -> OrderSpec:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SetupError(f"Invalid order JSON: {exc}") from exc
    return order_from_dict(payload)


def order_to_dict(spec: OrderSpec) -> dict[str, Any]:
    """Return the JSON-compatible form of an OrderSpec."""

    def params(mapping: dict[str, ParamValue]) -> dict[str, Any]:
        return {key: param_to_json(value) for key, value in mapping.items()}

    inputs: list[dict[str, Any]] = []
    for item in spec.inputs:
        if isinstance(item, FramesInput):
            inputs.append(
                {
                    "id": item.id,
                    "label": item.label,
                    "path": item.path,
                    "codec": item.codec,
                    "width": item.width,
                    "height": item.height,
                    "frames": [{"index": f.index, "offset": f.offset, "size": f.size} for f in item.frames],
                }
            )
        else:
            inputs.append(
                {
                    "id": item.id,
                    "path": item.path,
                    "streams": [{"index": s.index, "label": s.label} for s in item.streams],
                }
            )

    graph: list[dict[str, Any]] = []
    for node in spec.graph:
        entry: dict[str, Any] = {"name": node.name, "label": node.label, "parameters": params(node.parameters)}
        if node.inputs is not None:
            entry["inputs"] = [{"kind": i.kind.value, "stream_label": i.stream_label} for i in node.inputs]
        if node.outputs is not None:
            entry["outputs"] = [{"stream_label": o.stream_label} for o in node.outputs]
        graph.append(entry)

    outputs = [
        {
            "kind": output.kind.value if output.kind is not None else None,
            "keys": list(output.keys),
            "parameters": params(output.parameters),
            "path": output.path,
            "stream": output.stream,
            "streams": [
                {"label": s.label, "codec": s.codec, "parameters": params(s.parameters)} for s in output.streams
            ],
        }
        for output in spec.outputs
    ]
    return {"inputs": inputs, "graph": graph, "outputs": outputs}
