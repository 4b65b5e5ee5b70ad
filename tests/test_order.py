from __future__ import annotations

import pytest

from assay.errors import BackendError, SetupError, UnresolvedInput
from assay.graph.parameters import String
from assay.order.order import Order, entries_of, packets_of
from assay.order.results import ProcessStatistics
from assay.order.spec import (
    FilterInput,
    FilterOutput,
    FilterSpec,
    InputKind,
    OrderSpec,
    Output,
    OutputKind,
    OutputStream,
    StreamRef,
    StreamsInput,
)
from fakes import (
    FakeBackend,
    FakeMedia,
    FakePacket,
    audio_packets,
    audio_stream,
    interleave,
    subtitle_stream,
    video_packets,
    video_stream,
)


def _silence_order(source_label: str = "audio_in") -> OrderSpec:
    return OrderSpec(
        inputs=[StreamsInput(id=0, path="clip.mov", streams=(StreamRef(1, "audio_in"),))],
        graph=[
            FilterSpec(
                name="silencedetect",
                label="detect",
                inputs=[FilterInput(InputKind.STREAM, source_label)],
            ),
            FilterSpec(
                name="aformat",
                parameters={"channel_layouts": String("mono")},
                outputs=[FilterOutput("audio_out")],
            ),
        ],
        outputs=[
            Output(
                kind=OutputKind.AUDIO_METADATA,
                keys=["lavfi.silence_start", "lavfi.silence_end"],
                stream="audio_out",
            )
        ],
    )


def test_metadata_order_yields_one_entry_per_sink_frame(backend):
    with Order(_silence_order(), backend=backend) as order:
        order.setup()
        results = order.process()

    entries = entries_of(results)
    assert len(entries) == 100
    assert all(entry.stream_id == 1 for entry in entries)
    assert entries[12].get("lavfi.silence_start") == "0.5"
    assert entries[51].get_float("lavfi.silence_end") == pytest.approx(2.04)
    assert entries[0].tags == {}

    stats = results[-1]
    assert isinstance(stats, ProcessStatistics)
    assert stats.packets_read == 200
    assert stats.graph_ticks == 100
    assert stats.entries == 100


def test_unknown_filter_input_fails_before_reading_and_releases_everything(backend):
    order = Order(_silence_order("nonexistent"), backend=backend)

    with pytest.raises(SetupError) as excinfo:
        order.setup()

    assert isinstance(excinfo.value, UnresolvedInput)
    assert all(container.reads == 0 for container in backend.containers)
    assert backend.all_closed()


def test_order_cannot_be_set_up_twice_or_processed_after_close(backend):
    order = Order(_silence_order(), backend=backend)
    order.setup()

    with pytest.raises(SetupError):
        order.setup()

    order.close()
    with pytest.raises(SetupError):
        order.process()
    assert backend.all_closed()


def test_missing_input_file_is_reported_and_nothing_leaks():
    backend = FakeBackend({})

    with pytest.raises(BackendError):
        Order(_silence_order(), backend=backend).setup()

    assert backend.all_closed()


def test_stream_index_out_of_range_is_a_setup_error(backend):
    spec = _silence_order()
    spec.inputs = [StreamsInput(id=0, path="clip.mov", streams=(StreamRef(7, "audio_in"),))]

    with pytest.raises(SetupError, match="stream index 7"):
        Order(spec, backend=backend).setup()
    assert backend.all_closed()


def test_packet_output_reframes_audio_to_encoder_frame_size(av_media):
    backend = FakeBackend({"clip.mov": av_media}, audio_frame_size=1024)
    spec = OrderSpec(
        inputs=[StreamsInput(id=0, path="clip.mov", streams=(StreamRef(1, "audio_in"),))],
        graph=[
            FilterSpec(
                name="anull",
                inputs=[FilterInput(InputKind.STREAM, "audio_in")],
                outputs=[FilterOutput("audio_out")],
            )
        ],
        outputs=[
            Output(
                kind=OutputKind.PACKET,
                path="out.wav",
                streams=[OutputStream(codec="pcm_s16le", label="audio_out")],
            )
        ],
    )

    with Order(spec, backend=backend) as order:
        order.setup()
        results = order.process()

    packets = packets_of(results)
    encoder = backend.encoders[0]
    assert len(packets) == 188
    assert [pts for _, pts in encoder.frames[:3]] == [0, 1024, 2048]
    assert encoder.frames[-1][0].samples.shape == (2, 512)
    assert backend.outputs[0].trailer
    assert results[-1].packets_encoded == 188


def test_subtitle_packets_bypass_the_graph():
    media = FakeMedia(
        streams=[audio_stream(0), subtitle_stream(1)],
        packets=interleave(
            audio_packets(0, {}, 3),
            [FakePacket(1, size=20), FakePacket(1, size=21)],
        ),
    )
    backend = FakeBackend({"movie.mkv": media})
    spec = OrderSpec(
        inputs=[
            StreamsInput(
                id=0,
                path="movie.mkv",
                streams=(StreamRef(0, "audio_in"), StreamRef(1, "subs")),
            )
        ],
        graph=[
            FilterSpec(
                name="anull",
                inputs=[FilterInput(InputKind.STREAM, "audio_in")],
                outputs=[FilterOutput("audio_out")],
            )
        ],
        outputs=[
            Output(kind=OutputKind.AUDIO_METADATA, keys=[], stream="audio_out"),
            Output(
                kind=OutputKind.PACKET,
                path="subs.srt",
                streams=[OutputStream(codec="subrip", label="subs")],
            ),
        ],
    )

    with Order(spec, backend=backend) as order:
        order.setup()
        results = order.process()

    packets = packets_of(results)
    assert [packet.packet.size for packet in packets] == [20, 21]
    assert all(packet.label == "subs" for packet in packets)
    assert len(entries_of(results)) == 3


def test_video_entries_carry_the_decoded_stream_index():
    media = FakeMedia(
        streams=[audio_stream(0), video_stream(1)],
        packets=video_packets(1, {0: {"k": "v"}}, 2),
    )
    backend = FakeBackend({"still.mov": media})
    spec = OrderSpec(
        inputs=[StreamsInput(id=0, path="still.mov", streams=(StreamRef(1, "video_in"),))],
        graph=[
            FilterSpec(
                name="null",
                inputs=[FilterInput(InputKind.STREAM, "video_in")],
                outputs=[FilterOutput("video_out")],
            )
        ],
        outputs=[Output(kind=OutputKind.VIDEO_METADATA, keys=["k"], stream="video_out")],
    )

    with Order(spec, backend=backend) as order:
        order.setup()
        results = order.process()

    entries = entries_of(results)
    assert [entry.stream_id for entry in entries] == [1, 1]
    assert entries[0].tags == {"k": "v"}
    assert results[-1].graph_ticks == 2


def test_running_the_same_order_twice_gives_the_same_entries(backend):
    spec = _silence_order()

    runs = []
    for _ in range(2):
        with Order(spec, backend=backend) as order:
            order.setup()
            runs.append(entries_of(order.process()))

    assert runs[0] == runs[1]
    assert len(runs[0]) == 100
    assert backend.all_closed()


def test_entries_follow_graph_wiring_not_sink_position():
    backend = FakeBackend(
        {
            "picture.mov": FakeMedia(
                streams=[video_stream(0)],
                packets=video_packets(0, {0: {"k": "v"}}, 2),
            ),
            "sound.mov": FakeMedia(
                streams=[video_stream(0), audio_stream(1), audio_stream(2)],
                packets=audio_packets(2, {0: {"k": "a"}}, 2),
            ),
        }
    )
    spec = OrderSpec(
        inputs=[
            StreamsInput(id=0, path="picture.mov", streams=(StreamRef(0, "video_in"),)),
            StreamsInput(id=1, path="sound.mov", streams=(StreamRef(2, "audio_in"),)),
        ],
        graph=[
            FilterSpec(
                name="null",
                inputs=[FilterInput(InputKind.STREAM, "video_in")],
                outputs=[FilterOutput("video_out")],
            ),
            FilterSpec(
                name="anull",
                inputs=[FilterInput(InputKind.STREAM, "audio_in")],
                outputs=[FilterOutput("audio_out")],
            ),
        ],
        # The audio sink is registered first, so sink 0 belongs to the second input.
        outputs=[
            Output(kind=OutputKind.AUDIO_METADATA, keys=["k"], stream="audio_out"),
            Output(kind=OutputKind.VIDEO_METADATA, keys=["k"], stream="video_out"),
        ],
    )

    with Order(spec, backend=backend) as order:
        order.setup()
        entries = entries_of(order.process())

    by_stream: dict[int | None, list[dict[str, str]]] = {}
    for entry in entries:
        by_stream.setdefault(entry.stream_id, []).append(entry.tags)
    assert by_stream == {2: [{"k": "a"}, {}], 0: [{"k": "v"}, {}]}
    assert backend.all_closed()
