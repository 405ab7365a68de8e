"""Tests for termhub.pty.sink."""

from __future__ import annotations

import gc
import io

import pytest

from termhub.pty.sink import (
    CallbackSink,
    QueueSink,
    Sink,
    SinkClosed,
    StreamSink,
    exit_message,
    output_message,
)


class TestMessages:
    def test_output(self) -> None:
        assert output_message("hi") == {"type": "output", "data": "hi"}

    def test_exit(self) -> None:
        assert exit_message(0, None) == {"type": "exit", "exitCode": 0, "signal": None}
        assert exit_message(None, 9) == {"type": "exit", "exitCode": None, "signal": 9}


class TestQueueSink:
    def test_is_a_sink(self) -> None:
        assert isinstance(QueueSink(), Sink)

    def test_send_and_drain(self) -> None:
        sink = QueueSink()
        sink.try_send(output_message("a"))
        sink.try_send(output_message("b"))
        assert sink.drain() == [output_message("a"), output_message("b")]

    def test_closed_rejects(self) -> None:
        sink = QueueSink()
        sink.close()
        assert sink.closed
        with pytest.raises(SinkClosed):
            sink.try_send(output_message("a"))

    def test_close_is_idempotent(self) -> None:
        sink = QueueSink()
        sink.close()
        sink.close()
        assert sink.queue.qsize() == 1

    def test_full_queue_rejects(self) -> None:
        sink = QueueSink(maxsize=1)
        sink.try_send(output_message("a"))
        with pytest.raises(SinkClosed):
            sink.try_send(output_message("b"))


class TestCallbackSink:
    def test_forwards(self) -> None:
        got: list[dict] = []
        sink = CallbackSink(got.append)
        sink.try_send(output_message("x"))
        assert got == [output_message("x")]

    def test_closed_transport(self) -> None:
        sink = CallbackSink(lambda m: None, is_open=lambda: False)
        with pytest.raises(SinkClosed):
            sink.try_send(output_message("x"))

    def test_send_error_becomes_sink_closed(self) -> None:
        def boom(message: dict) -> None:
            raise ConnectionResetError("gone")

        with pytest.raises(SinkClosed, match="gone"):
            CallbackSink(boom).try_send(output_message("x"))

    def test_bound_method_held_weakly(self) -> None:
        class Transport:
            def __init__(self) -> None:
                self.messages: list[dict] = []

            def send(self, message: dict) -> None:
                self.messages.append(message)

        transport = Transport()
        sink = CallbackSink(transport.send)
        sink.try_send(output_message("x"))
        assert transport.messages == [output_message("x")]

        del transport
        gc.collect()
        with pytest.raises(SinkClosed, match="gone"):
            sink.try_send(output_message("y"))

    def test_plain_callable_held_strongly(self) -> None:
        got: list[dict] = []
        sink = CallbackSink(lambda m: got.append(m))
        gc.collect()
        sink.try_send(output_message("x"))
        assert got == [output_message("x")]


class TestStreamSink:
    async def test_writes_output_and_records_exit(self) -> None:
        stream = io.StringIO()
        sink = StreamSink(stream)
        sink.try_send(output_message("hello"))
        sink.try_send(exit_message(3, None))
        assert stream.getvalue() == "hello"
        assert sink.exit_info == exit_message(3, None)
        assert sink.exited.is_set()

    async def test_closed_stream(self) -> None:
        stream = io.StringIO()
        stream.close()
        with pytest.raises(SinkClosed):
            StreamSink(stream).try_send(output_message("x"))
