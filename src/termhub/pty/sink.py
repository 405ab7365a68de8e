"""Output sinks: where a session's push messages go.

A session owns its sink adapter; the transport behind it
(a WebSocket, an in-process queue, the local terminal) owns its lifecycle
and may close at any time.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import weakref
from typing import Any, Callable, Protocol, TextIO, runtime_checkable

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class SinkClosed(Exception):
    """The sink can no longer accept messages."""


@runtime_checkable
class Sink(Protocol):
    """Narrow capability a session needs from its transport."""

    def try_send(self, message: Message) -> None:
        """Deliver one message or raise :class:`SinkClosed`."""
        ...


def output_message(data: str) -> Message:
    return {"type": "output", "data": data}


def exit_message(exit_code: int | None, signal: int | None) -> Message:
    return {"type": "exit", "exitCode": exit_code, "signal": signal}


class QueueSink:
    """Sink backed by an ``asyncio.Queue``.

    ``close()`` pushes a ``None`` terminator and rejects later sends, the
    same way a wire subscription is torn down.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[Message | None] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    def try_send(self, message: Message) -> None:
        if self._closed:
            raise SinkClosed("queue sink is closed")
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull as e:
            raise SinkClosed("queue sink is full") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    @property
    def closed(self) -> bool:
        return self._closed

    def drain(self) -> list[Message]:
        """Return every queued message without waiting."""
        messages: list[Message] = []
        while True:
            try:
                item = self.queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is not None:
                messages.append(item)
        return messages


class CallbackSink:
    """Adapt a plain ``send(message)`` callable (e.g. a WebSocket send).

    Bound methods are referenced weakly, so the adapter never keeps its
    transport object alive; once the object is collected every send raises
    :class:`SinkClosed`. Plain functions and builtins are held as given.
    ``is_open`` lets the transport report disconnects; any exception from
    ``send`` is surfaced as :class:`SinkClosed`.
    """

    def __init__(
        self,
        send: Callable[[Message], None],
        is_open: Callable[[], bool] | None = None,
    ) -> None:
        self._send = _callable_ref(send)
        self._is_open = _callable_ref(is_open) if is_open is not None else None

    def try_send(self, message: Message) -> None:
        send = self._send()
        if send is None:
            raise SinkClosed("transport is gone")
        if self._is_open is not None:
            is_open = self._is_open()
            if is_open is None or not is_open():
                raise SinkClosed("transport is closed")
        try:
            send(message)
        except SinkClosed:
            raise
        except Exception as e:
            raise SinkClosed(str(e)) from e


def _callable_ref(func: Callable[..., Any]) -> Callable[[], Callable[..., Any] | None]:
    if inspect.ismethod(func):
        return weakref.WeakMethod(func)
    return lambda: func


class StreamSink:
    """Write output straight to a text stream (the local terminal).

    Exit messages are recorded on ``exit_info`` rather than printed.
    """

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self.exit_info: Message | None = None
        self.exited = asyncio.Event()

    def try_send(self, message: Message) -> None:
        if message.get("type") == "exit":
            self.exit_info = message
            self.exited.set()
            return
        try:
            self._stream.write(message.get("data", ""))
            self._stream.flush()
        except (OSError, ValueError) as e:
            raise SinkClosed(str(e)) from e
