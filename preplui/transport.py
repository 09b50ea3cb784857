"""Transports feeding connection channel pairs."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol, runtime_checkable

from .config import ConnectionConfig
from .errors import ReaderError, TransportError
from .forms import Keyword, Map, kw
from .models import ChannelPair
from .reader import read_string

LOG = logging.getLogger(__name__)

# prepl writes every message on one line, large values included.
_LINE_LIMIT = 16 * 1024 * 1024

Responder = Callable[[str, str], Iterable[str]]


@runtime_checkable
class Transport(Protocol):
    """Opens channel pairs for configured connections."""

    async def open(self, config: ConnectionConfig) -> ChannelPair:
        """Connect and return the channels for ``config.tag``."""

    async def close(self, tag: str) -> None:
        """Tear down whatever :meth:`open` started for ``tag``."""


def prepl_reply(message: Map) -> str | None:
    """Tagged response text for a prepl ``:ret`` message, ``None`` otherwise."""

    if message.get(kw("tag")) != kw("ret"):
        return None
    val = message.get(kw("val"))
    tag = "exception" if message.get(kw("exception")) is True else "ok"
    return f"[:{tag} {val}]"


@dataclass(slots=True)
class _Session:
    writer: asyncio.StreamWriter
    tasks: tuple[asyncio.Task[None], ...]


class SocketTransport:
    """Speaks prepl over TCP.

    Outbound code is written as-is followed by a newline. Inbound messages
    tagged ``:ret`` become ``[:ok val]`` or ``[:exception val]``; ``:out``,
    ``:err`` and ``:tap`` messages are only logged.
    """

    def __init__(self, *, connect_timeout: float = 3.0) -> None:
        self._connect_timeout = connect_timeout
        self._sessions: dict[str, _Session] = {}

    async def open(self, config: ConnectionConfig) -> ChannelPair:
        if config.port is None:
            raise TransportError(f"No port configured for {config.tag}")
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(config.host, config.port, limit=_LINE_LIMIT),
                timeout=self._connect_timeout,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransportError(
                f"Failed to connect to {config.tag} at {config.host}:{config.port}: {exc}"
            ) from exc
        channels = ChannelPair()
        tasks = (
            asyncio.create_task(self._pump_out(config.tag, channels, writer)),
            asyncio.create_task(self._pump_in(config.tag, channels, reader)),
        )
        self._sessions[config.tag] = _Session(writer, tasks)
        LOG.info("Connected", extra={"conn": config.tag, "host": config.host, "port": config.port})
        return channels

    async def close(self, tag: str) -> None:
        session = self._sessions.pop(tag, None)
        if session is None:
            return
        for task in session.tasks:
            task.cancel()
        session.writer.close()
        with contextlib.suppress(ConnectionError):
            await session.writer.wait_closed()
        LOG.info("Disconnected", extra={"conn": tag})

    async def _pump_out(self, tag: str, channels: ChannelPair, writer: asyncio.StreamWriter) -> None:
        while True:
            code = await channels.outbound.get()
            try:
                writer.write(code.encode("utf-8") + b"\n")
                await writer.drain()
            except ConnectionError:
                LOG.error("Connection lost while sending", extra={"conn": tag})
                return

    async def _pump_in(self, tag: str, channels: ChannelPair, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                line = await reader.readline()
            except (ConnectionError, asyncio.LimitOverrunError, ValueError) as exc:
                LOG.error("Connection lost while reading", extra={"conn": tag, "error": str(exc)})
                return
            if not line:
                LOG.info("Connection closed by runtime", extra={"conn": tag})
                return
            text = line.decode("utf-8", errors="replace").strip()
            if not text:
                continue
            try:
                message = read_string(text)
            except ReaderError:
                LOG.warning("Unreadable prepl message", extra={"conn": tag, "raw": text})
                continue
            if not isinstance(message, Map):
                LOG.warning("Unexpected prepl message", extra={"conn": tag, "raw": text})
                continue
            reply = prepl_reply(message)
            if reply is not None:
                await channels.inbound.put(reply)
                continue
            kind = message.get(kw("tag"))
            name = kind.name if isinstance(kind, Keyword) else str(kind)
            LOG.info("%s", message.get(kw("val")), extra={"conn": tag, "stream": name})


class ScriptedTransport:
    """In-process transport answering each submission through ``responder``.

    ``responder(tag, code)`` returns the reply texts for one submission; every
    submission is recorded under its tag in :attr:`submissions`.
    """

    def __init__(self, responder: Responder) -> None:
        self._responder = responder
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self.submissions: defaultdict[str, list[str]] = defaultdict(list)
        self.opened: list[str] = []

    async def open(self, config: ConnectionConfig) -> ChannelPair:
        channels = ChannelPair()
        self._tasks[config.tag] = asyncio.create_task(self._serve(config.tag, channels))
        self.opened.append(config.tag)
        return channels

    async def close(self, tag: str) -> None:
        task = self._tasks.pop(tag, None)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _serve(self, tag: str, channels: ChannelPair) -> None:
        while True:
            code = await channels.outbound.get()
            self.submissions[tag].append(code)
            for reply in self._responder(tag, code):
                await channels.inbound.put(reply)


__all__ = [
    "Responder",
    "ScriptedTransport",
    "SocketTransport",
    "Transport",
    "prepl_reply",
]
