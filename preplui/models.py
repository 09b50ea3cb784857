"""Shared dataclasses used across connection, evaluation and UI modules."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import ProtocolError, ReaderError
from .forms import Keyword, Vector
from .reader import read_string


class Dialect(str, Enum):
    """Evaluation-target language variants."""

    CLOJURE = "clj"
    CLOJURESCRIPT = "cljs"


class HookName(str, Enum):
    """Interception points a connection may configure."""

    CONNECT = "connect!"
    EVAL = "eval"
    RESULT = "result!"
    REFRESH = "refresh"


class RefreshOp(str, Enum):
    """Reload modes offered by tools.namespace."""

    CLEAR = "clear"
    CHANGED = "changed"
    ALL = "all"


class ResponseTag(str, Enum):
    OK = "ok"
    EXCEPTION = "exception"


@dataclass(frozen=True, slots=True)
class ChannelPair:
    """Outbound code text and inbound tagged responses for one connection."""

    outbound: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    inbound: asyncio.Queue[str] = field(default_factory=asyncio.Queue)


@dataclass(slots=True, eq=False)
class Connection:
    """A live runtime endpoint.

    Only ``enabled`` changes after creation. ``lock`` is held for a whole
    round trip so responses from concurrent actions cannot interleave.
    """

    tag: str
    dialect: Dialect
    host: str
    port: int | None
    channels: ChannelPair
    extensions: frozenset[str] = frozenset()
    enabled: bool = True
    hooks: Mapping[HookName, str] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass(frozen=True, slots=True)
class EditorContext:
    """Where an action was issued from."""

    path: str | None = None
    ns: str | None = None
    cwd: str = "."


@dataclass(frozen=True, slots=True)
class EvalRequest:
    """One wrapped submission to a connection."""

    connection: Connection
    code: str
    namespace: str | None = None
    source_path: str | None = None
    line: int | None = None


@dataclass(frozen=True, slots=True)
class EvalResponse:
    """Tagged reply: ``[:ok value]`` or ``[:exception value]``."""

    tag: ResponseTag
    value: Any
    raw: str = ""

    @property
    def exception(self) -> bool:
        return self.tag is ResponseTag.EXCEPTION

    @classmethod
    def ok(cls, value: Any, raw: str = "") -> "EvalResponse":
        return cls(ResponseTag.OK, value, raw)

    @classmethod
    def parse(cls, text: str) -> "EvalResponse":
        """Parse a reply read from a connection's inbound channel."""

        try:
            data = read_string(text)
        except ReaderError as exc:
            raise ProtocolError(f"Unreadable response: {text!r}") from exc
        if not isinstance(data, Vector) or len(data) != 2 or not isinstance(data[0], Keyword):
            raise ProtocolError(f"Malformed response: {text!r}")
        try:
            tag = ResponseTag(data[0].name)
        except ValueError as exc:
            raise ProtocolError(f"Unknown response tag: {data[0]}") from exc
        return cls(tag, data[1], text)


@dataclass(frozen=True, slots=True)
class Location:
    """Definition site with a 0-based column."""

    path: str
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Completion:
    """Single completion candidate for the editor."""

    word: str
    kind: str = ""
    menu: str | None = None
    info: str | None = None


__all__ = [
    "ChannelPair",
    "Completion",
    "Connection",
    "Dialect",
    "EditorContext",
    "EvalRequest",
    "EvalResponse",
    "HookName",
    "Location",
    "RefreshOp",
    "ResponseTag",
]
