"""UI collaborator contract plus a logging implementation."""

from __future__ import annotations

import logging
import re
from typing import Protocol, Sequence, runtime_checkable

from .forms import pr_str
from .models import Connection, EvalResponse, Location, RefreshOp

LOG = logging.getLogger(__name__)

SAMPLE_LENGTH = 50


def sample(code: str | None, length: int = SAMPLE_LENGTH) -> str | None:
    """Short one-line sample of some code for status messages."""

    if code is None:
        return None
    flat = re.sub(r"\s+", " ", code)
    if len(flat) > length:
        return flat[:length] + "…"
    return flat


def display_value(response: EvalResponse) -> str:
    """Text shown for a response value; strings are shown unquoted."""

    if isinstance(response.value, str):
        return response.value
    return pr_str(response.value)


@runtime_checkable
class Ui(Protocol):
    """Receives every user-visible outcome of an action."""

    def error(self, message: str) -> None: ...

    def eval_started(self, conn: Connection, code: str) -> None: ...

    def load_file_started(self, conn: Connection, path: str) -> None: ...

    def refresh_started(self, conn: Connection, op: RefreshOp) -> None: ...

    def result(self, conn: Connection, response: EvalResponse) -> None: ...

    def doc(self, conn: Connection, response: EvalResponse) -> None: ...

    def source(self, conn: Connection, response: EvalResponse) -> None: ...

    def test_output(self, conn: Connection, response: EvalResponse) -> None: ...

    def quick_doc(self, text: str) -> None: ...

    def clear_virtual(self) -> None: ...

    def definition(self, location: Location) -> None: ...

    def definition_fallback(self, name: str) -> None: ...

    def up_summary(self, conns: Sequence[Connection]) -> None: ...

    def up_done(self, message: str) -> None: ...


class LoggingUi:
    """Ui that writes everything to the log; used headless and as a default."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or LOG

    def error(self, message: str) -> None:
        self._log.error(message)

    def eval_started(self, conn: Connection, code: str) -> None:
        self._log.info("[%s] eval %s", conn.tag, sample(code))

    def load_file_started(self, conn: Connection, path: str) -> None:
        self._log.info("[%s] load-file %s", conn.tag, path)

    def refresh_started(self, conn: Connection, op: RefreshOp) -> None:
        self._log.info("[%s] refresh %s", conn.tag, op.value)

    def result(self, conn: Connection, response: EvalResponse) -> None:
        level = logging.WARNING if response.exception else logging.INFO
        self._log.log(level, "[%s] %s %s", conn.tag, response.tag.value, display_value(response))

    def doc(self, conn: Connection, response: EvalResponse) -> None:
        self._log.info("[%s] doc\n%s", conn.tag, display_value(response))

    def source(self, conn: Connection, response: EvalResponse) -> None:
        self._log.info("[%s] source\n%s", conn.tag, display_value(response))

    def test_output(self, conn: Connection, response: EvalResponse) -> None:
        self._log.info("[%s] test\n%s", conn.tag, display_value(response))

    def quick_doc(self, text: str) -> None:
        self._log.info("quick-doc %s", sample(text))

    def clear_virtual(self) -> None:
        return None

    def definition(self, location: Location) -> None:
        self._log.info("definition %s:%s:%s", location.path, location.line, location.column)

    def definition_fallback(self, name: str) -> None:
        self._log.info("definition for %s not found by any runtime", name)

    def up_summary(self, conns: Sequence[Connection]) -> None:
        tags = ", ".join(conn.tag for conn in conns) or "none"
        self._log.info("Connections: %s", tags)

    def up_done(self, message: str) -> None:
        self._log.info(message)


__all__ = ["LoggingUi", "SAMPLE_LENGTH", "Ui", "display_value", "sample"]
