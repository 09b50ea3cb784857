"""Status bar widget listing connections and the editor context."""

from __future__ import annotations

from typing import Sequence

from textual.widgets import Static

from preplui.models import Connection, EditorContext


def describe(conns: Sequence[Connection], context: EditorContext | None = None) -> str:
    """One-line summary, disabled connections marked with a leading ``-``."""

    if conns:
        listed = " ".join(
            f"{'' if conn.enabled else '-'}{conn.tag}({conn.dialect.value} {conn.host}:{conn.port})"
            for conn in conns
        )
    else:
        listed = "none"
    parts = [f"Connections: {listed}"]
    if context is not None:
        parts.append(f"ns: {context.ns or '—'}")
        if context.path:
            parts.append(f"file: {context.path}")
    return " | ".join(parts)


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self) -> None:
        super().__init__(describe(()), id="status-bar")

    def show(self, conns: Sequence[Connection], context: EditorContext | None = None) -> None:
        self.update(describe(conns, context))


__all__ = ["StatusBar", "describe"]
