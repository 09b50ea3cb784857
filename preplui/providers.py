"""Command palette providers for connection, reload and test actions."""

from __future__ import annotations

from typing import Iterator

from textual.command import DiscoveryHit, Hit, Hits, Provider
from textual.types import IgnoreReturnCallbackType

from .connections import ConnectionRegistry
from .models import RefreshOp


class ConnectionToggleProvider(Provider):
    """Enable or disable open connections from the command palette."""

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for label, tag in self._entries():
            match = matcher.match(label)
            if match > 0:
                yield Hit(
                    score=match,
                    match_display=matcher.highlight(label),
                    command=self._build_callback(tag),
                    help="Toggle whether actions target this connection.",
                )

    async def discover(self) -> Hits:
        for label, tag in self._entries():
            yield DiscoveryHit(
                display=label,
                command=self._build_callback(tag),
                help="Toggle whether actions target this connection.",
            )

    def _entries(self) -> Iterator[tuple[str, str]]:
        registry = getattr(self.app, "connection_registry", None)
        if not isinstance(registry, ConnectionRegistry):
            return
        for conn in registry.connections:
            verb = "Disable" if conn.enabled else "Enable"
            yield f"{verb} connection: {conn.tag}", conn.tag

    def _build_callback(self, tag: str) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            toggler = getattr(self.app, "toggle_connection", None)
            if toggler is None:
                return
            toggler(tag)

        return _run


class RefreshProvider(Provider):
    """Reload namespaces through tools.namespace."""

    _LABELS = {
        RefreshOp.CHANGED: "Refresh changed namespaces",
        RefreshOp.ALL: "Refresh all namespaces",
        RefreshOp.CLEAR: "Clear refresh state",
    }

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for op, label in self._LABELS.items():
            score = matcher.match(label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(label),
                    command=self._build_callback(op),
                    help="Runs on every matching Clojure connection.",
                )

    async def discover(self) -> Hits:
        for op, label in self._LABELS.items():
            yield DiscoveryHit(
                display=label,
                command=self._build_callback(op),
                help="Runs on every matching Clojure connection.",
            )

    def _build_callback(self, op: RefreshOp) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            runner = getattr(self.app, "run_refresh", None)
            if runner is None:
                return
            runner(op)

        return _run


class TestRunProvider(Provider):
    """Run the current namespace's tests or every loaded test."""

    _CURRENT = "Run tests for current namespace"
    _ALL = "Run all loaded tests"

    async def search(self, query: str) -> Hits:
        matcher = self.matcher(query)
        for label, run_all in ((self._CURRENT, False), (self._ALL, True)):
            score = matcher.match(label)
            if score > 0:
                yield Hit(
                    score=score,
                    match_display=matcher.highlight(label),
                    command=self._build_callback(run_all),
                )

    async def discover(self) -> Hits:
        yield DiscoveryHit(display=self._CURRENT, command=self._build_callback(False))
        yield DiscoveryHit(display=self._ALL, command=self._build_callback(True))

    def _build_callback(self, run_all: bool) -> IgnoreReturnCallbackType:
        async def _run() -> None:
            orchestrator = getattr(self.app, "orchestrator", None)
            if orchestrator is None:
                return
            if run_all:
                await orchestrator.run_all_tests()
            else:
                await orchestrator.run_tests()

        return _run


__all__ = ["ConnectionToggleProvider", "RefreshProvider", "TestRunProvider"]
