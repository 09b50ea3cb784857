"""App-level tests for command dispatch, providers and the status bar."""

from __future__ import annotations

import logging

import pytest

from preplui import providers
from preplui.app import PreplApp
from preplui.config import AppConfig
from preplui.models import ChannelPair, Completion, Connection, Dialect, EditorContext
from preplui.transport import ScriptedTransport
from preplui.widgets.status_bar import describe


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


CONFIG = AppConfig.model_validate({"conns": {"dev": {"port": 5555}, "web": {"port": 6776, "lang": "cljs"}}})


def _app(config: AppConfig = CONFIG) -> PreplApp:
    return PreplApp(config, transport=ScriptedTransport(lambda tag, code: ["[:ok nil]"]))


class _DummyScreen:
    """Minimal stub so providers can reference an app without a running screen stack."""

    def __init__(self, app: PreplApp) -> None:
        self.app = app
        self.focused = None


@pytest.mark.anyio
async def test_errors_are_queued_until_mount() -> None:
    app = _app()

    app.error("boom")

    assert app._pending_notifications == [("boom", "error")]  # type: ignore[attr-defined]


@pytest.mark.anyio
async def test_ns_and_file_commands_update_context() -> None:
    app = _app()

    await app.dispatch_command("ns app.core")
    await app.dispatch_command("file src/app/core.clj")

    assert app.editor_context.ns == "app.core"
    assert app.editor_context.path == "src/app/core.clj"


@pytest.mark.anyio
async def test_unknown_commands_report_errors() -> None:
    app = _app()

    await app.dispatch_command("nope")
    await app.dispatch_command("refresh sideways")

    messages = [message for message, _ in app._pending_notifications]  # type: ignore[attr-defined]
    assert messages == ["Unknown command: nope", "Unknown refresh mode: sideways"]


@pytest.mark.anyio
async def test_toggle_provider_disables_connection() -> None:
    app = _app()
    await app.connection_registry.sync(CONFIG)

    try:
        provider = providers.ConnectionToggleProvider(_DummyScreen(app))  # type: ignore[arg-type]
        hits = [hit async for hit in provider.discover()]
        assert [hit.display for hit in hits] == ["Disable connection: dev", "Disable connection: web"]
        await hits[0].command()
    finally:
        await app.connection_registry.close()

    dev = next(msg for msg, _ in app._pending_notifications)  # type: ignore[attr-defined]
    assert dev == "dev disabled."


@pytest.mark.anyio
async def test_test_provider_runs_orchestrator() -> None:
    app = _app()
    calls: list[str] = []

    async def _run_tests() -> None:
        calls.append("ns")

    async def _run_all_tests() -> None:
        calls.append("all")

    app.orchestrator.run_tests = _run_tests  # type: ignore[method-assign]
    app.orchestrator.run_all_tests = _run_all_tests  # type: ignore[method-assign]

    provider = providers.TestRunProvider(_DummyScreen(app))  # type: ignore[arg-type]
    hits = [hit async for hit in provider.discover()]
    for hit in hits:
        await hit.command()

    assert calls == ["ns", "all"]


def test_status_line_lists_connections() -> None:
    dev = Connection(tag="dev", dialect=Dialect.CLOJURE, host="127.0.0.1", port=5555, channels=ChannelPair())
    web = Connection(
        tag="web",
        dialect=Dialect.CLOJURESCRIPT,
        host="127.0.0.1",
        port=6776,
        channels=ChannelPair(),
        enabled=False,
    )

    line = describe((dev, web), EditorContext(path="src/app/core.clj", ns="app.core"))

    assert line == (
        "Connections: dev(clj 127.0.0.1:5555) -web(cljs 127.0.0.1:6776)"
        " | ns: app.core | file: src/app/core.clj"
    )
    assert describe(()) == "Connections: none"


@pytest.mark.anyio
async def test_invalid_command_arguments_are_reported() -> None:
    app = _app()
    await app.connection_registry.sync(CONFIG)
    before = app.editor_context

    try:
        await app.dispatch_command("doc")
        await app.dispatch_command("ns a b")
        await app.dispatch_command("ns")
    finally:
        await app.connection_registry.close()

    messages = [message for message, _ in app._pending_notifications]  # type: ignore[attr-defined]
    assert len(messages) == 3
    assert messages[0].startswith("Invalid arguments for ,doc: ")
    assert messages[1].startswith("Invalid arguments for ,ns: ")
    assert messages[2].startswith("Invalid arguments for ,ns: ")
    assert app.editor_context == before


@pytest.mark.anyio
async def test_complete_command_marks_prefix_in_form(monkeypatch: pytest.MonkeyPatch) -> None:
    app = _app()
    calls: list[tuple[str, str | None]] = []

    async def _completions(prefix: str, context: str | None = None) -> list[Completion]:
        calls.append((prefix, context))
        return [Completion("foo"), Completion("format")]

    monkeypatch.setattr(app.orchestrator, "completions", _completions)

    await app.dispatch_command("complete fo (let [foo 1] (+ fo))")
    await app.dispatch_command("complete ma")
    await app.dispatch_command("complete")

    assert calls == [("fo", "(let [foo 1] (+ __prefix__))"), ("ma", None)]
    messages = [message for message, _ in app._pending_notifications]  # type: ignore[attr-defined]
    assert messages == ["Usage: ,complete <prefix> [enclosing form]"]


def test_failed_queued_notification_is_logged(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    app = _app()
    app.error("boom")

    def _raise(*args: object, **kwargs: object) -> None:
        raise RuntimeError("no screen")

    monkeypatch.setattr(app, "notify", _raise)

    with caplog.at_level(logging.ERROR, logger="preplui.app"):
        app._flush_pending_notifications()  # type: ignore[attr-defined]

    record = next(record for record in caplog.records if record.name == "preplui.app")
    assert record.getMessage() == "Failed to display queued notification"
    assert record.notification == "boom"
    assert app._pending_notifications == []  # type: ignore[attr-defined]
