"""Textual application entry point for preplui."""

from __future__ import annotations

import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Awaitable, Callable, Sequence

from textual.app import App, ComposeResult
from textual.widgets import Footer, Header, Input, RichLog

from .config import AppConfig, load_config
from .connections import ConnectionRegistry
from .errors import ConfigError
from .evaluator import Evaluator
from .forms import sym
from .manifest import ManifestCache
from .models import Connection, EditorContext, EvalResponse, Location, RefreshOp
from .orchestrator import Orchestrator, completion_context
from .providers import ConnectionToggleProvider, RefreshProvider, TestRunProvider
from .renderer import CodeRenderer
from .transport import SocketTransport, Transport
from .ui import display_value, sample
from .widgets import StatusBar

LOG = logging.getLogger(__name__)


def _state_home() -> Path:
    xdg = os.environ.get("XDG_STATE_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "state"


LOG_FILE = _state_home() / "preplui" / "preplui.log"


def _load_app_config(flags: str | None = None) -> AppConfig:
    """Load configuration with a small wrapper for future overrides."""

    return load_config(flags)


class PreplApp(App[None]):
    """Results log plus a code input wired to every configured runtime.

    Input starting with ``,`` runs a command (``,doc``, ``,source``, ``,def``,
    ``,load``, ``,test``, ``,test-all``, ``,refresh``, ``,ns``, ``,file``,
    ``,up``, ``,complete``); anything else is evaluated.
    """

    COMMANDS = App.COMMANDS | {ConnectionToggleProvider, RefreshProvider, TestRunProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #results {
        height: 1fr;
        padding: 0 1;
        border-bottom: solid $surface-darken-1;
    }
    #code {
        margin: 0 1;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+u", "up", "Reconnect"),
        ("ctrl+r", "refresh", "Refresh Changed"),
        ("ctrl+t", "run_tests", "Run Tests"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        flags: str | None = None,
        transport: Transport | None = None,
    ) -> None:
        super().__init__()
        self._toggle_flags = flags
        self._pending_notifications: list[tuple[str, str]] = []
        try:
            self._config = config or _load_app_config(flags)
        except ConfigError as exc:
            LOG.error("Failed to load config", extra={"error": str(exc)})
            self._config = AppConfig()
            self._safe_notify(str(exc), severity="error")
        self._editor_context = EditorContext(cwd=os.getcwd())
        self._results: RichLog | None = None
        self._status_bar: StatusBar | None = None
        self._conn_registry = ConnectionRegistry(transport or SocketTransport())
        renderer = CodeRenderer(ManifestCache.for_root(self._deps_root()))
        self._orchestrator = Orchestrator(
            self._conn_registry,
            self,
            evaluator=Evaluator(renderer),
            config=self._config,
            context=lambda: self._editor_context,
            config_loader=_load_app_config,
        )
        self._input_commands: dict[str, Callable[[str], Awaitable[None] | None]] = {
            "doc": self._command_doc,
            "source": self._command_source,
            "def": self._command_definition,
            "load": self._command_load,
            "test": self._command_test,
            "test-all": self._command_test_all,
            "refresh": self._command_refresh,
            "ns": self._command_ns,
            "file": self._command_file,
            "up": self._command_up,
            "complete": self._command_complete,
        }

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        self._results = RichLog(id="results", wrap=True, markup=False)
        yield self._results
        yield Input(placeholder="Clojure code, or ,doc / ,test / ,up …", id="code")
        self._status_bar = StatusBar()
        yield self._status_bar
        yield Footer()

    async def on_mount(self) -> None:
        self._flush_pending_notifications()
        self.run_worker(self._orchestrator.up(self._toggle_flags), exclusive=False)

    async def on_unmount(self) -> None:
        await self._conn_registry.close()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        event.input.value = ""
        if not text:
            return
        if text.startswith(","):
            await self.dispatch_command(text[1:])
            return
        self._orchestrator.evaluate(text)

    async def dispatch_command(self, line: str) -> None:
        """Dispatch a ``,command args`` line typed into the code input."""

        name, _, args = line.strip().partition(" ")
        handler = self._input_commands.get(name)
        if handler is None:
            self.error(f"Unknown command: {name}")
            return
        try:
            result = handler(args.strip())
            if result is not None:
                await result
        except ValueError as exc:
            LOG.warning("Rejected command arguments", extra={"command": name, "error": str(exc)})
            self.error(f"Invalid arguments for ,{name}: {exc}")

    def action_up(self) -> None:
        self.run_worker(self._orchestrator.up(self._toggle_flags), exclusive=False)

    def action_refresh(self) -> None:
        self.run_refresh(RefreshOp.CHANGED)

    def action_run_tests(self) -> None:
        self.run_worker(self._orchestrator.run_tests(), exclusive=False)

    @property
    def orchestrator(self) -> Orchestrator:
        """Expose the orchestrator for tests and command providers."""

        return self._orchestrator

    @property
    def connection_registry(self) -> ConnectionRegistry:
        return self._conn_registry

    @property
    def editor_context(self) -> EditorContext:
        return self._editor_context

    def set_context(self, *, path: str | None = None, ns: str | None = None) -> EditorContext:
        """Point actions at another file or namespace."""

        self._editor_context = EditorContext(
            path=path if path is not None else self._editor_context.path,
            ns=ns if ns is not None else self._editor_context.ns,
            cwd=self._editor_context.cwd,
        )
        return self._editor_context

    def toggle_connection(self, tag: str) -> None:
        enabled = self._orchestrator.toggle(tag)
        if enabled is None:
            return
        state = "enabled" if enabled else "disabled"
        self._safe_notify(f"{tag} {state}.", severity="information")
        self._refresh_status()

    def run_refresh(self, op: RefreshOp) -> None:
        self.run_worker(self._orchestrator.refresh(op), exclusive=False)

    # Ui protocol

    def error(self, message: str) -> None:
        self._append(f"error: {message}")
        self._safe_notify(message, severity="error")

    def eval_started(self, conn: Connection, code: str) -> None:
        self._append(f"[{conn.tag}] eval {sample(code)}")

    def load_file_started(self, conn: Connection, path: str) -> None:
        self._append(f"[{conn.tag}] load-file {path}")

    def refresh_started(self, conn: Connection, op: RefreshOp) -> None:
        self._append(f"[{conn.tag}] refresh {op.value}")

    def result(self, conn: Connection, response: EvalResponse) -> None:
        marker = "!!" if response.exception else "=>"
        self._append(f"[{conn.tag}] {marker} {display_value(response)}")

    def doc(self, conn: Connection, response: EvalResponse) -> None:
        self._append(f"[{conn.tag}] doc\n{display_value(response)}")

    def source(self, conn: Connection, response: EvalResponse) -> None:
        self._append(f"[{conn.tag}] source\n{display_value(response)}")

    def test_output(self, conn: Connection, response: EvalResponse) -> None:
        self._append(f"[{conn.tag}] test\n{display_value(response)}")

    def quick_doc(self, text: str) -> None:
        self.sub_title = sample(text) or ""

    def clear_virtual(self) -> None:
        self.sub_title = ""

    def definition(self, location: Location) -> None:
        self._append(f"{location.path}:{location.line}:{location.column + 1}")

    def definition_fallback(self, name: str) -> None:
        self._append(f"No definition found for {name}")

    def up_summary(self, conns: Sequence[Connection]) -> None:
        tags = ", ".join(conn.tag for conn in conns) or "none"
        self._append(f"Connected: {tags}")
        self._refresh_status()

    def up_done(self, message: str) -> None:
        self._append(message)
        self._refresh_status()

    # Commands

    async def _command_doc(self, args: str) -> None:
        await self._orchestrator.doc(args)

    async def _command_source(self, args: str) -> None:
        await self._orchestrator.source(args)

    async def _command_definition(self, args: str) -> None:
        await self._orchestrator.definition(args)

    async def _command_load(self, args: str) -> None:
        await self._orchestrator.load_file(args or None)

    async def _command_test(self, args: str) -> None:
        await self._orchestrator.run_tests(shlex.split(args))

    async def _command_test_all(self, args: str) -> None:
        await self._orchestrator.run_all_tests(args or None)

    def _command_refresh(self, args: str) -> None:
        try:
            op = RefreshOp(args or RefreshOp.CHANGED.value)
        except ValueError:
            self.error(f"Unknown refresh mode: {args}")
            return
        self.run_refresh(op)

    def _command_ns(self, args: str) -> None:
        self.set_context(ns=sym(args).name)
        self._append(f"ns {args}")

    def _command_file(self, args: str) -> None:
        self.set_context(path=args)
        self._append(f"file {args}")

    async def _command_complete(self, args: str) -> None:
        prefix, _, form = args.partition(" ")
        if not prefix:
            self.error("Usage: ,complete <prefix> [enclosing form]")
            return
        context = None
        if prefix in form:
            end = form.rindex(prefix) + len(prefix)
            row = form.count("\n", 0, end) + 1
            col = end - (form.rfind("\n", 0, end) + 1)
            context = completion_context(form, row, col, prefix)
        found = await self._orchestrator.completions(prefix, context)
        words = " ".join(completion.word for completion in found)
        self._append(words or f"No completions for {prefix}")

    async def _command_up(self, args: str) -> None:
        self._toggle_flags = args or self._toggle_flags
        await self._orchestrator.up(self._toggle_flags)

    # Plumbing

    def _deps_root(self) -> Path | None:
        return Path(self._config.deps_dir).expanduser() if self._config.deps_dir else None

    def _append(self, text: str) -> None:
        if self._results is None:
            LOG.info(text)
            return
        self._results.write(text)

    def _refresh_status(self) -> None:
        if self._status_bar is not None:
            self._status_bar.show(self._conn_registry.connections, self._editor_context)

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"notification": message})


def configure_logging(level: str, path: Path | None = None) -> Path:
    """Send log records to the state-directory log file."""

    target = path or LOG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=target,
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return target


def main(argv: Sequence[str] | None = None) -> None:
    """Invoke the Textual application.

    Arguments are connection toggles such as ``+dev -web``.
    """

    args = sys.argv[1:] if argv is None else list(argv)
    flags = " ".join(args) or None
    try:
        config = _load_app_config(flags)
    except ConfigError as exc:
        print(exc, file=sys.stderr)
        raise SystemExit(1) from exc
    configure_logging(config.log_level)
    PreplApp(config, flags=flags).run()


if __name__ == "__main__":
    main()
