"""User-facing actions fanned out over the matching connections.

Each action walks the connections one after another. Concurrency only
exists across actions: :meth:`Orchestrator.evaluate` schedules its own task
so a slow runtime never blocks the next submission.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from itertools import groupby
from pathlib import Path
from typing import Any, Callable, Iterable

from .config import AppConfig, load_config
from .connections import ConnectionRegistry
from .errors import ConfigError, HookError, InjectionError, ReaderError
from .evaluator import Evaluator
from .forms import Keyword, SList, Symbol, Vector, kw, pr_str
from .hooks import HookPipeline
from .injector import DependencyInjector
from .models import (
    Completion,
    Connection,
    Dialect,
    EditorContext,
    EvalRequest,
    EvalResponse,
    HookName,
    Location,
    RefreshOp,
)
from .reader import read_string
from .renderer import DEFAULT_NS, RenderKind
from .ui import Ui

LOG = logging.getLogger(__name__)

PREFIX_PLACEHOLDER = "__prefix__"


def paired_test_ns(ns: str) -> str:
    """``app.core`` <-> ``app.core-test``."""

    if ns.endswith("-test"):
        return ns[: -len("-test")]
    return f"{ns}-test"


def completion_context(form: str, row: int, col: int, prefix: str) -> str:
    """Replace the prefix ending at ``row``/``col`` (1-based row) with a placeholder.

    The result is handed to the completion library so it can offer local
    bindings of the surrounding form.
    """

    lines = form.split("\n")
    index = row - 1
    if 0 <= index < len(lines):
        line = lines[index]
        start = max(col - len(prefix), 0)
        lines[index] = line[:start] + PREFIX_PLACEHOLDER + line[col:]
    return "\n".join(lines)


def resolve_relative(path: str, cwd: str) -> str:
    """``path`` under ``cwd`` when that file exists, otherwise unchanged."""

    candidate = Path(cwd) / path
    if not Path(path).is_absolute() and candidate.exists():
        return str(candidate)
    return path


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _text(value: Any) -> str:
    if isinstance(value, Keyword):
        return value.name
    return value if isinstance(value, str) else pr_str(value)


def completion_from(candidate: Any) -> Completion:
    """Map one compliment candidate map onto a :class:`Completion`."""

    get = candidate.get
    word = _text(get(kw("candidate"), ""))
    kind = get(kw("type"))
    ns = get(kw("ns"))
    arglists = get(kw("arglists"))
    menu = None
    if arglists:
        args = arglists if isinstance(arglists, str) else " ".join(_text(arg) for arg in arglists)
        menu = f"{_text(ns) if ns is not None else ''} ({args})"
    elif ns is not None:
        menu = _text(ns)
    elif get(kw("package")) is not None:
        menu = _text(get(kw("package")))
    doc = get(kw("doc"))
    return Completion(
        word=word,
        kind=_text(kind)[:1] if kind is not None else "",
        menu=menu,
        info=_text(doc) if doc is not None else None,
    )


class Orchestrator:
    """Runs editor actions against every matching connection."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        ui: Ui,
        *,
        evaluator: Evaluator,
        config: AppConfig | None = None,
        context: Callable[[], EditorContext] = EditorContext,
        config_loader: Callable[[str | None], AppConfig] = load_config,
    ) -> None:
        self._registry = registry
        self._ui = ui
        self._evaluator = evaluator
        self._renderer = evaluator.renderer
        self._hooks = HookPipeline(evaluator, ui)
        self._injector = DependencyInjector(evaluator)
        self._config = config or AppConfig()
        self._context = context
        self._config_loader = config_loader
        self._tasks: set[asyncio.Task[list[EvalResponse]]] = set()

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def pending(self) -> tuple[asyncio.Task[list[EvalResponse]], ...]:
        """Evaluations that have been scheduled but not finished."""

        return tuple(self._tasks)

    # Evaluation

    def evaluate(self, code: str | None, *, line: int | None = None) -> asyncio.Task[list[EvalResponse]] | None:
        """Schedule :meth:`eval_code` and return its task; nothing happens for empty code."""

        if not code:
            return None
        task = asyncio.create_task(self.eval_code(code, line=line))
        self._tasks.add(task)
        task.add_done_callback(self._evaluation_done)
        return task

    async def eval_code(self, code: str, *, line: int | None = None) -> list[EvalResponse]:
        """Evaluate ``code`` on each matching connection and report every result."""

        ctx = self._context()
        responses: list[EvalResponse] = []
        for conn in self._current_connections(ctx):
            try:
                hooked = await self._hooks.invoke(
                    conn,
                    HookName.EVAL,
                    code,
                    config=self._config,
                    msg=f"Failed to execute the :eval hook for {conn.tag}.",
                )
            except HookError:
                continue
            request = EvalRequest(
                connection=conn,
                code=hooked if isinstance(hooked, str) else pr_str(hooked),
                namespace=ctx.ns,
                source_path=ctx.path,
                line=line,
            )
            self._ui.eval_started(conn, request.code)
            response = await self._evaluator.wrapped_eval(request)
            self._ui.result(conn, response)
            responses.append(response)
            if not response.exception:
                await self._result_hook(request, response)
        return responses

    async def load_file(self, path: str | None = None) -> None:
        ctx = self._context()
        path = path or ctx.path
        if not path:
            self._ui.error("No file to load.")
            return
        code = self._renderer.render(RenderKind.LOAD_FILE, path=path)
        for conn in self._current_connections(ctx):
            self._ui.load_file_started(conn, path)
            self._ui.result(conn, await self._evaluator.raw_eval(conn, code))

    # Lookups

    async def doc(self, name: str) -> None:
        ctx = self._context()
        for conn in self._current_connections(ctx):
            response = self._not_exception(
                conn,
                await self._wrapped(conn, ctx, RenderKind.DOC, name=name),
                f"Failed to lookup documentation for {name}",
            )
            if response is None:
                continue
            if _blank(response.value):
                response = replace(response, value=f"No doc for {name}")
            self._ui.doc(conn, response)

    async def source(self, name: str) -> None:
        ctx = self._context()
        for conn in self._current_connections(ctx):
            response = self._not_exception(
                conn,
                await self._wrapped(conn, ctx, RenderKind.SOURCE, name=name),
                f"Failed to lookup source for {name}",
            )
            if response is None:
                continue
            if _blank(response.value):
                response = replace(response, value=f"No source for {name}")
            self._ui.source(conn, response)

    async def quick_doc(self, form: str | None) -> str | None:
        """Show the doc of the function called by ``form`` or clear the hint."""

        name = self._called_name(form)
        if name is not None:
            ctx = self._context()
            for conn in self._current_connections(ctx, passive=True):
                response = self._not_exception(
                    conn, await self._wrapped(conn, ctx, RenderKind.DOC, name=name)
                )
                if response is not None and not _blank(response.value):
                    text = _text(response.value)
                    self._ui.quick_doc(text)
                    return text
        self._ui.clear_virtual()
        return None

    async def completions(self, prefix: str, context: str | None = None) -> list[Completion]:
        """Candidates from every matching connection, consecutive duplicates dropped."""

        ctx = self._context()
        found: list[Completion] = []
        for conn in self._current_connections(ctx, passive=True):
            LOG.debug("Finding completions", extra={"conn": conn.tag, "prefix": prefix, "path": ctx.path})
            response = self._not_exception(
                conn,
                await self._wrapped(
                    conn, ctx, RenderKind.COMPLETIONS, prefix=prefix, ns=ctx.ns, context=context
                ),
            )
            if response is None or not response.value:
                continue
            found.extend(completion_from(candidate) for candidate in response.value)
        return [completion for completion, _ in groupby(found)]

    async def definition(self, name: str) -> Location | None:
        """Jump to where ``name`` is defined, or defer to the editor's own lookup."""

        ctx = self._context()
        coord: Any = None
        for conn in self._current_connections(ctx):
            response = self._not_exception(
                conn,
                await self._wrapped(conn, ctx, RenderKind.DEFINITION, name=name),
                f"Failed to look up definition for {name}",
            )
            if response is not None and response.value is not None:
                coord = response.value
                break
        if isinstance(coord, Vector) and len(coord) == 3:
            path, line, column = coord
            location = Location(resolve_relative(str(path), ctx.cwd), int(line or 1), int(column or 0))
            self._ui.definition(location)
            return location
        LOG.warning("Non-vector definition result", extra={"symbol": name, "result": repr(coord)})
        self._ui.definition_fallback(name)
        return None

    # Tests and reloading

    async def run_tests(self, targets: Iterable[str] = ()) -> None:
        """Run the given namespaces' tests, or the current namespace and its pair."""

        ctx = self._context()
        requested = set(targets)
        for conn in self._current_connections(ctx):
            chosen = requested or self._default_test_targets(conn, ctx)
            response = self._not_exception(
                conn,
                await self._wrapped(conn, ctx, RenderKind.RUN_TESTS, targets=chosen),
                f"Failed to run tests for {' '.join(sorted(chosen))}",
            )
            if response is not None:
                self._ui.test_output(conn, response)

    async def run_all_tests(self, pattern: str | None = None) -> None:
        ctx = self._context()
        for conn in self._current_connections(ctx):
            response = self._not_exception(
                conn,
                await self._wrapped(conn, ctx, RenderKind.RUN_ALL_TESTS, pattern=pattern),
                f"Failed to run tests for {pattern or 'all namespaces'}",
            )
            if response is not None:
                self._ui.test_output(conn, response)

    async def refresh(self, op: RefreshOp) -> None:
        ctx = self._context()
        for conn in self._current_connections(ctx):
            hook = self._config.hook(conn.tag, HookName.REFRESH)
            code = self._renderer.render(RenderKind.REFRESH, dialect=conn.dialect, op=op, hook=hook)
            if code is None:
                continue
            self._ui.refresh_started(conn, op)
            self._ui.result(conn, await self._send(conn, ctx, code))

    # Connections

    async def up(self, flags: str | None = None) -> tuple[Connection, ...]:
        """Reload config, reconnect, inject support code and run ``connect!`` hooks."""

        try:
            config = self._config_loader(flags)
        except ConfigError as exc:
            LOG.error("Failed to load config", extra={"error": str(exc)})
            self._ui.error(str(exc))
            return ()
        self._config = config
        conns = await self._registry.sync(config)
        self._ui.up_summary(conns)
        for conn in conns:
            try:
                await self._injector.inject(conn)
            except InjectionError as exc:
                self._ui.error(str(exc))
                continue
            entry = config.conns.get(conn.tag)
            try:
                await self._hooks.invoke(
                    conn,
                    HookName.CONNECT,
                    entry.as_data() if entry else None,
                    config=config,
                    msg=f"Failed to execute the :connect! hook for {conn.tag}.",
                )
            except HookError:
                continue
        self._ui.up_done("Done.")
        return conns

    def toggle(self, tag: str, enabled: bool | None = None) -> bool | None:
        try:
            return self._registry.toggle(tag, enabled)
        except KeyError:
            self._ui.error(f"Unknown connection: {tag}")
            return None

    # Helpers

    def _current_connections(self, ctx: EditorContext, *, passive: bool = False) -> tuple[Connection, ...]:
        conns = self._registry.current_connections(ctx.path, passive=passive)
        if not conns and not passive:
            self._ui.error(f"No matching connections for {ctx.path}")
        return conns

    def _not_exception(
        self, conn: Connection, response: EvalResponse, msg: str | None = None
    ) -> EvalResponse | None:
        """``response`` unless it is exceptional; failures with a message reach the UI."""

        if not response.exception:
            return response
        LOG.error("Exception from runtime", extra={"conn": conn.tag, "action": msg, "raw": response.raw})
        if msg:
            self._ui.result(conn, response)
            self._ui.error(msg)
        return None

    async def _wrapped(self, conn: Connection, ctx: EditorContext, kind: RenderKind, **params: Any) -> EvalResponse:
        code = self._renderer.render(kind, dialect=conn.dialect, **params)
        return await self._send(conn, ctx, code)

    async def _send(self, conn: Connection, ctx: EditorContext, code: str) -> EvalResponse:
        request = EvalRequest(connection=conn, code=code, namespace=ctx.ns, source_path=ctx.path)
        return await self._evaluator.wrapped_eval(request)

    async def _result_hook(self, request: EvalRequest, response: EvalResponse) -> None:
        conn = request.connection
        hook = self._config.hook(conn.tag, HookName.RESULT)
        if hook is None:
            return
        value = f"{{:code '{request.code}\n :result {pr_str(response.value)}\n}}"
        code = self._renderer.render(RenderKind.HOOK_STR, hook=hook, value=value)
        reply = await self._evaluator.wrapped_eval(replace(request, code=code))
        if reply.exception:
            LOG.debug("Result hook failed", extra={"conn": conn.tag, "raw": reply.raw})

    def _default_test_targets(self, conn: Connection, ctx: EditorContext) -> set[str]:
        ns = ctx.ns or DEFAULT_NS[conn.dialect]
        if conn.dialect is Dialect.CLOJURE:
            return {ns, paired_test_ns(ns)}
        return {ns}

    @staticmethod
    def _called_name(form: str | None) -> str | None:
        if not form:
            return None
        try:
            data = read_string(form)
        except ReaderError:
            return None
        if isinstance(data, SList) and data and isinstance(data[0], Symbol):
            return data[0].name
        return None

    def _evaluation_done(self, task: asyncio.Task[list[EvalResponse]]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOG.error("Evaluation failed", exc_info=exc)
            self._ui.error(f"Evaluation failed: {exc}")


__all__ = [
    "Orchestrator",
    "PREFIX_PLACEHOLDER",
    "completion_context",
    "completion_from",
    "paired_test_ns",
    "resolve_relative",
]
