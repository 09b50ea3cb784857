"""Tests for idempotent dependency injection."""

from __future__ import annotations

from pathlib import Path

import pytest

from preplui.config import ConnectionConfig
from preplui.errors import InjectionError
from preplui.evaluator import Evaluator
from preplui.injector import DependencyInjector
from preplui.manifest import ManifestCache
from preplui.models import Connection, Dialect
from preplui.renderer import SUPPORT_LIBS, CodeRenderer
from preplui.transport import ScriptedTransport


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _Runtime:
    """Tracks which namespaces a fake runtime has loaded."""

    def __init__(self, known: tuple[str, ...], *, fail_on: str | None = None) -> None:
        self.known = known
        self.loaded: set[str] = set()
        self.fail_on = fail_on

    def __call__(self, tag: str, code: str) -> list[str]:
        if code.startswith("(set"):
            return ["[:ok #{" + " ".join(sorted(self.loaded)) + "}]"]
        if self.fail_on and self.fail_on in code:
            return ['[:exception {:cause "load failed"}]']
        self.loaded.update(ns for ns in self.known if ns in code)
        return ["[:ok nil]"]


def _deps_dir(tmp_path: Path) -> Path:
    (tmp_path / "preplui_deps" / "extra").mkdir(parents=True)
    (tmp_path / "preplui_deps" / "extra" / "core.clj").write_text("(ns preplui-deps.extra.core)\n")
    (tmp_path / "injection_order.toml").write_text('clj = ["preplui_deps/extra/core.clj"]\n')
    return tmp_path


async def _setup(
    tmp_path: Path, runtime: _Runtime, dialect: Dialect = Dialect.CLOJURE
) -> tuple[DependencyInjector, Connection, ScriptedTransport]:
    transport = ScriptedTransport(runtime)
    channels = await transport.open(ConnectionConfig(tag="dev", lang=dialect, port=5555))
    conn = Connection(tag="dev", dialect=dialect, host="127.0.0.1", port=5555, channels=channels)
    renderer = CodeRenderer(ManifestCache.for_root(_deps_dir(tmp_path)))
    return DependencyInjector(Evaluator(renderer)), conn, transport


@pytest.mark.anyio
async def test_second_injection_is_empty(tmp_path: Path) -> None:
    runtime = _Runtime(SUPPORT_LIBS[Dialect.CLOJURE] + ("preplui-deps.extra.core",))
    injector, conn, transport = await _setup(tmp_path, runtime)

    try:
        first = await injector.ensure_loaded(conn)
        responses = await injector.inject(conn)
        second = await injector.ensure_loaded(conn)
    finally:
        await transport.close("dev")

    assert len(first) == 2
    assert first[0].startswith("(require")
    assert len(responses) == 2
    assert second == ()
    assert runtime.loaded == set(runtime.known)


@pytest.mark.anyio
async def test_only_missing_entries_are_loaded(tmp_path: Path) -> None:
    runtime = _Runtime(SUPPORT_LIBS[Dialect.CLOJURE] + ("preplui-deps.extra.core",))
    runtime.loaded = {"preplui-deps.extra.core"}
    injector, conn, transport = await _setup(tmp_path, runtime)

    try:
        codes = await injector.ensure_loaded(conn)
    finally:
        await transport.close("dev")

    assert len(codes) == 1
    assert codes[0].startswith("(require")


@pytest.mark.anyio
async def test_inject_raises_on_failed_load(tmp_path: Path) -> None:
    runtime = _Runtime(SUPPORT_LIBS[Dialect.CLOJURE], fail_on="preplui-deps.extra.core")
    injector, conn, transport = await _setup(tmp_path, runtime)

    try:
        with pytest.raises(InjectionError):
            await injector.inject(conn)
    finally:
        await transport.close("dev")


@pytest.mark.anyio
async def test_cljs_injection_requires_support_libs(tmp_path: Path) -> None:
    runtime = _Runtime(SUPPORT_LIBS[Dialect.CLOJURESCRIPT])
    injector, conn, transport = await _setup(tmp_path, runtime, Dialect.CLOJURESCRIPT)

    try:
        await injector.inject(conn)
        again = await injector.ensure_loaded(conn)
    finally:
        await transport.close("dev")

    assert again == ()
    assert transport.submissions["dev"][1].startswith("(require (quote cljs.repl)")
