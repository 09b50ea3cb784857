"""Tests for wrapped and raw round trips."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from preplui.errors import ProtocolError
from preplui.evaluator import Evaluator
from preplui.forms import Map, SetForm, kw
from preplui.manifest import DependencyManifest, ManifestCache
from preplui.models import ChannelPair, Connection, Dialect, EvalRequest, EvalResponse, ResponseTag
from preplui.renderer import CodeRenderer


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _evaluator() -> Evaluator:
    manifest = DependencyManifest(root=Path("."), entries={})
    return Evaluator(CodeRenderer(ManifestCache(lambda: manifest)))


def _connection(dialect: Dialect, *replies: str) -> Connection:
    channels = ChannelPair()
    for reply in replies:
        channels.inbound.put_nowait(reply)
    return Connection(tag="dev", dialect=dialect, host="127.0.0.1", port=5555, channels=channels)


def test_parse_response_shapes() -> None:
    ok = EvalResponse.parse("[:ok {:a 1}]")
    failed = EvalResponse.parse('[:exception "boom"]')

    assert ok.tag is ResponseTag.OK
    assert ok.exception is False
    assert failed.exception is True
    assert failed.value == "boom"
    assert failed.raw == '[:exception "boom"]'


@pytest.mark.parametrize("text", ["3", "[:ok]", "[:maybe 1]", '["ok" 1]', "[:ok 1 2]", "[:ok"])
def test_parse_rejects_other_shapes(text: str) -> None:
    with pytest.raises(ProtocolError):
        EvalResponse.parse(text)


@pytest.mark.anyio
async def test_clojure_wrapped_eval_receives_once() -> None:
    conn = _connection(Dialect.CLOJURE, "[:ok 3]", "[:ok 99]")

    response = await _evaluator().wrapped_eval(EvalRequest(connection=conn, code="(+ 1 2)", namespace="user"))

    assert response.value == 3
    sent = conn.channels.outbound.get_nowait()
    assert '"(+ 1 2)"' in sent
    assert "(ns user)" in sent
    assert conn.channels.inbound.qsize() == 1


@pytest.mark.anyio
async def test_cljs_wrapped_eval_discards_namespace_reply() -> None:
    conn = _connection(Dialect.CLOJURESCRIPT, "[:ok nil]", "[:ok 7]")

    response = await _evaluator().wrapped_eval(EvalRequest(connection=conn, code="(+ 1 2) (+ 3 4)"))

    assert response.value == 7
    assert conn.channels.outbound.get_nowait() == "(in-ns (quote cljs.user))\n(do (+ 1 2) (+ 3 4)\n)\n"
    assert conn.channels.outbound.empty()
    assert conn.channels.inbound.empty()


@pytest.mark.anyio
async def test_raw_eval_sends_code_verbatim() -> None:
    conn = _connection(Dialect.CLOJURESCRIPT, "[:ok nil]")

    response = await _evaluator().raw_eval(conn, '(load-file "x.cljs")')

    assert response.value is None
    assert conn.channels.outbound.get_nowait() == '(load-file "x.cljs")'


@pytest.mark.anyio
async def test_concurrent_round_trips_do_not_interleave() -> None:
    conn = _connection(Dialect.CLOJURESCRIPT)
    evaluator = _evaluator()

    async def _runtime() -> None:
        for value in (1, 2):
            code = await conn.channels.outbound.get()
            await asyncio.sleep(0)
            await conn.channels.inbound.put("[:ok nil]")
            await asyncio.sleep(0)
            await conn.channels.inbound.put(f"[:ok {code.strip().splitlines()[-1]}]")

    server = asyncio.create_task(_runtime())
    first, second = await asyncio.gather(
        evaluator.wrapped_eval(EvalRequest(connection=conn, code=":first")),
        evaluator.wrapped_eval(EvalRequest(connection=conn, code=":second")),
    )
    await server

    assert first.value.name == "first"
    assert second.value.name == "second"


def test_parse_set_of_maps() -> None:
    response = EvalResponse.parse("[:ok #{{:a 1} {:b 2}}]")

    assert response.value == SetForm({Map({kw("a"): 1}), Map({kw("b"): 2})})
