"""Tests for the connection registry."""

from __future__ import annotations

import pytest

from preplui.config import AppConfig, ConnectionConfig
from preplui.connections import ConnectionRegistry
from preplui.errors import TransportError
from preplui.models import ChannelPair, Dialect
from preplui.transport import ScriptedTransport


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _FlakyTransport:
    """Fails to open the configured tags, records everything else."""

    def __init__(self, unreachable: set[str]) -> None:
        self.unreachable = unreachable
        self.opened: list[str] = []
        self.closed: list[str] = []

    async def open(self, config: ConnectionConfig) -> ChannelPair:
        if config.tag in self.unreachable:
            raise TransportError(f"refused: {config.tag}")
        self.opened.append(config.tag)
        return ChannelPair()

    async def close(self, tag: str) -> None:
        self.closed.append(tag)


def _config(**conns: dict) -> AppConfig:  # type: ignore[type-arg]
    return AppConfig.model_validate({"conns": conns})


@pytest.mark.anyio
async def test_sync_opens_enabled_connections_in_order() -> None:
    transport = _FlakyTransport(set())
    registry = ConnectionRegistry(transport)

    conns = await registry.sync(
        _config(
            dev={"port": 1},
            web={"port": 2, "lang": "cljs"},
            off={"port": 3, "enabled": False},
        )
    )

    assert [conn.tag for conn in conns] == ["dev", "web"]
    assert conns[1].dialect is Dialect.CLOJURESCRIPT
    assert transport.opened == ["dev", "web"]


@pytest.mark.anyio
async def test_sync_skips_unreachable_connections() -> None:
    transport = _FlakyTransport({"web"})
    registry = ConnectionRegistry(transport)

    conns = await registry.sync(_config(dev={"port": 1}, web={"port": 2}))

    assert [conn.tag for conn in conns] == ["dev"]


@pytest.mark.anyio
async def test_sync_keeps_unchanged_and_reopens_changed() -> None:
    transport = _FlakyTransport(set())
    registry = ConnectionRegistry(transport)
    await registry.sync(_config(dev={"port": 1}, web={"port": 2}, old={"port": 3}))
    dev = registry.get("dev")

    conns = await registry.sync(_config(dev={"port": 1}, web={"port": 20}))

    assert registry.get("dev") is dev
    assert [conn.tag for conn in conns] == ["dev", "web"]
    assert registry.get("web").port == 20  # type: ignore[union-attr]
    assert sorted(transport.closed) == ["old", "web"]
    assert transport.opened == ["dev", "web", "old", "web"]


@pytest.mark.anyio
async def test_current_connections_filters_by_extension_and_enabled() -> None:
    registry = ConnectionRegistry(_FlakyTransport(set()))
    await registry.sync(_config(dev={"port": 1}, web={"port": 2, "lang": "cljs"}))

    def tags(path: str | None) -> list[str]:
        return [conn.tag for conn in registry.current_connections(path)]

    assert tags("src/app/core.clj") == ["dev"]
    assert tags("src/app/view.cljs") == ["web"]
    assert tags("src/app/shared.cljc") == ["dev", "web"]
    assert tags("notes.md") == []
    assert tags(None) == ["dev", "web"]

    registry.toggle("dev", False)

    assert tags("src/app/shared.cljc") == ["web"]
    assert registry.current_connections("x.md", passive=True) == ()


@pytest.mark.anyio
async def test_toggle_flips_and_rejects_unknown() -> None:
    registry = ConnectionRegistry(_FlakyTransport(set()))
    await registry.sync(_config(dev={"port": 1}))

    assert registry.toggle("dev") is False
    assert registry.toggle("dev") is True
    assert registry.toggle("dev", True) is True
    with pytest.raises(KeyError):
        registry.toggle("missing")


@pytest.mark.anyio
async def test_close_shuts_every_connection() -> None:
    transport = ScriptedTransport(lambda tag, code: ["[:ok nil]"])
    registry = ConnectionRegistry(transport)
    await registry.sync(_config(dev={"port": 1}, web={"port": 2}))

    await registry.close()

    assert registry.connections == ()
    assert transport.opened == ["dev", "web"]
