"""Registry of live connections built from configuration."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any

from .config import AppConfig, ConnectionConfig
from .errors import TransportError
from .models import Connection
from .transport import Transport

LOG = logging.getLogger(__name__)


def _identity(config: ConnectionConfig) -> dict[str, Any]:
    return config.model_dump(exclude={"enabled"})


class ConnectionRegistry:
    """Owns the open connections and decides which ones an action targets."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._conns: dict[str, Connection] = {}
        self._configs: dict[str, ConnectionConfig] = {}

    @property
    def connections(self) -> tuple[Connection, ...]:
        """Open connections in configuration order."""

        return tuple(self._conns.values())

    def get(self, tag: str) -> Connection | None:
        return self._conns.get(tag)

    async def sync(self, config: AppConfig) -> tuple[Connection, ...]:
        """Bring the open connections in line with ``config``.

        Connections that were removed, disabled or changed are closed.
        Enabled connections that are not open yet are opened; unreachable
        ones are logged and skipped.
        """

        wanted = {tag: entry for tag, entry in config.conns.items() if entry.enabled}
        for tag in list(self._conns):
            entry = wanted.get(tag)
            if entry is None or _identity(entry) != _identity(self._configs[tag]):
                await self._close(tag)

        conns: dict[str, Connection] = {}
        for tag, entry in wanted.items():
            conn = self._conns.get(tag)
            if conn is None:
                conn = await self._open(entry)
                if conn is None:
                    continue
            conns[tag] = conn
            self._configs[tag] = entry
        self._conns = conns
        return self.connections

    def current_connections(self, path: str | None = None, *, passive: bool = False) -> tuple[Connection, ...]:
        """Enabled connections whose extensions match ``path``.

        Without a path every enabled connection matches.
        """

        extension = PurePath(path).suffix.lstrip(".") if path else None
        matches = tuple(
            conn
            for conn in self._conns.values()
            if conn.enabled and (extension is None or extension in conn.extensions)
        )
        if not matches and not passive:
            LOG.debug("No connection matches", extra={"path": path})
        return matches

    def toggle(self, tag: str, enabled: bool | None = None) -> bool:
        """Flip or set the enabled flag of ``tag``; returns the new state."""

        conn = self._conns.get(tag)
        if conn is None:
            raise KeyError(tag)
        conn.enabled = (not conn.enabled) if enabled is None else enabled
        LOG.info("Toggled connection", extra={"conn": tag, "enabled": conn.enabled})
        return conn.enabled

    async def close(self) -> None:
        """Close every open connection."""

        for tag in list(self._conns):
            await self._close(tag)
        self._conns = {}

    async def _open(self, entry: ConnectionConfig) -> Connection | None:
        try:
            channels = await self._transport.open(entry)
        except TransportError as exc:
            LOG.warning("Skipping unreachable connection", extra={"conn": entry.tag, "error": str(exc)})
            return None
        return Connection(
            tag=entry.tag,
            dialect=entry.lang,
            host=entry.host,
            port=entry.port,
            channels=channels,
            extensions=entry.extensions,
            enabled=entry.enabled,
            hooks=dict(entry.hooks),
        )

    async def _close(self, tag: str) -> None:
        self._conns.pop(tag, None)
        self._configs.pop(tag, None)
        await self._transport.close(tag)


__all__ = ["ConnectionRegistry"]
