"""Loads runtime-support files that a connection does not have yet."""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import InjectionError
from .evaluator import Evaluator
from .forms import Symbol
from .models import Connection, EvalResponse
from .renderer import RenderKind

LOG = logging.getLogger(__name__)


class DependencyInjector:
    """Computes and runs the minimal load sequence for a connection.

    The runtime is the source of truth for what is loaded, so nothing is
    tracked per connection on this side.
    """

    def __init__(self, evaluator: Evaluator) -> None:
        self._evaluator = evaluator

    async def loaded(self, conn: Connection) -> set[str]:
        """Probed namespaces that are already live in the runtime."""

        renderer = self._evaluator.renderer
        probe = renderer.render(RenderKind.LOADED_DEPS, dialect=conn.dialect)
        response = await self._evaluator.raw_eval(conn, probe)
        if response.exception:
            raise InjectionError(f"Failed to list loaded namespaces for {conn.tag}: {response.raw}")
        return _names(response.value or ())

    async def ensure_loaded(self, conn: Connection) -> tuple[str, ...]:
        """Code to run so every probed namespace is present; empty when nothing is missing."""

        renderer = self._evaluator.renderer
        loaded = await self.loaded(conn)
        if set(renderer.probe_namespaces(conn.dialect)) <= loaded:
            return ()
        return renderer.render(RenderKind.INJECT_DEPS, dialect=conn.dialect, loaded=loaded)

    async def inject(self, conn: Connection) -> list[EvalResponse]:
        """Send the missing load sequence, stopping at the first failure."""

        responses: list[EvalResponse] = []
        for code in await self.ensure_loaded(conn):
            response = await self._evaluator.raw_eval(conn, code)
            if response.exception:
                LOG.error("Dependency injection failed", extra={"conn": conn.tag, "raw": response.raw})
                raise InjectionError(f"Failed to load runtime dependencies into {conn.tag}")
            responses.append(response)
        if responses:
            LOG.info("Injected dependencies", extra={"conn": conn.tag, "count": len(responses)})
        return responses


def _names(values: Iterable[object]) -> set[str]:
    return {value.name if isinstance(value, Symbol) else str(value) for value in values}


__all__ = ["DependencyInjector"]
