"""Round trips over a connection's channel pair."""

from __future__ import annotations

import logging

from .models import Connection, Dialect, EvalRequest, EvalResponse
from .renderer import CodeRenderer, RenderKind

LOG = logging.getLogger(__name__)


class Evaluator:
    """Sends code to a connection and blocks until its tagged reply arrives.

    Receives never time out: a runtime that stops answering hangs the caller.
    """

    def __init__(self, renderer: CodeRenderer) -> None:
        self._renderer = renderer

    @property
    def renderer(self) -> CodeRenderer:
        return self._renderer

    async def wrapped_eval(self, request: EvalRequest) -> EvalResponse:
        """Evaluate code inside the request's namespace and source context."""

        conn = request.connection
        code = self._renderer.render(
            RenderKind.EVAL,
            dialect=conn.dialect,
            code=request.code,
            ns=request.namespace,
            path=request.source_path,
            line=request.line,
        )
        async with conn.lock:
            await conn.channels.outbound.put(code)
            if conn.dialect is Dialect.CLOJURESCRIPT:
                # The namespace switch is its own form and answers first.
                switched = await self._receive(conn)
                LOG.debug("Discarded namespace switch reply", extra={"conn": conn.tag, "raw": switched.raw})
            return await self._receive(conn)

    async def raw_eval(self, conn: Connection, code: str) -> EvalResponse:
        """Send ``code`` exactly as given and wait for one reply."""

        async with conn.lock:
            await conn.channels.outbound.put(code)
            return await self._receive(conn)

    async def _receive(self, conn: Connection) -> EvalResponse:
        text = await conn.channels.inbound.get()
        response = EvalResponse.parse(text)
        LOG.debug("Received response", extra={"conn": conn.tag, "tag": response.tag.value})
        return response


__all__ = ["Evaluator"]
