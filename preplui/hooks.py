"""Runs user hooks inside a connection's runtime."""

from __future__ import annotations

import logging
from typing import Any

from .config import AppConfig
from .errors import HookError
from .evaluator import Evaluator
from .models import Connection, EvalRequest, EvalResponse, HookName
from .renderer import RenderKind
from .ui import Ui

LOG = logging.getLogger(__name__)

# Synthetic source path so runtime stack traces name the hook submission.
HOOK_PATH = "preplui-hook.cljc"


class HookPipeline:
    """Wraps values in hook calls and interprets the reply."""

    def __init__(self, evaluator: Evaluator, ui: Ui) -> None:
        self._evaluator = evaluator
        self._ui = ui

    def lookup(self, config: AppConfig, conn: Connection, name: HookName) -> str | None:
        return config.hook(conn.tag, name)

    async def invoke(
        self,
        conn: Connection,
        name: HookName,
        value: Any,
        *,
        config: AppConfig,
        msg: str | None = None,
    ) -> Any:
        """Return ``value`` passed through the configured hook.

        Without a hook the value comes back untouched and nothing is sent.
        An exceptional reply is logged, shown when ``msg`` is set, and raised
        as :class:`HookError` so the caller abandons its action.
        """

        hook = self.lookup(config, conn, name)
        if hook is None:
            return value
        response = await self.call(conn, hook, value)
        if response.exception:
            LOG.error(
                "Hook failed",
                extra={"conn": conn.tag, "hook": name.value, "fn": hook, "raw": response.raw},
            )
            if msg:
                self._ui.result(conn, response)
                self._ui.error(msg)
            raise HookError(name.value, conn.tag, response)
        return response.value

    async def call(self, conn: Connection, hook: str, value: Any) -> EvalResponse:
        """Evaluate ``(hook 'value)`` as a standalone submission."""

        code = self._evaluator.renderer.render(RenderKind.HOOK, hook=hook, value=value)
        return await self._evaluator.wrapped_eval(
            EvalRequest(connection=conn, code=code, source_path=HOOK_PATH)
        )


__all__ = ["HOOK_PATH", "HookPipeline"]
