"""Exception hierarchy shared across preplui modules."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import EvalResponse


class PrepluiError(RuntimeError):
    """Base error for preplui failures."""


class ConfigError(PrepluiError):
    """Raised when the configuration file does not match the schema."""


class TransportError(PrepluiError):
    """Raised when a transport cannot open or drive a connection."""


class ProtocolError(PrepluiError):
    """Raised when a runtime reply is not a tagged `[:ok v]`/`[:exception v]` pair."""


class ReaderError(PrepluiError, ValueError):
    """Raised when text cannot be read as Clojure data."""


class HookError(PrepluiError):
    """Raised when a runtime hook returns an exception; the action is abandoned."""

    def __init__(self, hook: str, tag: str, response: "EvalResponse") -> None:
        super().__init__(f"Hook {hook} failed on {tag}: {response.raw}")
        self.hook = hook
        self.tag = tag
        self.response = response


class InjectionError(PrepluiError):
    """Raised when loading a runtime support file fails."""


__all__ = [
    "ConfigError",
    "HookError",
    "InjectionError",
    "PrepluiError",
    "ProtocolError",
    "ReaderError",
    "TransportError",
]
