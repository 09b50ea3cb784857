"""App configuration loading helpers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import tomllib
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import ConfigError
from .forms import Map, SetForm, kw, sym
from .models import Dialect, HookName

LOG = logging.getLogger(__name__)


def _config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    return Path(xdg) if xdg else Path.home() / ".config"


CONFIG_FILE = _config_home() / "preplui" / "config.toml"

DEFAULT_EXTENSIONS: dict[Dialect, frozenset[str]] = {
    Dialect.CLOJURE: frozenset({"clj", "cljc", "edn"}),
    Dialect.CLOJURESCRIPT: frozenset({"cljs", "cljc", "edn"}),
}


class ConnectionConfig(BaseModel):
    """One `[conns.<tag>]` table from config.toml."""

    tag: str
    lang: Dialect = Dialect.CLOJURE
    host: str = "127.0.0.1"
    port: int | None = None
    extensions: frozenset[str] = frozenset()
    enabled: bool = True
    hooks: dict[HookName, str] = Field(default_factory=dict)
    dirs: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def _default_extensions(self) -> "ConnectionConfig":
        if not self.extensions:
            self.extensions = DEFAULT_EXTENSIONS[self.lang]
        return self

    def as_data(self) -> Map:
        """Connection settings as runtime data, handed to the `connect!` hook."""

        return Map(
            {
                kw("tag"): kw(self.tag),
                kw("lang"): kw(self.lang.value),
                kw("host"): self.host,
                kw("port"): self.port,
                kw("extensions"): SetForm(self.extensions),
                kw("enabled?"): self.enabled,
                kw("hooks"): Map({kw(name.value): sym(hook) for name, hook in self.hooks.items()}),
                kw("dirs"): SetForm(self.dirs),
            }
        )


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    conns: dict[str, ConnectionConfig] = Field(default_factory=dict)
    hooks: dict[HookName, str] = Field(default_factory=dict)
    deps_dir: str | None = None
    log_level: str = "WARNING"

    @model_validator(mode="before")
    @classmethod
    def _tag_connections(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("conns"), dict):
            conns: dict[str, Any] = {}
            for tag, entry in data["conns"].items():
                if isinstance(entry, dict):
                    entry = {"tag": tag, **entry}
                conns[tag] = entry
            data = {**data, "conns": conns}
        return data

    def hook(self, tag: str | None, name: HookName) -> str | None:
        """Hook for ``name``; the connection's own hook overrides the global one."""

        if tag is not None:
            conn = self.conns.get(tag)
            if conn is not None and name in conn.hooks:
                return conn.hooks[name]
        return self.hooks.get(name)

    def with_toggles(self, flags: str | None) -> AppConfig:
        """Apply ``"+tag -tag"`` flags to the enabled state of connections."""

        if not flags or not flags.strip():
            return self
        conns = dict(self.conns)
        for flag in flags.split():
            if flag[0] not in "+-" or len(flag) < 2:
                continue
            tag = flag[1:]
            conn = conns.get(tag)
            if conn is None:
                LOG.warning("Ignoring toggle for unknown connection", extra={"conn": tag})
                continue
            conns[tag] = conn.model_copy(update={"enabled": flag[0] == "+"})
        return self.model_copy(update={"conns": conns})


def load_config(flags: str | None = None, path: Path | None = None) -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing or unreadable."""

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError:
        return AppConfig().with_toggles(flags)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        LOG.warning("Unreadable config, using defaults", extra={"path": str(target), "error": str(exc)})
        return AppConfig().with_toggles(flags)
    try:
        config = AppConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Something's wrong with {target}:\n{exc}") from exc
    return config.with_toggles(flags)


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConnectionConfig",
    "DEFAULT_EXTENSIONS",
    "load_config",
]
