"""Ordered manifest of runtime-support files injected into connections."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

import tomllib

from .models import Dialect

LOG = logging.getLogger(__name__)

MANIFEST_FILE = "injection_order.toml"


def path_to_ns(path: str) -> str:
    """``preplui_deps/compliment/core.clj`` -> ``preplui-deps.compliment.core``."""

    stem = path.rsplit(".", 1)[0] if "." in path.rsplit("/", 1)[-1] else path
    return stem.replace("/", ".").replace("_", "-")


def default_root() -> Path:
    """The packaged deps directory, next to this module."""

    return Path(__file__).with_name("deps")


@dataclass(frozen=True, slots=True)
class DependencyManifest:
    """Resource paths per dialect; tuple order is load order."""

    root: Path
    entries: Mapping[Dialect, tuple[str, ...]]

    @classmethod
    def load(cls, root: Path | None = None) -> "DependencyManifest":
        base = root if root is not None else default_root()
        raw = tomllib.loads((base / MANIFEST_FILE).read_text(encoding="utf-8"))
        entries = {
            dialect: tuple(str(item) for item in raw.get(dialect.value, ()))
            for dialect in Dialect
        }
        LOG.debug(
            "Loaded dependency manifest",
            extra={"root": str(base), "counts": {d.value: len(e) for d, e in entries.items()}},
        )
        return cls(root=base, entries=entries)

    def paths(self, dialect: Dialect) -> tuple[str, ...]:
        return self.entries.get(dialect, ())

    def namespaces(self, dialect: Dialect) -> tuple[str, ...]:
        return tuple(path_to_ns(path) for path in self.paths(dialect))

    def source(self, path: str) -> str:
        """Source text of a manifest entry."""

        node = self.root
        for part in path.split("/"):
            node = node / part
        return node.read_text(encoding="utf-8")


class ManifestCache:
    """Loads the manifest on first use and hands out the same instance afterwards."""

    def __init__(self, loader: Callable[[], DependencyManifest] | None = None) -> None:
        self._loader = loader or DependencyManifest.load
        self._manifest: DependencyManifest | None = None
        self._lock = threading.Lock()

    @classmethod
    def for_root(cls, root: Path | None) -> "ManifestCache":
        return cls(lambda: DependencyManifest.load(root))

    def get(self) -> DependencyManifest:
        manifest = self._manifest
        if manifest is not None:
            return manifest
        with self._lock:
            if self._manifest is None:
                self._manifest = self._loader()
            return self._manifest


__all__ = ["DependencyManifest", "MANIFEST_FILE", "ManifestCache", "default_root", "path_to_ns"]
