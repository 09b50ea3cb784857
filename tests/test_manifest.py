"""Tests for the dependency manifest and its cache."""

from __future__ import annotations

import threading
from pathlib import Path

from preplui.manifest import MANIFEST_FILE, DependencyManifest, ManifestCache, default_root, path_to_ns
from preplui.models import Dialect


def _deps_dir(tmp_path: Path) -> Path:
    (tmp_path / "preplui_deps" / "extra").mkdir(parents=True)
    (tmp_path / "preplui_deps" / "extra" / "core.clj").write_text("(ns preplui-deps.extra.core)\n")
    (tmp_path / "injection_order.toml").write_text(
        'clj = ["preplui_deps/extra/core.clj"]\ncljs = []\n'
    )
    return tmp_path


def test_path_to_ns() -> None:
    assert path_to_ns("preplui_deps/compliment/v0v3v9/compliment/core.clj") == (
        "preplui-deps.compliment.v0v3v9.compliment.core"
    )
    assert path_to_ns("a/b_c.cljc") == "a.b-c"


def test_load_reads_order_and_sources(tmp_path: Path) -> None:
    manifest = DependencyManifest.load(_deps_dir(tmp_path))

    assert manifest.paths(Dialect.CLOJURE) == ("preplui_deps/extra/core.clj",)
    assert manifest.paths(Dialect.CLOJURESCRIPT) == ()
    assert manifest.namespaces(Dialect.CLOJURE) == ("preplui-deps.extra.core",)
    assert manifest.source("preplui_deps/extra/core.clj") == "(ns preplui-deps.extra.core)\n"


def test_packaged_manifest_is_empty() -> None:
    manifest = DependencyManifest.load()

    assert manifest.paths(Dialect.CLOJURE) == ()
    assert manifest.paths(Dialect.CLOJURESCRIPT) == ()


def test_cache_loads_once() -> None:
    calls: list[int] = []

    def _loader() -> DependencyManifest:
        calls.append(1)
        return DependencyManifest(root=Path("."), entries={})

    cache = ManifestCache(_loader)
    results: list[DependencyManifest] = []
    threads = [threading.Thread(target=lambda: results.append(cache.get())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert all(result is results[0] for result in results)


def test_cache_for_root(tmp_path: Path) -> None:
    cache = ManifestCache.for_root(_deps_dir(tmp_path))

    assert cache.get().namespaces(Dialect.CLOJURE) == ("preplui-deps.extra.core",)


def test_default_root_is_a_real_directory() -> None:
    root = default_root()

    assert root.is_dir()
    assert (root / MANIFEST_FILE).is_file()
    assert DependencyManifest.load().root == root
