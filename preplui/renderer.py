"""Render code for evaluation inside a connected runtime.

Every template builds a :mod:`preplui.forms` tree and prints it at the end,
so user-supplied strings always land in the output as escaped literals and
names always pass symbol validation. The two exceptions are the
ClojureScript eval wrapper and ``hook-str``, which splice text verbatim.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable, Collection, Iterable

from .errors import ReaderError
from .forms import (
    Map,
    Regex,
    SetForm,
    SList,
    Vector,
    kw,
    lst,
    pformat,
    pr_str,
    quote,
    sym,
    vec,
)
from .manifest import ManifestCache
from .models import Dialect, RefreshOp
from .reader import count_forms


class RenderKind(str, Enum):
    """Every template the renderer knows about."""

    EVAL = "eval"
    HOOK = "hook"
    HOOK_STR = "hook-str"
    LOADED_DEPS = "loaded-deps"
    INJECT_DEPS = "inject-deps"
    LOAD_FILE = "load-file"
    COMPLETIONS = "completions"
    DOC = "doc"
    SOURCE = "source"
    DEFINITION = "definition"
    RUN_TESTS = "run-tests"
    RUN_ALL_TESTS = "run-all-tests"
    REFRESH = "refresh"


# Used as-is unless the manifest lists a vendored copy, such as
# preplui-deps.compliment.v0v3v9.compliment.core.
COMPLIMENT_NS = "compliment.core"
TOOLS_NAMESPACE_REPL = "clojure.tools.namespace.repl"

SUPPORT_LIBS: dict[Dialect, tuple[str, ...]] = {
    Dialect.CLOJURE: ("clojure.repl", "clojure.string", "clojure.java.io", "clojure.test"),
    Dialect.CLOJURESCRIPT: ("cljs.repl", "cljs.test", "clojure.string"),
}

DEFAULT_NS: dict[Dialect, str] = {
    Dialect.CLOJURE: "user",
    Dialect.CLOJURESCRIPT: "cljs.user",
}

NO_SOURCE_PATH = "NO_SOURCE_PATH"

# Applied in order to resource URLs of definitions that are not on disk.
RESOURCE_REWRITES: tuple[tuple[str, str], ...] = (
    (r"^(?:jar|zip):", ""),
    (r"^file:", ""),
    (r"\.jar!/", ".jar::"),
)

_REFRESH_FNS = {
    RefreshOp.CLEAR: "clear",
    RefreshOp.CHANGED: "refresh",
    RefreshOp.ALL: "refresh-all",
}


def normalize_resource_path(url: str) -> str:
    """``jar:file:/repo.jar!/ns/core.clj`` -> ``/repo.jar::ns/core.clj``."""

    for pattern, replacement in RESOURCE_REWRITES:
        url = re.sub(pattern, replacement, url)
    return url


def clojure_eval_form(code: str, path: str | None = None, line: int | None = None) -> SList:
    """Compile ``code`` through a line-numbered reader so reader conditionals work."""

    path_args = (path, path.rsplit("/", 1)[-1]) if path and path.strip() else ()
    reader = lst(
        sym("->"),
        lst(sym("java.io.StringReader."), code),
        lst(sym("clojure.lang.LineNumberingPushbackReader.")),
        lst(sym("doto"), lst(sym(".setLineNumber"), line or 1)),
    )
    load = lst(sym("."), sym("clojure.lang.Compiler"), lst(sym("load"), sym("rdr"), *path_args))
    return lst(
        sym("let"),
        vec(sym("rdr"), reader),
        lst(
            sym("binding"),
            vec(sym("*default-data-reader-fn*"), sym("tagged-literal")),
            lst(
                sym("let"),
                vec(sym("res"), load),
                lst(sym("cond->"), sym("res"), lst(sym("seq?"), sym("res")), lst(sym("doall"))),
            ),
        ),
    )


def definition_form(dialect: Dialect, name: str) -> SList:
    """Lookup yielding ``[file line column]`` (0-based column) or nil."""

    name_sym = quote(sym(name))
    ns_lookup = sym("find-ns") if dialect is Dialect.CLOJURE else sym("identity")
    by_var = lst(sym("mapv"), lst(sym("meta"), sym("sym")), vec(kw("file"), kw("line"), kw("column")))
    by_ns = lst(
        sym("when-let"),
        vec(sym("syms"), lst(sym("some->"), name_sym, ns_lookup, lst(sym("ns-interns")))),
        lst(
            sym("when-let"),
            vec(
                sym("file"),
                lst(sym("some->"), sym("syms"), sym("first"), sym("val"), sym("meta"), kw("file")),
            ),
            vec(sym("file"), 1, 1),
        ),
    )
    locate = lst(
        sym("if-let"),
        vec(sym("sym"), lst(sym("and"), lst(sym("not"), lst(sym("find-ns"), name_sym)), lst(sym("resolve"), name_sym))),
        by_var,
        by_ns,
    )
    rewrite: Any = sym("identity")
    if dialect is Dialect.CLOJURE:
        steps = [lst(sym("str"))]
        steps.extend(
            lst(sym("clojure.string/replace"), Regex(pattern), replacement)
            for pattern, replacement in RESOURCE_REWRITES
        )
        rewrite = lst(
            sym("fn"),
            vec(sym("file")),
            lst(
                sym("if"),
                lst(sym(".exists"), lst(sym("clojure.java.io/file"), sym("file"))),
                sym("file"),
                lst(sym("->"), lst(sym("clojure.java.io/resource"), sym("file")), *steps),
            ),
        )
    first_loc = lst(sym("first"), sym("loc"))
    return lst(
        sym("when-let"),
        vec(sym("loc"), locate),
        lst(
            sym("when-not"),
            lst(
                sym("or"),
                lst(sym("clojure.string/blank?"), first_loc),
                lst(sym("="), first_loc, NO_SOURCE_PATH),
            ),
            lst(
                sym("->"),
                sym("loc"),
                lst(sym("update"), 0, rewrite),
                lst(sym("update"), 2, sym("dec")),
            ),
        ),
    )


def _with_out_str(form: Any) -> SList:
    return lst(sym("with-out-str"), form)


def _test_out(form: Any) -> SList:
    return _with_out_str(lst(sym("binding"), vec(sym("clojure.test/*test-out*"), sym("*out*")), form))


class CodeRenderer:
    """Renders each :class:`RenderKind` for a target dialect."""

    def __init__(self, manifest: ManifestCache | None = None, *, width: int = 80) -> None:
        self._manifest = manifest or ManifestCache()
        self._width = width
        self._handlers: dict[RenderKind, Callable[..., Any]] = {
            RenderKind.EVAL: self._eval,
            RenderKind.HOOK: self._hook,
            RenderKind.HOOK_STR: self._hook_str,
            RenderKind.LOADED_DEPS: self._loaded_deps,
            RenderKind.INJECT_DEPS: self._inject_deps,
            RenderKind.LOAD_FILE: self._load_file,
            RenderKind.COMPLETIONS: self._completions,
            RenderKind.DOC: self._doc,
            RenderKind.SOURCE: self._source,
            RenderKind.DEFINITION: self._definition,
            RenderKind.RUN_TESTS: self._run_tests,
            RenderKind.RUN_ALL_TESTS: self._run_all_tests,
            RenderKind.REFRESH: self._refresh,
        }
        missing = set(RenderKind) - set(self._handlers)
        if missing:
            raise TypeError(f"No template for: {sorted(kind.value for kind in missing)}")

    def render(self, kind: RenderKind, *, pretty: bool = True, **params: Any) -> Any:
        """Render ``kind`` with ``params``.

        Most kinds return a code string. ``inject-deps`` returns a tuple of
        code strings, one per submission, and ``refresh`` returns ``None``
        for dialects without tools.namespace.
        """

        return self._handlers[kind](pretty=pretty, **params)

    def probe_namespaces(self, dialect: Dialect) -> tuple[str, ...]:
        """Namespaces whose presence means a connection needs no injection."""

        return SUPPORT_LIBS[dialect] + self._manifest.get().namespaces(dialect)

    def library_ns(self, dialect: Dialect, library: str) -> str:
        """The manifest's vendored copy of ``library``, else ``library`` itself."""

        for ns in self._manifest.get().namespaces(dialect):
            if ns == library or ns.endswith(f".{library}"):
                return ns
        return library

    def _emit(self, form: Any, pretty: bool) -> str:
        return pformat(form, self._width) if pretty else pr_str(form)

    def _eval(
        self,
        *,
        pretty: bool,
        dialect: Dialect,
        code: str,
        ns: str | None = None,
        path: str | None = None,
        line: int | None = None,
    ) -> str:
        ns_sym = sym(ns or DEFAULT_NS[dialect])
        if dialect is Dialect.CLOJURE:
            form = lst(sym("do"), lst(sym("ns"), ns_sym), clojure_eval_form(code, path, line))
            return self._emit(form, pretty)
        # ClojureScript takes one top-level form per submission, so anything
        # that is not exactly one form is wrapped. Unreadable code is wrapped
        # too and left for the runtime to report.
        try:
            wrap = count_forms(code) != 1
        except ReaderError:
            wrap = True
        parts = [pr_str(lst(sym("in-ns"), quote(ns_sym))), "\n"]
        if wrap:
            parts.append("(do ")
        parts.extend([code, "\n"])
        if wrap:
            parts.append(")\n")
        return "".join(parts)

    def _hook(self, *, pretty: bool, hook: str, value: Any = None) -> str:
        return self._emit(lst(sym(hook), quote(value)), pretty)

    def _hook_str(self, *, pretty: bool, hook: str, value: str) -> str:
        return f"({sym(hook).name}\n {value}\n)"

    def _loaded_deps(self, *, pretty: bool, dialect: Dialect) -> str:
        namespaces = SList(sym(ns) for ns in self.probe_namespaces(dialect))
        form = lst(sym("set"), lst(sym("filter"), sym("find-ns"), quote(namespaces)))
        return self._emit(form, pretty)

    def _inject_deps(
        self,
        *,
        pretty: bool,
        dialect: Dialect,
        loaded: Collection[str] = (),
    ) -> tuple[str, ...]:
        require = lst(sym("require"), *(quote(sym(ns)) for ns in SUPPORT_LIBS[dialect]))
        if dialect is not Dialect.CLOJURE:
            return (self._emit(require, pretty),)
        manifest = self._manifest.get()
        loaded_names = {str(ns) for ns in loaded}
        loads = [
            self._emit(clojure_eval_form(manifest.source(path), path), pretty)
            for path, ns in zip(manifest.paths(dialect), manifest.namespaces(dialect))
            if ns not in loaded_names
        ]
        return (self._emit(require, pretty), *loads)

    def _load_file(self, *, pretty: bool, path: str) -> str:
        return self._emit(lst(sym("load-file"), path), pretty)

    def _completions(
        self,
        *,
        pretty: bool,
        dialect: Dialect,
        prefix: str,
        ns: str | None = None,
        context: str | None = None,
    ) -> str:
        if dialect is not Dialect.CLOJURE:
            return self._emit(Vector(), pretty)
        options = Map(
            {
                kw("ns"): lst(sym("find-ns"), quote(sym(ns or DEFAULT_NS[dialect]))),
                kw("extra-metadata"): SetForm({kw("doc"), kw("arglists")}),
            }
        )
        context_opts = lst(
            sym("when-let"),
            vec(sym("context"), context),
            Map({kw("context"): sym("context")}),
        )
        completions = sym(f"{self.library_ns(dialect, COMPLIMENT_NS)}/completions")
        form = lst(completions, prefix, lst(sym("merge"), options, context_opts))
        return self._emit(form, pretty)

    def _repl_lookup(self, fn: str, dialect: Dialect, name: str, pretty: bool) -> str:
        repl_ns = "clojure.repl" if dialect is Dialect.CLOJURE else "cljs.repl"
        return self._emit(_with_out_str(lst(sym(f"{repl_ns}/{fn}"), sym(name))), pretty)

    def _doc(self, *, pretty: bool, dialect: Dialect, name: str) -> str:
        return self._repl_lookup("doc", dialect, name, pretty)

    def _source(self, *, pretty: bool, dialect: Dialect, name: str) -> str:
        return self._repl_lookup("source", dialect, name, pretty)

    def _definition(self, *, pretty: bool, dialect: Dialect, name: str) -> str:
        return self._emit(definition_form(dialect, name), pretty)

    def _run_tests(self, *, pretty: bool, dialect: Dialect, targets: Iterable[str]) -> str:
        names = sorted(set(targets))
        if dialect is Dialect.CLOJURE:
            find = lst(sym("keep"), sym("find-ns"), quote(SetForm(sym(name) for name in names)))
            form = _test_out(lst(sym("apply"), sym("clojure.test/run-tests"), find))
        else:
            form = _with_out_str(lst(sym("cljs.test/run-tests"), *(quote(sym(name)) for name in names)))
        return self._emit(form, pretty)

    def _run_all_tests(self, *, pretty: bool, dialect: Dialect, pattern: str | None = None) -> str:
        args = (Regex(pattern),) if pattern else ()
        if dialect is Dialect.CLOJURE:
            form = _test_out(lst(sym("clojure.test/run-all-tests"), *args))
        else:
            form = _with_out_str(lst(sym("cljs.test/run-all-tests"), *args))
        return self._emit(form, pretty)

    def _refresh(
        self,
        *,
        pretty: bool,
        dialect: Dialect,
        op: RefreshOp,
        hook: str | None = None,
    ) -> str | None:
        if dialect is not Dialect.CLOJURE:
            return None
        callbacks = lst(sym(hook), quote(None)) if hook else None
        repl_ns = self.library_ns(dialect, TOOLS_NAMESPACE_REPL)
        run_op = sym(f"{repl_ns}/{_REFRESH_FNS[op]}")
        if op is RefreshOp.CLEAR:
            reload = lst(run_op)
        else:
            reload = lst(sym("apply"), run_op, lst(sym("when"), sym("after"), vec(kw("after"), sym("after"))))
        form = lst(
            sym("let"),
            vec(Map({kw("keys"): vec(sym("before"), sym("after"), sym("dirs"))}), callbacks),
            lst(
                sym("when"),
                sym("before"),
                lst(sym("require"), lst(sym("symbol"), lst(sym("namespace"), sym("before")))),
                lst(lst(sym("resolve"), sym("before"))),
            ),
            lst(
                sym("when"),
                sym("dirs"),
                lst(sym("apply"), sym(f"{repl_ns}/set-refresh-dirs"), sym("dirs")),
            ),
            reload,
        )
        return self._emit(form, pretty)


__all__ = [
    "COMPLIMENT_NS",
    "CodeRenderer",
    "DEFAULT_NS",
    "NO_SOURCE_PATH",
    "RESOURCE_REWRITES",
    "RenderKind",
    "SUPPORT_LIBS",
    "TOOLS_NAMESPACE_REPL",
    "clojure_eval_form",
    "definition_form",
    "normalize_resource_path",
]
