"""S-expression value model and printer used by the code templates.

Templates in :mod:`preplui.renderer` are built as trees of these values and
only turned into text at the very end, via :func:`pr_str` or :func:`pformat`.
The reader in :mod:`preplui.reader` produces the same types, so runtime
results and rendered code share one representation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Callable, Iterable, Mapping

_FORBIDDEN = re.compile(r"[\s()\[\]{}\"\\;,@^`~]")
_BAD_SYMBOL_START = re.compile(r"^(?:[0-9:#']|[+-][0-9])")


@dataclass(frozen=True, slots=True)
class Symbol:
    """A symbol such as ``clojure.core/map``.

    Construction validates the text so no symbol can smuggle extra forms into
    rendered code.
    """

    name: str

    def __post_init__(self) -> None:
        if not self.name or _FORBIDDEN.search(self.name) or _BAD_SYMBOL_START.match(self.name):
            raise ValueError(f"Invalid symbol: {self.name!r}")

    @property
    def namespace(self) -> str | None:
        if self.name != "/" and "/" in self.name:
            return self.name.split("/", 1)[0]
        return None

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class Keyword:
    """A keyword, stored without its leading colon."""

    name: str

    def __post_init__(self) -> None:
        if not self.name or _FORBIDDEN.search(self.name):
            raise ValueError(f"Invalid keyword: {self.name!r}")

    def __str__(self) -> str:
        return f":{self.name}"


@dataclass(frozen=True, slots=True)
class Char:
    """A character literal (``\\a``, ``\\newline``)."""

    value: str


@dataclass(frozen=True, slots=True)
class Regex:
    """A regex literal, ``#"pattern"``."""

    pattern: str


@dataclass(frozen=True, slots=True)
class TaggedLiteral:
    """An unknown tagged element such as ``#object[...]`` or ``#inst "..."``."""

    tag: Symbol
    form: Any


@dataclass(frozen=True, slots=True)
class ReaderConditional:
    """A preserved ``#?(...)`` or ``#?@(...)`` form."""

    form: Any
    splicing: bool = False


class SList(tuple):
    """A list form, ``(a b c)``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"SList({list(self)!r})"


class Vector(tuple):
    """A vector form, ``[a b c]``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"Vector({list(self)!r})"


class SetForm(frozenset):
    """A set form, ``#{a b c}``."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"SetForm({set(self)!r})"


class Map(dict):
    """A map form, ``{:a 1}``.

    Immutable and hashed over its entries, so maps can sit in sets and be
    used as keys of other maps just like every other form.
    """

    __slots__ = ()

    def __hash__(self) -> int:  # type: ignore[override]
        return hash(frozenset(self.items()))

    def __repr__(self) -> str:
        return f"Map({dict(self)!r})"

    def _immutable(self, *args: Any, **kwargs: Any) -> Any:
        raise TypeError("Map forms are immutable")

    __setitem__ = __delitem__ = __ior__ = _immutable  # type: ignore[assignment]
    clear = pop = popitem = setdefault = update = _immutable  # type: ignore[assignment]


def sym(name: str) -> Symbol:
    return Symbol(name)


def kw(name: str) -> Keyword:
    return Keyword(name)


def lst(*items: Any) -> SList:
    return SList(items)


def vec(*items: Any) -> Vector:
    return Vector(items)


def quote(form: Any) -> SList:
    """Return ``(quote form)``."""

    return SList((Symbol("quote"), form))


_STRING_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\b": "\\b",
    "\f": "\\f",
}

CHAR_NAMES = {
    "\n": "newline",
    " ": "space",
    "\t": "tab",
    "\b": "backspace",
    "\f": "formfeed",
    "\r": "return",
}


def _print_string(value: str) -> str:
    return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + '"'


def _print_float(value: float) -> str:
    if math.isnan(value):
        return "##NaN"
    if math.isinf(value):
        return "##Inf" if value > 0 else "##-Inf"
    return repr(value)


def _print_char(value: Char) -> str:
    return "\\" + CHAR_NAMES.get(value.value, value.value)


def _print_list(value: Iterable[Any]) -> str:
    return "(" + " ".join(pr_str(item) for item in value) + ")"


def _print_vector(value: Iterable[Any]) -> str:
    return "[" + " ".join(pr_str(item) for item in value) + "]"


def _print_set(value: Iterable[Any]) -> str:
    # Sorted so rendered code is stable across interpreter runs.
    return "#{" + " ".join(sorted(pr_str(item) for item in value)) + "}"


def _print_map(value: Mapping[Any, Any]) -> str:
    return "{" + ", ".join(f"{pr_str(k)} {pr_str(v)}" for k, v in value.items()) + "}"


def _print_tagged(value: TaggedLiteral) -> str:
    return f"#{value.tag.name} {pr_str(value.form)}"


def _print_conditional(value: ReaderConditional) -> str:
    prefix = "#?@" if value.splicing else "#?"
    return prefix + pr_str(value.form)


_PRINTERS: dict[type, Callable[[Any], str]] = {
    type(None): lambda _: "nil",
    bool: lambda value: "true" if value else "false",
    int: str,
    float: _print_float,
    Fraction: lambda value: f"{value.numerator}/{value.denominator}",
    str: _print_string,
    Symbol: lambda value: value.name,
    Keyword: str,
    Char: _print_char,
    Regex: lambda value: '#"' + value.pattern.replace('"', '\\"') + '"',
    TaggedLiteral: _print_tagged,
    ReaderConditional: _print_conditional,
    SList: _print_list,
    Vector: _print_vector,
    SetForm: _print_set,
    Map: _print_map,
    list: _print_vector,
    tuple: _print_vector,
    dict: _print_map,
    set: _print_set,
    frozenset: _print_set,
}


def pr_str(value: Any) -> str:
    """Print a value as compact, readable Clojure text."""

    printer = _PRINTERS.get(type(value))
    if printer is None:
        printer = _fallback_printer(value)
    return printer(value)


def _fallback_printer(value: Any) -> Callable[[Any], str]:
    # Subclasses (str-valued enums, IntEnum, ...) fall back to their base.
    for base in (bool, int, float, str, SList, Vector, SetForm, Map):
        if isinstance(value, base):
            return _PRINTERS[base]
    if isinstance(value, Mapping):
        return _print_map
    if isinstance(value, (list, tuple)):
        return _print_vector
    if isinstance(value, (set, frozenset)):
        return _print_set
    raise TypeError(f"Cannot print {type(value).__name__} as Clojure data")


def pformat(value: Any, width: int = 80) -> str:
    """Pretty-print a value, breaking collections that do not fit in ``width``."""

    return _pformat(value, 0, width)


def _pformat(value: Any, indent: int, width: int) -> str:
    flat = pr_str(value)
    if indent + len(flat) <= width or not isinstance(value, (SList, Vector, SetForm, Map)) or not value:
        return flat
    if isinstance(value, SList):
        head, *rest = value
        head_text = _pformat(head, indent + 1, width)
        if not rest:
            return f"({head_text})"
        child = indent + 2
        pad = "\n" + " " * child
        body = pad.join(_pformat(item, child, width) for item in rest)
        return f"({head_text}{pad}{body})"
    if isinstance(value, Map):
        child = indent + 1
        pad = "\n" + " " * child
        entries = []
        for key, item in value.items():
            key_text = pr_str(key)
            entries.append(f"{key_text} {_pformat(item, child + len(key_text) + 1, width)}")
        return "{" + pad.join(entries) + "}"
    opener, closer = ("[", "]") if isinstance(value, Vector) else ("#{", "}")
    items: Iterable[Any] = value if isinstance(value, Vector) else sorted(value, key=pr_str)
    child = indent + len(opener)
    pad = "\n" + " " * child
    return opener + pad.join(_pformat(item, child, width) for item in items) + closer


__all__ = [
    "CHAR_NAMES",
    "Char",
    "Keyword",
    "Map",
    "ReaderConditional",
    "Regex",
    "SList",
    "SetForm",
    "Symbol",
    "TaggedLiteral",
    "Vector",
    "kw",
    "lst",
    "pformat",
    "pr_str",
    "quote",
    "sym",
    "vec",
]
