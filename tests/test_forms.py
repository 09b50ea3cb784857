"""Tests for the form model and printer."""

from __future__ import annotations

from fractions import Fraction

import pytest

from preplui.forms import Char, Map, Regex, SetForm, Symbol, kw, lst, pformat, pr_str, quote, sym, vec
from preplui.reader import read_string


def test_symbol_rejects_code_injection() -> None:
    with pytest.raises(ValueError):
        sym("foo) (System/exit 0")
    with pytest.raises(ValueError):
        sym('bar"')
    with pytest.raises(ValueError):
        sym("")


def test_symbol_rejects_numeric_and_keyword_starts() -> None:
    for name in ("1abc", ":kw", "#tag", "-1", "+2x"):
        with pytest.raises(ValueError):
            sym(name)
    assert sym("-").name == "-"
    assert sym("->>").name == "->>"


def test_symbol_namespace() -> None:
    assert sym("clojure.string/join").namespace == "clojure.string"
    assert sym("join").namespace is None
    assert sym("/").namespace is None


def test_pr_str_scalars() -> None:
    assert pr_str(None) == "nil"
    assert pr_str(True) == "true"
    assert pr_str(42) == "42"
    assert pr_str(Fraction(1, 3)) == "1/3"
    assert pr_str(float("inf")) == "##Inf"
    assert pr_str(kw("ok")) == ":ok"
    assert pr_str(Char("\n")) == "\\newline"
    assert pr_str(Regex('a"b')) == '#"a\\"b"'


def test_pr_str_escapes_strings() -> None:
    text = 'say "hi"\n\tpath\\to'

    printed = pr_str(text)

    assert printed == '"say \\"hi\\"\\n\\tpath\\\\to"'
    assert read_string(printed) == text


def test_pr_str_collections() -> None:
    form = lst(sym("let"), vec(sym("x"), 1), Map({kw("a"): SetForm({3, 1, 2})}))

    assert pr_str(form) == "(let [x 1] {:a #{1 2 3}})"
    assert pr_str(quote(sym("user"))) == "(quote user)"


def test_pr_str_rejects_unknown_types() -> None:
    with pytest.raises(TypeError):
        pr_str(object())


def test_pformat_keeps_short_forms_flat() -> None:
    form = lst(sym("+"), 1, 2)

    assert pformat(form) == "(+ 1 2)"


def test_pformat_breaks_long_lists() -> None:
    form = lst(sym("do"), lst(sym("println"), "a" * 40), lst(sym("println"), "b" * 40))

    text = pformat(form, width=60)

    lines = text.splitlines()
    assert lines[0] == "(do"
    assert lines[1].startswith('  (println "aaa')
    assert lines[2].startswith('  (println "bbb')
    assert read_string(text) == form


def test_pformat_aligns_vectors_after_bracket() -> None:
    form = vec("x" * 30, "y" * 30)

    assert pformat(form, width=40) == '["' + "x" * 30 + '"\n "' + "y" * 30 + '"]'


def test_symbol_str_is_name() -> None:
    assert str(Symbol("a/b")) == "a/b"
