"""Tests for ecuguard.context: SourceUnit, create_context, load_contexts, spans and stats."""

import logging

from ecuguard.context import (
    SourceUnit,
    count_model_stats,
    create_context,
    get_line_col,
    get_source_span,
    load_contexts,
)


def test_source_unit_from_bytes_replaces_bad_utf8():
    unit = SourceUnit.from_bytes("ecu.c", b"int x; // \xff\xfe\n")
    assert unit.path == "ecu.c"
    assert "�" in unit.text


def test_create_context_sample_c():
    ctx = create_context(SourceUnit("main.c", "int main(void) { return 0; }\n"))
    assert ctx.path == "main.c"
    assert [f.name for f in ctx.model.functions] == ["main"]
    assert ctx.has_parse_errors is False


def test_create_context_malformed_still_returns_context():
    ctx = create_context(SourceUnit("bad.c", "int main(void) { if (x) { return 0; }\n"))
    assert ctx is not None
    assert ctx.has_parse_errors is True


def test_create_context_logs_stats(caplog):
    with caplog.at_level(logging.DEBUG, logger="ecuguard.context"):
        create_context(SourceUnit("stats.c", "void f(void) { g(); }"))
    assert "Parsed stats.c" in caplog.text


def test_count_model_stats():
    ctx = create_context(SourceUnit("s.c", "void f(void) { g(); h(1); }"))
    tokens, functions, calls = count_model_stats(ctx.model)
    assert tokens == len(ctx.tokens)
    assert functions == 1
    assert calls == 2


def test_get_source_span_collapses_whitespace():
    ctx = create_context(SourceUnit("x.c", "void f(void) {\n    strcpy(buf,\n           msg);\n}"))
    call = ctx.model.calls[0]
    assert get_source_span(ctx, *call.span) == "strcpy(buf, msg)"


def test_get_source_span_truncates():
    long_name = "x" * 300
    ctx = create_context(SourceUnit("x.c", f"int {long_name} = 1;"))
    span = get_source_span(ctx, 0, len(ctx.tokens), max_length=40)
    assert len(span) == 40
    assert span.endswith("...")


def test_get_source_span_empty_range():
    ctx = create_context(SourceUnit("x.c", "int x;"))
    assert get_source_span(ctx, 2, 2) == ""


def test_get_line_col_one_based():
    ctx = create_context(SourceUnit("x.c", "int x;\nint y;"))
    y = next(t for t in ctx.tokens if t.text == "y")
    assert get_line_col(y) == (2, 5)


def test_load_contexts_keeps_input_order():
    units = [SourceUnit("b.c", "int b;"), SourceUnit("a.c", "int a;")]
    assert [ctx.path for ctx in load_contexts(units)] == ["b.c", "a.c"]
