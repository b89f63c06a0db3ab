"""Tests for ecuguard.engine: parameter validation, rule isolation and the matcher table."""

import logging

from ecuguard.context import SourceUnit, create_context
from ecuguard.engine import MATCHERS, RuleEngine
from ecuguard.findings.models import DiagnosticKind
from ecuguard.index import UnitIndex
from ecuguard.rules.registry import DEFAULT_REGISTRY, MatcherKind, RuleDefinition
from ecuguard.rules.unsafe_functions import DangerousCallMatcher


def _index(source: str, path: str = "test.c") -> UnitIndex:
    return UnitIndex(create_context(SourceUnit(path, source)))


def _rule(**overrides) -> RuleDefinition:
    data = {
        "id": "T-001",
        "title": "Test rule",
        "cwe": "CWE-120",
        "severity": "high",
        "kind": "dangerous_call",
        "parameters": {"functions": ["gets"]},
    }
    data.update(overrides)
    return RuleDefinition.model_validate(data)


def test_every_matcher_kind_has_a_matcher():
    assert set(MATCHERS) == set(MatcherKind)
    for kind, matcher in MATCHERS.items():
        assert matcher.kind is kind


def test_default_registry_compiles_cleanly():
    engine = RuleEngine(DEFAULT_REGISTRY)
    assert engine.diagnostics == []
    assert engine.rules == list(DEFAULT_REGISTRY)


def test_malformed_parameters_become_configuration_diagnostic(caplog):
    bad = _rule(id="T-BAD", parameters={"functions": []})
    unknown_key = _rule(id="T-EXTRA", parameters={"functions": ["gets"], "bogus": 1})
    good = _rule(id="T-OK")
    with caplog.at_level(logging.WARNING):
        engine = RuleEngine([bad, unknown_key, good])
    assert [r.id for r in engine.rules] == ["T-OK"]
    assert [d.rule_id for d in engine.diagnostics] == ["T-BAD", "T-EXTRA"]
    assert all(d.kind is DiagnosticKind.CONFIGURATION for d in engine.diagnostics)
    assert "Skipping rule T-BAD" in caplog.text


def test_bad_taint_argument_spec_is_rejected():
    rule = _rule(id="T-TNT", cwe="CWE-787", kind="taint_flow", parameters={"sinks": {"strcpy": "first"}})
    engine = RuleEngine([rule])
    assert engine.rules == []
    assert engine.diagnostics[0].rule_id == "T-TNT"


def test_evaluate_returns_findings():
    engine = RuleEngine([_rule()])
    findings, diagnostics = engine.evaluate(_index("void f(void) { char b[8]; gets(b); }"))
    assert len(findings) == 1
    assert findings[0].rule_id == "T-001"
    assert diagnostics == []


def test_failing_rule_is_isolated(monkeypatch, caplog):
    """An exception in one rule becomes a rule diagnostic; other rules still run."""

    def boom(self, rule, params, index):
        raise RuntimeError("matcher exploded")

    monkeypatch.setattr(DangerousCallMatcher, "run", boom)
    crypto = _rule(id="T-CRY", cwe="CWE-327", kind="weak_crypto", parameters={"functions": ["MD5*"]})
    engine = RuleEngine([_rule(), crypto])
    with caplog.at_level(logging.ERROR):
        findings, diagnostics = engine.evaluate(_index("void f(void) { gets(b); MD5_Init(&c); }"))
    assert [f.rule_id for f in findings] == ["T-CRY"]
    assert len(diagnostics) == 1
    assert diagnostics[0].kind is DiagnosticKind.RULE
    assert diagnostics[0].rule_id == "T-001"
    assert diagnostics[0].path == "test.c"
    assert "matcher exploded" in caplog.text
