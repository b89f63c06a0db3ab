"""End-to-end tests for ecuguard.scan over the vulnerability corpus in tests/fixtures."""

import logging
from pathlib import Path

import pytest

from ecuguard.config import Config
from ecuguard.context import SourceUnit
from ecuguard.findings.models import DiagnosticKind
from ecuguard.report import ScanOutcome
from ecuguard.rules.unsafe_functions import DangerousCallMatcher
from ecuguard.scan import scan

FIXTURES = Path(__file__).parent / "fixtures"


def _unit(name: str) -> SourceUnit:
    return SourceUnit.from_bytes(name, (FIXTURES / name).read_bytes())


@pytest.fixture(scope="module")
def sample_report():
    return scan([_unit("sample_ansi_c.c")])


@pytest.fixture(scope="module")
def comprehensive_report():
    return scan([_unit("comprehensive_real_world_vulnerabilities.c")])


def _source_line(name: str, needle: str) -> int:
    lines = (FIXTURES / name).read_text().splitlines()
    return next(n for n, line in enumerate(lines, start=1) if needle in line)


def _at(report, cwe: str, line: int) -> list:
    return [f for f in report.findings if f.cwe == cwe and f.location.line == line]


def test_sample_strcpy_from_can_message(sample_report):
    line = _source_line("sample_ansi_c.c", "strcpy(buffer, message)")
    assert _at(sample_report, "CWE-120", line)
    [tainted] = _at(sample_report, "CWE-787", line)
    assert any("message" in step.description for step in tainted.taint_path)
    assert "strcpy" in tainted.taint_path[-1].description


def test_sample_command_injection(sample_report):
    line = _source_line("sample_ansi_c.c", "system(system_command)")
    findings = _at(sample_report, "CWE-78", line)
    assert {f.rule_id for f in findings} == {"ECU-CMD-001", "ECU-TNT-002"}


def test_sample_hardcoded_credentials(sample_report):
    for needle in ("admin_password", "debug_key"):
        line = _source_line("sample_ansi_c.c", needle)
        assert len(_at(sample_report, "CWE-798", line)) == 1


def test_sample_use_after_free_and_gets(sample_report):
    uaf_line = _source_line("sample_ansi_c.c", 'strcpy(ptr, "vulnerable")')
    assert _at(sample_report, "CWE-416", uaf_line)
    # Pointer destination: unknown capacity keeps the unbounded copy flagged.
    assert _at(sample_report, "CWE-120", uaf_line)
    assert _at(sample_report, "CWE-120", _source_line("sample_ansi_c.c", "gets(input)"))


def test_sample_report_metadata(sample_report):
    assert sample_report.outcome is ScanOutcome.COMPLETED
    assert sample_report.units_scanned == 1
    assert sample_report.functions_indexed == 6
    assert sample_report.call_sites_indexed > 0
    assert sample_report.diagnostics == ()
    assert sample_report.risk_score() == 9.0


def test_comprehensive_md5(comprehensive_report):
    line = _source_line("comprehensive_real_world_vulnerabilities.c", "MD5_Init(&ctx);")
    assert _at(comprehensive_report, "CWE-327", line)


def test_comprehensive_zero_iv(comprehensive_report):
    line = _source_line("comprehensive_real_world_vulnerabilities.c", "AES_cbc_encrypt(")
    assert _at(comprehensive_report, "CWE-329", line)


def test_comprehensive_clear_dtcs_without_auth(comprehensive_report):
    line = _source_line("comprehensive_real_world_vulnerabilities.c", "            clear_dtcs();")
    assert _at(comprehensive_report, "CWE-306", line)


def test_comprehensive_format_string(comprehensive_report):
    line = _source_line("comprehensive_real_world_vulnerabilities.c", "printf(buffer);")
    assert _at(comprehensive_report, "CWE-134", line)


def test_comprehensive_sql_and_payload_copy(comprehensive_report):
    name = "comprehensive_real_world_vulnerabilities.c"
    assert _at(comprehensive_report, "CWE-89", _source_line(name, "execute_sql_query(query);"))
    [memcpy] = _at(comprehensive_report, "CWE-787", _source_line(name, "memcpy(&engine_control"))
    assert any("msg->length" in step.description for step in memcpy.taint_path)


def test_comprehensive_numeric_xor_key(comprehensive_report):
    line = _source_line("comprehensive_real_world_vulnerabilities.c", "char key = 0x42;")
    assert len(_at(comprehensive_report, "CWE-798", line)) == 1


def test_comprehensive_covers_every_category(comprehensive_report):
    cwes = set(comprehensive_report.by_cwe())
    for cwe in ("CWE-798", "CWE-120", "CWE-78", "CWE-134", "CWE-327", "CWE-338", "CWE-329", "CWE-306", "CWE-787", "CWE-89"):
        assert cwe in cwes


def test_findings_are_unique_and_ordered(comprehensive_report):
    findings = comprehensive_report.findings
    keys = [f.key for f in findings]
    assert len(keys) == len(set(keys))
    order = [(f.location.path, f.location.offset, f.rule_id) for f in findings]
    assert order == sorted(order)
    assert all(len(f.id) == 12 for f in findings)


def test_locations_point_into_the_unit(comprehensive_report):
    raw = (FIXTURES / "comprehensive_real_world_vulnerabilities.c").read_bytes()
    lines = raw.decode("utf-8", errors="replace").splitlines()
    for f in comprehensive_report.findings:
        loc = f.location
        assert 0 <= loc.offset < len(raw)
        assert lines[loc.line - 1][loc.column - 1] == chr(raw[loc.offset])


def test_offsets_are_byte_offsets():
    source = "// Gerätediagnose\nvoid f(void) { char b[8]; gets(b); }\n"
    report = scan([SourceUnit.from_bytes("utf8.c", source.encode("utf-8"))])
    [finding] = [f for f in report.findings if f.rule_id == "ECU-BOF-001"]
    assert finding.location.offset == source.encode("utf-8").index(b"gets")
    assert finding.location.offset == source.index("gets") + 1


def test_deterministic_across_worker_counts():
    units = [_unit("comprehensive_real_world_vulnerabilities.c"), _unit("sample_ansi_c.c")]
    serial = scan(units, Config(workers=1))
    parallel = scan(list(reversed(units)), Config(workers=4))
    assert serial == parallel


def test_empty_input():
    report = scan([])
    assert report.outcome is ScanOutcome.EMPTY_INPUT
    assert report.findings == ()
    assert report.diagnostics == ()


def test_malformed_unit_is_isolated():
    """A unit with unbalanced braces gets a diagnostic; other units are unaffected."""
    broken = SourceUnit("broken.c", "void broken(void) {\n    if (x) {\n        gets(buf);\n}\n")
    good = _unit("sample_ansi_c.c")
    alone = scan([good])
    together = scan([broken, good])
    assert [d.kind for d in together.diagnostics] == [DiagnosticKind.STRUCTURAL]
    assert together.diagnostics[0].path == "broken.c"
    assert [f for f in together.findings if f.location.path == "sample_ansi_c.c"] == list(alone.findings)
    # The truncated function is still searched.
    assert any(f.location.path == "broken.c" and f.cwe == "CWE-120" for f in together.findings)


def test_failing_unit_becomes_unit_diagnostic(monkeypatch, caplog):
    import ecuguard.scan as scan_module

    real = scan_module.create_context

    def flaky(unit):
        if unit.path == "bad.c":
            raise RuntimeError("cannot parse")
        return real(unit)

    monkeypatch.setattr(scan_module, "create_context", flaky)
    with caplog.at_level(logging.ERROR):
        report = scan([SourceUnit("bad.c", "int x;"), _unit("sample_ansi_c.c")])
    assert report.units_scanned == 1
    assert [(d.kind, d.path) for d in report.diagnostics] == [(DiagnosticKind.UNIT, "bad.c")]
    assert report.findings
    assert "Failed to parse bad.c" in caplog.text


def test_failing_rule_does_not_stop_the_scan(monkeypatch):
    def boom(self, rule, params, index):
        raise RuntimeError("boom")

    monkeypatch.setattr(DangerousCallMatcher, "run", boom)
    report = scan([_unit("sample_ansi_c.c")])
    rule_diags = [d for d in report.diagnostics if d.kind is DiagnosticKind.RULE]
    assert {d.rule_id for d in rule_diags} == {"ECU-BOF-001", "ECU-CMD-001"}
    assert any(f.cwe == "CWE-787" for f in report.findings)
    assert not any(f.rule_id == "ECU-BOF-001" for f in report.findings)


def test_disabled_rules_are_not_reported():
    report = scan([_unit("sample_ansi_c.c")], Config(disabled_rules={"ECU-SEC-001"}))
    assert not any(f.cwe == "CWE-798" for f in report.findings)


def test_unbalanced_macro_does_not_hide_later_functions():
    unit = SourceUnit("macro.c", "DECLARE_THING(x;\nvoid f(char *m) { system(m); }\n")
    report = scan([unit])
    assert any(f.cwe == "CWE-78" and f.location.line == 2 for f in report.findings)
    assert [d.kind for d in report.diagnostics] == [DiagnosticKind.STRUCTURAL]
