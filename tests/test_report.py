"""Tests for ecuguard.report: ScanReport summaries."""

from ecuguard.findings.models import Finding, Location, Severity
from ecuguard.report import ScanOutcome, ScanReport


def _finding(cwe: str, severity: Severity, offset: int) -> Finding:
    return Finding(
        rule_id=f"R-{cwe}",
        cwe=cwe,
        severity=severity,
        title="t",
        message="m",
        location=Location(path="a.c", line=1, column=1, offset=offset),
    )


def test_empty_report():
    report = ScanReport.empty()
    assert report.outcome is ScanOutcome.EMPTY_INPUT
    assert report.findings == ()
    assert report.diagnostics == ()
    assert report.risk_score() == 0.0
    assert not report.has_findings()


def test_severity_counts_include_every_level():
    report = ScanReport(
        findings=(
            _finding("CWE-78", Severity.CRITICAL, 1),
            _finding("CWE-120", Severity.HIGH, 2),
            _finding("CWE-120", Severity.HIGH, 3),
        )
    )
    assert report.severity_counts() == {
        Severity.CRITICAL: 1,
        Severity.HIGH: 2,
        Severity.MEDIUM: 0,
        Severity.LOW: 0,
    }


def test_by_cwe_groups_in_numeric_order():
    report = ScanReport(
        findings=(
            _finding("CWE-798", Severity.CRITICAL, 1),
            _finding("CWE-78", Severity.CRITICAL, 2),
            _finding("CWE-120", Severity.HIGH, 3),
        )
    )
    assert list(report.by_cwe()) == ["CWE-78", "CWE-120", "CWE-798"]


def test_risk_score_is_max_cvss():
    report = ScanReport(findings=(_finding("CWE-338", Severity.MEDIUM, 1), _finding("CWE-120", Severity.HIGH, 2)))
    assert report.risk_score() == 7.5
