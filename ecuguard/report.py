# Report model: the immutable result of one scan.

from __future__ import annotations

from collections import Counter
from enum import Enum

from pydantic import BaseModel, Field

from ecuguard.findings.models import Diagnostic, Finding, Severity


class ScanOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY_INPUT = "empty_input"


class ScanReport(BaseModel):
    """Ordered findings plus the diagnostics explaining what could not be analyzed."""

    outcome: ScanOutcome = ScanOutcome.COMPLETED
    findings: tuple[Finding, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    units_scanned: int = Field(0, ge=0)
    functions_indexed: int = Field(0, ge=0)
    call_sites_indexed: int = Field(0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def empty(cls) -> "ScanReport":
        return cls(outcome=ScanOutcome.EMPTY_INPUT)

    def severity_counts(self) -> dict[Severity, int]:
        """Number of findings per severity, every level present (most urgent first)."""
        counts = Counter(f.severity for f in self.findings)
        return {severity: counts.get(severity, 0) for severity in Severity}

    def by_cwe(self) -> dict[str, list[Finding]]:
        grouped: dict[str, list[Finding]] = {}
        for finding in self.findings:
            grouped.setdefault(finding.cwe, []).append(finding)
        return dict(sorted(grouped.items(), key=lambda item: int(item[0].split("-")[1])))

    def risk_score(self) -> float:
        """Highest representative CVSS score among the findings (0.0 when clean)."""
        return max((f.severity.cvss for f in self.findings), default=0.0)

    def has_findings(self) -> bool:
        return bool(self.findings)
