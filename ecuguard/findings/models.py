# Pydantic data models for vulnerability findings: Finding, Location, Severity,
# TaintStep, and the non-fatal Diagnostic records kept apart from findings.

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

SNIPPET_MAX_LENGTH = 160


class Severity(str, Enum):
    """Finding severity, ordered from most to least urgent."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """4 for critical down to 1 for low."""
        return _SEVERITY_RANK[self]

    @property
    def cvss(self) -> float:
        """Representative CVSS base score for this severity level."""
        return _SEVERITY_CVSS[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}

_SEVERITY_CVSS = {
    Severity.CRITICAL: 9.0,
    Severity.HIGH: 7.5,
    Severity.MEDIUM: 5.0,
    Severity.LOW: 3.0,
}


class Location(BaseModel):
    """Where in a source unit a finding was reported."""

    path: str
    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=1, description="1-based column number")
    offset: int = Field(..., ge=0, description="UTF-8 byte offset of the primary evidence in the unit")
    snippet: Optional[str] = Field(None, max_length=SNIPPET_MAX_LENGTH)

    model_config = {"frozen": True}


class TaintStep(BaseModel):
    """One hop of a taint path, from the source declaration to the sink call."""

    path: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)
    description: str

    model_config = {"frozen": True}


class Finding(BaseModel):
    """A single issue reported by a rule (e.g. tainted strcpy at line 42)."""

    rule_id: str
    cwe: str = Field(..., pattern=r"^CWE-\d+$")
    severity: Severity
    title: str
    message: str
    location: Location
    taint_path: tuple[TaintStep, ...] = ()
    remediation: str = ""
    id: str = ""

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, str, int]:
        """Dedup key: (rule id, unit path, offset of the primary evidence)."""
        return (self.rule_id, self.location.path, self.location.offset)


class DiagnosticKind(str, Enum):
    STRUCTURAL = "structural"
    CONFIGURATION = "configuration"
    RULE = "rule"
    UNIT = "unit"


class Diagnostic(BaseModel):
    """
    A non-fatal problem met during a scan: a parse gap, a skipped rule, or a
    unit that failed analysis. Report consumers use these to tell "the engine
    could not look here" apart from "the engine found a vulnerability here".
    """

    kind: DiagnosticKind
    message: str
    path: Optional[str] = None
    line: Optional[int] = Field(None, ge=1)
    rule_id: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def sort_key(self) -> tuple[str, str, int, str, str]:
        return (self.path or "", self.kind.value, self.line or 0, self.rule_id or "", self.message)
