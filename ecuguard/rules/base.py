# Matcher interface (abstract base class): the contract every matcher kind implements.
# A matcher interprets RuleDefinitions of one MatcherKind; the rule supplies the
# data (function lists, patterns), the matcher supplies the control flow.

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from fnmatch import fnmatchcase
from typing import Any, Iterable, Optional, Sequence

from pydantic import BaseModel

from ecuguard.findings.models import Finding, TaintStep
from ecuguard.index import UnitIndex
from ecuguard.parser import CallSite
from ecuguard.rules.registry import MatcherKind, RuleDefinition, thaw
from ecuguard.tokenizer import Token, TokenKind

ARG_SPEC_PATTERN = r"^(ret|\d+\+?)$"


class MatcherParams(BaseModel):
    """Base for per-kind parameter models; unknown keys are rejected."""

    model_config = {"frozen": True, "extra": "forbid"}


class Matcher(ABC):
    """
    Abstract base class for all matcher kinds.

    Subclasses must define:
    - kind: MatcherKind — the kind of RuleDefinition this matcher interprets
    - params_model: the pydantic model rule parameters are validated against
    - run(rule, params, index) -> list[Finding] — evaluate one rule on one unit

    The engine validates parameters once with compile(), then calls run()
    once per (rule, unit) pair.
    """

    kind: MatcherKind
    params_model: type[MatcherParams]

    def compile(self, rule: RuleDefinition) -> MatcherParams:
        """Validate rule.parameters; raises pydantic.ValidationError when malformed."""
        return self.params_model.model_validate(thaw(rule.parameters))

    @abstractmethod
    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        """
        Evaluate one rule against one unit.

        Args:
            rule: The rule being evaluated (id, CWE, severity, ...).
            params: The validated parameter model returned by compile().
            index: Lookup tables for the unit (functions, calls, decls, literals).

        Returns:
            Raw findings for this unit; the aggregator dedups and orders them.
        """
        ...


def make_finding(
    rule: RuleDefinition,
    index: UnitIndex,
    token: Token,
    message: str,
    span: Optional[tuple[int, int]] = None,
    taint_path: Sequence[TaintStep] = (),
) -> Finding:
    """Build a Finding located at token, with the snippet rendered from span."""
    start, end = span if span is not None else (None, None)
    return Finding(
        rule_id=rule.id,
        cwe=rule.cwe,
        severity=rule.severity,
        title=rule.title,
        message=message,
        location=index.location(token, start, end),
        taint_path=tuple(taint_path),
        remediation=rule.remediation,
    )


def make_step(index: UnitIndex, token: Token, description: str) -> TaintStep:
    return TaintStep(
        path=index.path,
        line=token.line,
        column=token.column,
        offset=token.byte_start,
        description=description,
    )


def name_matches(name: str, patterns: Iterable[str]) -> bool:
    """Case-sensitive glob match of a callee name against patterns."""
    return any(fnmatchcase(name, pattern) for pattern in patterns)


def arg_indices(spec: str, count: int) -> list[int]:
    """Expand an argument spec ("2" or "1+") into indices valid for count arguments."""
    if spec == "ret":
        return []
    if spec.endswith("+"):
        return list(range(int(spec[:-1]), count))
    n = int(spec)
    return [n] if n < count else []


def is_literal_span(tokens: list[Token], start: int, end: int) -> bool:
    """True if tokens[start:end] are only string literals (adjacent ones concatenate)."""
    if start >= end:
        return False
    return all(tokens[k].kind is TokenKind.STRING for k in range(start, end))


def calls_between(index: UnitIndex, call: CallSite, start: int, end: int) -> list[CallSite]:
    """Calls in the same function as call whose callee token lies in (start, end)."""
    return [c for c in index.calls_in(call.function) if start < c.index < end]


_SCANF_STRING_CONV_RE = re.compile(r"%(?:\*?)((?:\d+)?)(?:hh|h|ll|l|j|z|t|L)?([s\[])")


def scanf_format_has_unbounded_string(fmt: str) -> bool:
    """True if format contains %s or %[ without width (e.g. %15s is safe)."""
    s = fmt.replace("%%", "")
    for m in _SCANF_STRING_CONV_RE.finditer(s):
        if m.group(1) == "":
            return True
    return False
