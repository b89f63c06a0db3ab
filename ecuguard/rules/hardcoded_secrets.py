# Hardcoded secrets detection: passwords, keys and tokens in string literals,
# plus numeric key bytes and PINs assigned to credential/key names. Relies on
# the literal hints computed by the parser (assigned identifier and value
# shape) plus a list of well-known weak constants.

from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import Assignment, LiteralHint, LiteralOccurrence
from ecuguard.rules.base import Matcher, MatcherParams, make_finding
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.tokenizer import TokenKind


class LiteralPatternParams(MatcherParams):
    hints: list[LiteralHint] = Field(default_factory=list)
    weak_values: list[str] = Field(default_factory=list)
    value_patterns: list[str] = Field(default_factory=list)
    min_length: int = Field(1, ge=0)

    @field_validator("value_patterns")
    @classmethod
    def _patterns_compile(cls, patterns: list[str]) -> list[str]:
        for pattern in patterns:
            try:
                re.compile(pattern)
            except re.error as exc:
                raise ValueError(f"invalid value pattern {pattern!r}: {exc}") from exc
        return patterns

    @model_validator(mode="after")
    def _has_criteria(self) -> "LiteralPatternParams":
        if not (self.hints or self.weak_values or self.value_patterns):
            raise ValueError("literal_pattern rule needs at least one matching criterion")
        return self


class LiteralPatternMatcher(Matcher):
    kind = MatcherKind.LITERAL_PATTERN
    params_model = LiteralPatternParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        hints = frozenset(params.hints)
        weak = frozenset(params.weak_values)
        patterns = [re.compile(p) for p in params.value_patterns]
        findings: list[Finding] = []
        # One finding per initializer: the bytes of `key[4] = {1, 2, 3, 4}` are one secret.
        reported: set[int] = set()
        for literal in index.literals:
            if len(literal.value) < params.min_length:
                continue
            if literal.kind is TokenKind.STRING:
                reason = self._reason(literal, hints, weak, patterns)
            elif literal.kind is TokenKind.NUMBER and literal.hint in hints:
                assignment = _enclosing_assignment(index, literal)
                if assignment is not None:
                    if assignment.index in reported:
                        continue
                    reported.add(assignment.index)
                reason = (
                    f"Possible hardcoded {literal.hint.value} in numeric literal "
                    f"assigned to '{literal.assigned_to}'."
                )
            else:
                continue
            if reason is None:
                continue
            findings.append(
                make_finding(rule, index, literal.token, reason, span=(literal.index, literal.end))
            )
        return findings

    def _reason(self, literal: LiteralOccurrence, hints, weak, patterns) -> str | None:
        if literal.hint in hints:
            target = f" assigned to '{literal.assigned_to}'" if literal.assigned_to else ""
            return f"Possible hardcoded {literal.hint.value} in string literal{target}."
        if literal.value in weak:
            return f"Well-known weak credential {literal.value!r} in string literal."
        for pattern in patterns:
            if pattern.search(literal.value):
                return "Embedded key material found in string literal."
        return None


def _enclosing_assignment(index: UnitIndex, literal: LiteralOccurrence) -> Optional[Assignment]:
    for assignment in index.assignments_in(literal.function):
        start, end = assignment.value
        if assignment.target == literal.assigned_to and start <= literal.index < end:
            return assignment
    return None
