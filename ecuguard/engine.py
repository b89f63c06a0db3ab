# Rule engine: compiles rule definitions against their matcher kind once and
# evaluates every valid rule on a unit. A broken rule is reported as a
# diagnostic and never stops the others.

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import ValidationError

from ecuguard.findings.models import Diagnostic, DiagnosticKind, Finding
from ecuguard.index import UnitIndex
from ecuguard.rules.base import Matcher, MatcherParams
from ecuguard.rules.format_string import FormatStringMatcher
from ecuguard.rules.hardcoded_secrets import LiteralPatternMatcher
from ecuguard.rules.integer_overflow import ArithmeticSizeMatcher
from ecuguard.rules.missing_auth import MissingAuthBranchMatcher
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.rules.static_iv import ZeroOrStaticIVMatcher
from ecuguard.rules.taint_flow import TaintFlowMatcher
from ecuguard.rules.unsafe_functions import DangerousCallMatcher
from ecuguard.rules.use_after_free import UseAfterFreeMatcher
from ecuguard.rules.weak_crypto import WeakCryptoMatcher

logger = logging.getLogger(__name__)

MATCHERS: dict[MatcherKind, Matcher] = {
    matcher.kind: matcher
    for matcher in (
        LiteralPatternMatcher(),
        DangerousCallMatcher(),
        FormatStringMatcher(),
        WeakCryptoMatcher(),
        ZeroOrStaticIVMatcher(),
        MissingAuthBranchMatcher(),
        TaintFlowMatcher(),
        UseAfterFreeMatcher(),
        ArithmeticSizeMatcher(),
    )
}


class RuleEngine:
    """
    Evaluates a fixed set of rule definitions.

    Parameters are validated once, at construction; rules whose parameters do
    not fit their matcher kind are dropped and listed in `diagnostics`.
    """

    def __init__(self, rules: Iterable[RuleDefinition]) -> None:
        self.compiled: list[tuple[RuleDefinition, Matcher, MatcherParams]] = []
        self.diagnostics: list[Diagnostic] = []
        for rule in rules:
            matcher = MATCHERS.get(rule.kind)
            if matcher is None:
                self._skip(rule, f"no matcher registered for kind {rule.kind.value!r}")
                continue
            try:
                params = matcher.compile(rule)
            except ValidationError as exc:
                self._skip(rule, f"invalid parameters: {exc.error_count()} error(s): {_first_error(exc)}")
                continue
            self.compiled.append((rule, matcher, params))
        logger.debug("Rule engine ready: %d rule(s), %d skipped", len(self.compiled), len(self.diagnostics))

    @property
    def rules(self) -> list[RuleDefinition]:
        return [rule for rule, _, _ in self.compiled]

    def _skip(self, rule: RuleDefinition, reason: str) -> None:
        logger.warning("Skipping rule %s: %s", rule.id, reason)
        self.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.CONFIGURATION,
                message=f"rule skipped: {reason}",
                rule_id=rule.id,
            )
        )

    def evaluate(self, index: UnitIndex) -> tuple[list[Finding], list[Diagnostic]]:
        """Run every compiled rule on one unit; returns raw findings and rule diagnostics."""
        findings: list[Finding] = []
        diagnostics: list[Diagnostic] = []
        for rule, matcher, params in self.compiled:
            try:
                findings.extend(matcher.run(rule, params, index))
            except Exception as exc:
                logger.exception("Rule %s failed on %s: %s", rule.id, index.path, exc)
                diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.RULE,
                        message=f"rule failed: {type(exc).__name__}: {exc}",
                        path=index.path,
                        rule_id=rule.id,
                    )
                )
        return findings, diagnostics


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    where = ".".join(str(part) for part in err["loc"]) or "<root>"
    return f"{where}: {err['msg']}"
