# Weak cryptography detection: calls into broken hash/cipher primitives or
# non-cryptographic random number generators.

from __future__ import annotations

from typing import Any

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.rules.base import Matcher, MatcherParams, make_finding, name_matches
from ecuguard.rules.registry import MatcherKind, RuleDefinition


class WeakCryptoParams(MatcherParams):
    # glob patterns, matched case-sensitively against the callee name
    functions: list[str] = Field(..., min_length=1)


class WeakCryptoMatcher(Matcher):
    kind = MatcherKind.WEAK_CRYPTO
    params_model = WeakCryptoParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        for call in index.calls:
            if not name_matches(call.callee, params.functions):
                continue
            findings.append(
                make_finding(
                    rule,
                    index,
                    call.token,
                    f"'{call.callee}' uses a weak or broken primitive ({rule.title.lower()}).",
                    span=call.span,
                )
            )
        return findings
