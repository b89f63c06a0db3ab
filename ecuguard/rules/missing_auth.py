# Missing authentication detection: privileged ECU actions (DTC clearing,
# firmware writes, engine control) with no authentication check dominating
# them inside the same function.

from __future__ import annotations

from typing import Any

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import CallSite
from ecuguard.rules.base import Matcher, MatcherParams, make_finding, name_matches
from ecuguard.rules.registry import MatcherKind, RuleDefinition


class MissingAuthParams(MatcherParams):
    privileged: list[str] = Field(..., min_length=1)
    authenticators: list[str] = Field(..., min_length=1)


def dominates(guard: CallSite, call: CallSite) -> bool:
    """
    True if guard runs on every path to call, approximated lexically.

    The guard must come first and sit in an enclosing block: its scope path
    (block openers plus case segment) is a prefix of the call's. A check in a
    sibling `case` or in an earlier, closed block does not count.
    """
    if guard.function is not call.function or guard.index >= call.index:
        return False
    n = len(guard.scope)
    return call.scope[:n] == guard.scope


class MissingAuthBranchMatcher(Matcher):
    kind = MatcherKind.MISSING_AUTH
    params_model = MissingAuthParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        for fn in index.functions:
            calls = index.calls_in(fn)
            guards = [c for c in calls if name_matches(c.callee, params.authenticators)]
            for call in calls:
                if not name_matches(call.callee, params.privileged):
                    continue
                if any(dominates(guard, call) for guard in guards):
                    continue
                findings.append(
                    make_finding(
                        rule,
                        index,
                        call.token,
                        f"Privileged call '{call.callee}' in '{fn.name}' is not preceded "
                        f"by an authentication check.",
                        span=call.span,
                    )
                )
        return findings
