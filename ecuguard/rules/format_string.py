# Format string vulnerability detection: printf-family calls whose format
# argument is not a constant string literal.

from __future__ import annotations

from typing import Any

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import unquote_c_literal
from ecuguard.rules.base import Matcher, MatcherParams, is_literal_span, make_finding
from ecuguard.rules.registry import MatcherKind, RuleDefinition


class FormatStringParams(MatcherParams):
    # callee -> index of the format argument (printf: 0, fprintf: 1, snprintf: 2)
    functions: dict[str, int] = Field(..., min_length=1)
    flag_percent_n: bool = False


class FormatStringMatcher(Matcher):
    kind = MatcherKind.FORMAT_STRING
    params_model = FormatStringParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        tokens = index.tokens
        for call in index.calls:
            fmt_idx = params.functions.get(call.callee)
            if fmt_idx is None or fmt_idx >= len(call.arguments):
                continue
            start, end = call.arguments[fmt_idx]
            if not is_literal_span(tokens, start, end):
                # If it's not a literal string, it may be attacker-controlled.
                findings.append(
                    make_finding(
                        rule,
                        index,
                        call.token,
                        f"Potential format string vulnerability: '{call.callee}' called "
                        f"with non-literal format string '{index.snippet(start, end)}'.",
                        span=call.span,
                    )
                )
                continue
            if params.flag_percent_n:
                fmt = "".join(unquote_c_literal(tokens[k].text) or "" for k in range(start, end))
                if "%n" in fmt.replace("%%", ""):
                    findings.append(
                        make_finding(
                            rule,
                            index,
                            call.token,
                            f"Dangerous '%n' in {call.callee} format string (writes to memory).",
                            span=call.span,
                        )
                    )
        return findings
