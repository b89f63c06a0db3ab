# Unsafe function usage detection: flags calls to functions that are unsafe by
# construction (unbounded copy/format, shell execution) regardless of arguments.

from __future__ import annotations

from typing import Any

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import CallSite, VariableDecl, root_identifier, unquote_c_literal
from ecuguard.rules.base import (
    Matcher,
    MatcherParams,
    is_literal_span,
    make_finding,
    scanf_format_has_unbounded_string,
)
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.tokenizer import TokenKind


class DangerousCallParams(MatcherParams):
    functions: list[str] = Field(..., min_length=1)
    # scanf-like callee -> index of its format argument; exempt when every
    # %s / %[ conversion in a literal format carries a width.
    bounded_format: dict[str, int] = Field(default_factory=dict)
    # copy callees exempt when a string literal provably fits the destination.
    literal_fit: list[str] = Field(default_factory=list)


class DangerousCallMatcher(Matcher):
    """Flags every call to a configured unsafe-by-construction function."""

    kind = MatcherKind.DANGEROUS_CALL
    params_model = DangerousCallParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        wanted = frozenset(params.functions)
        for call in index.calls:
            if call.callee not in wanted:
                continue
            if call.callee in params.bounded_format and self._bounded_format(call, params, index):
                continue
            if call.callee in params.literal_fit and self._literal_fits(call, index):
                continue
            findings.append(
                make_finding(
                    rule,
                    index,
                    call.token,
                    f"Unsafe function '{call.callee}' may lead to buffer overflow or "
                    f"command injection; use a safe alternative.",
                    span=call.span,
                )
            )
        return findings

    def _bounded_format(self, call: CallSite, params: Any, index: UnitIndex) -> bool:
        fmt_idx = params.bounded_format[call.callee]
        if fmt_idx >= len(call.arguments):
            return False
        start, end = call.arguments[fmt_idx]
        if not is_literal_span(index.tokens, start, end):
            return False
        fmt = "".join(unquote_c_literal(index.tokens[k].text) or "" for k in range(start, end))
        return not scanf_format_has_unbounded_string(fmt)

    def _literal_fits(self, call: CallSite, index: UnitIndex) -> bool:
        """
        True for strcpy(buf, "lit") where buf has a known capacity that holds the
        literal and its terminator. An unknown capacity never exempts a call.
        """
        if len(call.arguments) < 2:
            return False
        tokens = index.tokens
        (dest_start, dest_end), (src_start, src_end) = call.arguments[0], call.arguments[1]
        if dest_end - dest_start != 1 or tokens[dest_start].kind is not TokenKind.IDENTIFIER:
            return False
        if not is_literal_span(tokens, src_start, src_end):
            return False
        root = root_identifier(tokens, dest_start, dest_end)
        if root is None:
            return False
        decl = index.resolve(tokens[root].text, call.function, call.index)
        # An array parameter decays to a pointer of unknown size.
        if not isinstance(decl, VariableDecl) or decl.capacity is None:
            return False
        value = "".join(unquote_c_literal(tokens[k].text) or "" for k in range(src_start, src_end))
        return len(value.encode("utf-8")) + 1 <= decl.capacity
