# Static / zero initialization vector detection for block cipher calls.
# The IV argument is flagged when it is a literal, or a fixed-size buffer whose
# initializer is constant and which no writer call or assignment refills
# before the call.

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import CallSite, VariableDecl, root_identifier
from ecuguard.rules.base import Matcher, MatcherParams, calls_between, is_literal_span, make_finding
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.tokenizer import TokenKind

_CONSTANT_KINDS = (TokenKind.NUMBER, TokenKind.STRING, TokenKind.CHAR)


class StaticIVParams(MatcherParams):
    # callee -> index of the IV argument
    functions: dict[str, int] = Field(..., min_length=1)
    # callee -> index of the buffer it fills; only these calls refresh an IV
    writers: dict[str, int] = Field(default_factory=dict)


class ZeroOrStaticIVMatcher(Matcher):
    kind = MatcherKind.STATIC_IV
    params_model = StaticIVParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        tokens = index.tokens
        for call in index.calls:
            iv_idx = params.functions.get(call.callee)
            if iv_idx is None or iv_idx >= len(call.arguments):
                continue
            start, end = call.arguments[iv_idx]
            if is_literal_span(tokens, start, end):
                message = f"'{call.callee}' is given a literal IV."
            else:
                decl = self._constant_iv(call, start, end, index, params.writers)
                if decl is None:
                    continue
                message = (
                    f"IV '{decl.name}' passed to '{call.callee}' is constant "
                    f"(initialized at line {decl.token.line} and never refreshed)."
                )
            findings.append(make_finding(rule, index, call.token, message, span=call.span))
        return findings

    def _constant_iv(
        self, call: CallSite, start: int, end: int, index: UnitIndex, writers: dict[str, int]
    ) -> Optional[VariableDecl]:
        tokens = index.tokens
        root = root_identifier(tokens, start, end)
        if root is None:
            return None
        name = tokens[root].text
        decl = index.resolve(name, call.function, call.index)
        if not isinstance(decl, VariableDecl) or decl.capacity is None or decl.initializer is None:
            return None
        if not _is_constant_initializer(tokens, *decl.initializer):
            return None
        if _rewritten(index, call, decl, name, writers):
            return None
        return decl


def _is_constant_initializer(tokens, start: int, end: int) -> bool:
    """`{0}`, `{}`, `""`, `{0x01, 0x02}`: braces, commas and literal constants only."""
    if start >= end:
        return False
    for k in range(start, end):
        tok = tokens[k]
        if tok.is_op("{", "}", ",", "-") or tok.kind in _CONSTANT_KINDS:
            continue
        return False
    return True


def _rewritten(index: UnitIndex, call: CallSite, decl: VariableDecl, name: str, writers: dict[str, int]) -> bool:
    """
    True if name is refilled between its declaration and call: it is the
    destination of a configured writer (`RAND_bytes(iv, 16)`) or is assigned.
    Reads such as logging or comparing the IV do not count.
    """
    tokens = index.tokens
    lower = decl.index if decl.function is call.function else -1
    for other in calls_between(index, call, lower, call.index):
        dest = writers.get(other.callee)
        if dest is None or dest >= len(other.arguments):
            continue
        root = root_identifier(tokens, *other.arguments[dest])
        if root is not None and tokens[root].text == name:
            return True
    for assignment in index.assignments_in(call.function):
        if assignment.target == name and lower < assignment.index < call.index and assignment.index != decl.index:
            return True
    return False
