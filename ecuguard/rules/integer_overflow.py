# Integer overflow detection: allocation sizes computed with unchecked
# arithmetic on runtime values (malloc(count * size), malloc(len + 1), ...).

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import Span, is_field_name, sizeof_spans
from ecuguard.rules.base import Matcher, MatcherParams, make_finding
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.tokenizer import Token, TokenKind

ARITHMETIC_OPS = frozenset({"*", "+", "-", "<<"})


class ArithmeticSizeParams(MatcherParams):
    # callee -> indices of its size arguments
    functions: dict[str, list[int]] = Field(..., min_length=1)


def _is_constant_name(tok: Token) -> bool:
    # MAX_LEN, MD5_DIGEST_LENGTH: object-like macros are compile-time constants.
    return tok.text.isupper()


class ArithmeticSizeMatcher(Matcher):
    kind = MatcherKind.ARITHMETIC_SIZE
    params_model = ArithmeticSizeParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        for call in index.calls:
            positions = params.functions.get(call.callee)
            if not positions:
                continue
            for pos in positions:
                if pos >= len(call.arguments):
                    continue
                span = call.arguments[pos]
                operand = self._runtime_operand(index.tokens, span)
                if operand is None:
                    continue
                findings.append(
                    make_finding(
                        rule,
                        index,
                        call.token,
                        f"Size argument '{index.snippet(*span)}' of '{call.callee}' uses unchecked "
                        f"arithmetic on '{operand}' and may wrap around.",
                        span=call.span,
                    )
                )
                break
        return findings

    def _runtime_operand(self, tokens: list[Token], span: Span) -> Optional[str]:
        """First runtime identifier of an arithmetic size expression, or None."""
        start, end = span
        skipped = sizeof_spans(tokens, start, end)

        def outside_sizeof(k: int) -> bool:
            return not any(s <= k < e for s, e in skipped)

        has_op = any(
            tokens[k].kind is TokenKind.OPERATOR and tokens[k].text in ARITHMETIC_OPS and outside_sizeof(k)
            for k in range(start, end)
        )
        if not has_op:
            return None
        for k in range(start, end):
            tok = tokens[k]
            if tok.kind is not TokenKind.IDENTIFIER or not outside_sizeof(k):
                continue
            if k + 1 < end and tokens[k + 1].is_op("("):
                continue
            if is_field_name(tokens, k) or _is_constant_name(tok):
                continue
            return tok.text
        return None
