# Use-after-free detection: basic heuristic detection of freed pointer usage

from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from ecuguard.findings.models import Finding
from ecuguard.index import UnitIndex
from ecuguard.parser import CallSite, FunctionDef, is_field_name, root_identifier, sizeof_spans
from ecuguard.rules.base import Matcher, MatcherParams, make_finding, make_step
from ecuguard.rules.registry import MatcherKind, RuleDefinition
from ecuguard.tokenizer import TokenKind


class UseAfterFreeParams(MatcherParams):
    deallocators: list[str] = Field(..., min_length=1)


class UseAfterFreeMatcher(Matcher):
    """
    Flag the first use of a pointer after a deallocator released it, within the
    same function. Reassigning the pointer (including the `p = NULL` idiom)
    ends tracking; mentions inside sizeof are not uses.
    """

    kind = MatcherKind.USE_AFTER_FREE
    params_model = UseAfterFreeParams

    def run(self, rule: RuleDefinition, params: Any, index: UnitIndex) -> list[Finding]:
        findings: list[Finding] = []
        deallocators = frozenset(params.deallocators)
        for fn in index.functions:
            for call in index.calls_in(fn):
                if call.callee not in deallocators or not call.arguments:
                    continue
                start, end = call.arguments[0]
                root = root_identifier(index.tokens, start, end)
                # free(p) or free((void *)p); members like free(c->buf) are not tracked.
                if root is None or root + 1 != end:
                    continue
                name = index.tokens[root].text
                use = self._first_use(index, fn, call, name)
                if use is None:
                    continue
                findings.append(
                    make_finding(
                        rule,
                        index,
                        index.tokens[use],
                        f"Possible use-after-free: '{name}' is used after "
                        f"{call.callee}() at line {call.token.line}.",
                        span=(use, use + 1),
                        taint_path=(
                            make_step(index, call.token, f"'{name}' released by {call.callee}()"),
                            make_step(index, index.tokens[use], f"'{name}' used after release"),
                        ),
                    )
                )
        return findings

    def _first_use(self, index: UnitIndex, fn: FunctionDef, call: CallSite, name: str) -> Optional[int]:
        tokens = index.tokens
        start, end = call.close + 1, fn.body[1]
        skipped = sizeof_spans(tokens, start, end)
        for k in range(start, end):
            tok = tokens[k]
            if tok.kind is not TokenKind.IDENTIFIER or tok.text != name or is_field_name(tokens, k):
                continue
            if any(s <= k < e for s, e in skipped):
                continue
            if k + 1 < end and tokens[k + 1].is_op("=") and not (k > 0 and tokens[k - 1].is_op("*")):
                # p = NULL / p = malloc(...): the old pointer is gone.
                return None
            return k
        return None
