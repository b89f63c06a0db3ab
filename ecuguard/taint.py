# Intra-function taint heuristic: a two-point lattice propagated along simple
# def-use chains (assignments and copy-class calls) in token order. Nothing
# crosses a function boundary; a tainted value handed to another function is
# not followed.

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Optional, Union

from ecuguard.findings.models import TaintStep
from ecuguard.index import UnitIndex
from ecuguard.parser import Assignment, CallSite, FunctionDef, Span, is_field_name, root_identifier, sizeof_spans
from ecuguard.rules.base import arg_indices, make_step, name_matches
from ecuguard.tokenizer import TokenKind

if TYPE_CHECKING:
    from ecuguard.rules.taint_flow import TaintFlowParams

logger = logging.getLogger(__name__)


class Taint(IntEnum):
    CLEAN = 0
    TAINTED = 1

    def join(self, other: "Taint") -> "Taint":
        return Taint(max(self, other))


@dataclass(frozen=True)
class TaintFact:
    """Why a name is tainted: the steps from the source to its latest definition."""

    name: str
    steps: tuple[TaintStep, ...]


@dataclass(frozen=True)
class TaintHit:
    """A tainted identifier found in a sink's sensitive argument."""

    call: CallSite
    argument: int
    token_index: int
    steps: tuple[TaintStep, ...]


Event = Union[Assignment, CallSite]


class TaintTracker:
    """
    Track taint through one function body.

    Events (assignments and calls) are replayed in source order. For each
    call the sink check runs before the call's own propagation, so
    `strcpy(buf, buf)` reports the state before the copy.
    """

    def __init__(self, index: UnitIndex, function: FunctionDef, params: "TaintFlowParams") -> None:
        self.index = index
        self.function = function
        self.params = params
        self.tokens = index.tokens
        self.facts: dict[str, TaintFact] = {}

    def state(self, name: str) -> Taint:
        return Taint.TAINTED if name in self.facts else Taint.CLEAN

    def taint(self, name: str, steps: tuple[TaintStep, ...]) -> None:
        # Monotone: the first path that taints a name is kept.
        if self.state(name) is Taint.CLEAN:
            self.facts[name] = TaintFact(name, steps)

    def clear(self, name: str) -> None:
        self.facts.pop(name, None)

    def run(self) -> list[TaintHit]:
        if self.params.parameter_sources:
            for param in self.function.parameters:
                step = make_step(self.index, param.token, f"parameter '{param.name}' is externally supplied")
                self.taint(param.name, (step,))

        events: list[Event] = [*self.index.assignments_in(self.function), *self.index.calls_in(self.function)]
        events.sort(key=lambda ev: (ev.index, isinstance(ev, CallSite)))

        hits: list[TaintHit] = []
        for event in events:
            if isinstance(event, CallSite):
                hits.extend(self._call(event))
            else:
                self._assignment(event)
        logger.debug(
            "%s:%s: %d tainted name(s), %d sink hit(s)",
            self.index.path,
            self.function.name,
            len(self.facts),
            len(hits),
        )
        return hits

    # -- events -------------------------------------------------------------

    def _call(self, call: CallSite) -> list[TaintHit]:
        params = self.params
        if name_matches(call.callee, params.sanitizers):
            for span in call.arguments:
                root = root_identifier(self.tokens, *span)
                if root is not None:
                    self.clear(self.tokens[root].text)
            return []

        hits: list[TaintHit] = []
        spec = params.sinks.get(call.callee)
        if spec is not None:
            for n in arg_indices(spec, len(call.arguments)):
                found = self.tainted_in(call.arguments[n])
                if found is None:
                    continue
                k, steps = found
                sink = make_step(self.index, call.token, f"reaches {call.callee}() argument {n}")
                hits.append(TaintHit(call, n, k, steps + (sink,)))
                break

        source = params.sources.get(call.callee)
        if source is not None:
            for n in arg_indices(source, len(call.arguments)):
                root = root_identifier(self.tokens, *call.arguments[n])
                if root is not None:
                    name = self.tokens[root].text
                    step = make_step(self.index, call.token, f"'{name}' receives external input from {call.callee}()")
                    self.taint(name, (step,))

        prop = params.propagators.get(call.callee)
        if prop is not None:
            self._propagate(call, prop.dest, prop.src)
        return hits

    def _propagate(self, call: CallSite, dest: str, src: str) -> None:
        found = None
        for n in arg_indices(src, len(call.arguments)):
            found = self.tainted_in(call.arguments[n])
            if found is not None:
                break
        if found is None:
            return
        _, steps = found
        for n in arg_indices(dest, len(call.arguments)):
            root = root_identifier(self.tokens, *call.arguments[n])
            if root is None:
                continue
            name = self.tokens[root].text
            hop = make_step(self.index, call.token, f"copied into '{name}' by {call.callee}()")
            self.taint(name, steps + (hop,))

    def _assignment(self, assignment: Assignment) -> None:
        target = assignment.target
        found = self.tainted_in(assignment.value)
        if found is not None:
            _, steps = found
            hop = make_step(self.index, assignment.token, f"assigned to '{target}'")
            self.taint(target, steps + (hop,))
            return
        # x = getenv(...), p = strdup(tainted)
        vs, ve = assignment.value
        for call in self.index.calls_in(self.function):
            if not vs <= call.index < ve:
                continue
            if self.params.sources.get(call.callee) == "ret":
                step = make_step(self.index, call.token, f"'{target}' receives external input from {call.callee}()")
                self.taint(target, (step,))
                return
            prop = self.params.propagators.get(call.callee)
            if prop is not None and prop.dest == "ret":
                for n in arg_indices(prop.src, len(call.arguments)):
                    hit = self.tainted_in(call.arguments[n])
                    if hit is not None:
                        hop = make_step(self.index, call.token, f"copied into '{target}' by {call.callee}()")
                        self.taint(target, hit[1] + (hop,))
                        return

    # -- helpers ------------------------------------------------------------

    def tainted_in(self, span: Span) -> Optional[tuple[int, tuple[TaintStep, ...]]]:
        """
        First tainted identifier in span with the steps that tainted it.

        Identifiers inside sizeof, callee names and member names after `.`/`->`
        do not count. Reading a member of a tainted struct adds a payload step.
        """
        start, end = span
        tokens = self.tokens
        skipped = sizeof_spans(tokens, start, end)
        for k in range(start, end):
            tok = tokens[k]
            if tok.kind is not TokenKind.IDENTIFIER or is_field_name(tokens, k):
                continue
            if k + 1 < end and tokens[k + 1].is_op("("):
                continue
            if any(s <= k < e for s, e in skipped):
                continue
            fact = self.facts.get(tok.text)
            if fact is None:
                continue
            steps = fact.steps
            if k + 2 < end and tokens[k + 1].is_op("->", ".") and tokens[k + 2].kind is TokenKind.IDENTIFIER:
                field = f"{tok.text}{tokens[k + 1].text}{tokens[k + 2].text}"
                steps = steps + (make_step(self.index, tokens[k + 2], f"reads payload field {field}"),)
            return k, steps
        return None
