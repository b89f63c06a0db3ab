# Symbol & call index: lookup tables over structural models.
# UnitIndex is what intra-function rules evaluate against; SymbolIndex merges
# every unit read-only before rule evaluation starts.

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Optional, Union

from ecuguard.context import UnitContext, get_source_span
from ecuguard.findings.models import SNIPPET_MAX_LENGTH, Location
from ecuguard.parser import (
    Assignment,
    CallSite,
    FunctionDef,
    LiteralHint,
    LiteralOccurrence,
    Parameter,
    VariableDecl,
)
from ecuguard.tokenizer import Token

logger = logging.getLogger(__name__)

Declaration = Union[VariableDecl, Parameter]


class UnitIndex:
    """Lookup tables for one unit: functions, call sites, declarations, literals."""

    def __init__(self, context: UnitContext) -> None:
        self.context = context
        model = context.model
        self.functions_by_name: dict[str, list[FunctionDef]] = defaultdict(list)
        self.calls_by_callee: dict[str, list[CallSite]] = defaultdict(list)
        self.literals_by_hint: dict[LiteralHint, list[LiteralOccurrence]] = defaultdict(list)
        self._calls_by_function: dict[Optional[int], list[CallSite]] = defaultdict(list)
        self._assignments_by_function: dict[Optional[int], list[Assignment]] = defaultdict(list)
        self._decls_by_function: dict[Optional[int], list[VariableDecl]] = defaultdict(list)

        for fn in model.functions:
            self.functions_by_name[fn.name].append(fn)
        for call in model.calls:
            self.calls_by_callee[call.callee].append(call)
            self._calls_by_function[_key(call.function)].append(call)
        for assignment in model.assignments:
            self._assignments_by_function[_key(assignment.function)].append(assignment)
        for decl in model.decls:
            self._decls_by_function[_key(decl.function)].append(decl)
        for literal in model.literals:
            self.literals_by_hint[literal.hint].append(literal)

    @property
    def path(self) -> str:
        return self.context.path

    @property
    def tokens(self) -> list[Token]:
        return self.context.tokens

    @property
    def functions(self) -> list[FunctionDef]:
        return self.context.model.functions

    @property
    def calls(self) -> list[CallSite]:
        return self.context.model.calls

    @property
    def literals(self) -> list[LiteralOccurrence]:
        return self.context.model.literals

    def calls_to(self, name: str) -> list[CallSite]:
        return list(self.calls_by_callee.get(name, ()))

    def calls_in(self, fn: Optional[FunctionDef]) -> list[CallSite]:
        """Call sites inside fn (or at file scope for None), in source order."""
        return sorted(self._calls_by_function.get(_key(fn), ()), key=lambda c: c.index)

    def assignments_in(self, fn: Optional[FunctionDef]) -> list[Assignment]:
        return sorted(self._assignments_by_function.get(_key(fn), ()), key=lambda a: a.index)

    def decls_in(self, fn: Optional[FunctionDef]) -> list[VariableDecl]:
        return sorted(self._decls_by_function.get(_key(fn), ()), key=lambda d: d.index)

    def resolve(self, name: str, fn: Optional[FunctionDef], before: Optional[int] = None) -> Optional[Declaration]:
        """
        Find the declaration `name` refers to at token index `before`:
        the nearest preceding local, then a parameter of fn, then a global.
        """
        if fn is not None:
            local = None
            for decl in self.decls_in(fn):
                if decl.name == name and (before is None or decl.index < before):
                    local = decl
            if local is not None:
                return local
            param = fn.parameter(name)
            if param is not None:
                return param
        for decl in self.decls_in(None):
            if decl.name == name:
                return decl
        return None

    def snippet(self, start: int, end: int) -> str:
        return get_source_span(self.context, start, end)

    def location(self, token: Token, start: Optional[int] = None, end: Optional[int] = None) -> Location:
        """Location of token; the snippet renders tokens[start:end] when given."""
        snippet = self.snippet(start, end) if start is not None and end is not None else token.text
        return Location(
            path=self.path,
            line=token.line,
            column=token.column,
            offset=token.byte_start,
            snippet=snippet[:SNIPPET_MAX_LENGTH] or None,
        )


def _key(fn: Optional[FunctionDef]) -> Optional[int]:
    return None if fn is None else fn.index


class SymbolIndex:
    """
    Cross-unit lookup tables, merged once from every unit's index.

    Built after all units are parsed and before any rule runs; read-only
    afterwards so workers can share it without locking.
    """

    def __init__(self, units: Iterable[UnitIndex]) -> None:
        self._units: dict[str, UnitIndex] = {}
        self.functions: dict[str, list[FunctionDef]] = defaultdict(list)
        self.calls_by_callee: dict[str, list[CallSite]] = defaultdict(list)
        self.literals_by_hint: dict[LiteralHint, list[LiteralOccurrence]] = defaultdict(list)

        for unit in sorted(units, key=lambda u: u.path):
            if unit.path in self._units:
                logger.warning("Duplicate unit path %s; keeping the first one", unit.path)
                continue
            self._units[unit.path] = unit
            for name, defs in unit.functions_by_name.items():
                self.functions[name].extend(defs)
            for name, calls in unit.calls_by_callee.items():
                self.calls_by_callee[name].extend(calls)
            for hint, literals in unit.literals_by_hint.items():
                self.literals_by_hint[hint].extend(literals)

    @classmethod
    def build(cls, contexts: Iterable[UnitContext]) -> "SymbolIndex":
        return cls(UnitIndex(ctx) for ctx in contexts)

    @property
    def units(self) -> list[UnitIndex]:
        return list(self._units.values())

    def unit(self, path: str) -> UnitIndex:
        return self._units[path]

    def definitions(self, name: str) -> list[FunctionDef]:
        return list(self.functions.get(name, ()))

    def call_sites(self, callee: str) -> list[CallSite]:
        return list(self.calls_by_callee.get(callee, ()))

    def literals(self, hint: LiteralHint) -> list[LiteralOccurrence]:
        return list(self.literals_by_hint.get(hint, ()))

    def is_defined(self, name: str) -> bool:
        """True if some scanned unit defines name (the callee is not external)."""
        return name in self.functions

    @property
    def function_count(self) -> int:
        return sum(len(defs) for defs in self.functions.values())

    @property
    def call_count(self) -> int:
        return sum(len(calls) for calls in self.calls_by_callee.values())
