# Per-unit analysis context: the source unit, its tokens and structural model,
# plus helpers for locations and evidence snippets. One context lives for one
# scan pass and is never shared between units.

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from ecuguard.findings.models import SNIPPET_MAX_LENGTH
from ecuguard.parser import StructuralModel, parse
from ecuguard.tokenizer import Token, tokenize

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class SourceUnit:
    """One translation unit handed to the engine: a logical path and its text."""

    path: str
    text: str

    @classmethod
    def from_bytes(cls, path: str, data: bytes) -> "SourceUnit":
        """Decode raw bytes with errors="replace" so bad UTF-8 does not crash."""
        return cls(path=path, text=data.decode("utf-8", errors="replace"))


class UnitContext:
    """
    Per-unit state for static analysis: the unit, its significant tokens and
    its structural model.

    Rules use context.tokens and context.model. Use get_source_span() and
    get_line_col() for locations and snippets.
    """

    def __init__(self, unit: SourceUnit, model: StructuralModel) -> None:
        self.unit = unit
        self.model = model

    @property
    def path(self) -> str:
        return self.unit.path

    @property
    def tokens(self) -> list[Token]:
        return self.model.tokens

    @property
    def has_parse_errors(self) -> bool:
        return bool(self.model.diagnostics)


def get_source_span(context: UnitContext, start: int, end: int, max_length: int = SNIPPET_MAX_LENGTH) -> str:
    """
    Render tokens[start:end] back to source text, whitespace collapsed.

    The result is truncated to max_length characters (with a trailing "...").
    """
    tokens = context.tokens
    if start >= end or start >= len(tokens):
        return ""
    end = min(end, len(tokens))
    text = context.unit.text[tokens[start].start : tokens[end - 1].end]
    text = _WHITESPACE_RE.sub(" ", text).strip()
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


def get_line_col(token: Token) -> tuple[int, int]:
    """Return the 1-based (line, column) of a token."""
    return token.line, token.column


def count_model_stats(model: StructuralModel) -> tuple[int, int, int]:
    """Return (token count, function count, call count) for a model."""
    return len(model.tokens), len(model.functions), len(model.calls)


def create_context(unit: SourceUnit) -> UnitContext:
    """
    Tokenize and parse one unit into a UnitContext.

    Malformed C still yields a context; structural problems are recorded as
    diagnostics on the model and logged.
    """
    model = parse(tokenize(unit.text), path=unit.path)
    tokens, functions, calls = count_model_stats(model)
    logger.debug(
        "Parsed %s: %d tokens, %d function(s), %d call(s)%s",
        unit.path,
        tokens,
        functions,
        calls,
        " (with structural diagnostics)" if model.diagnostics else "",
    )
    return UnitContext(unit=unit, model=model)


def load_contexts(units: Iterable[SourceUnit]) -> list[UnitContext]:
    """Build contexts for several units, in input order."""
    return [create_context(unit) for unit in units]
