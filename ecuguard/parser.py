# Lightweight structural parser: turn a token sequence into a shallow model of
# one unit (function definitions, call sites, declarations, assignments and
# literals). Brace/paren depth tracking only, no C grammar; unknown macros and
# odd declarators are skipped instead of failing the unit.

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ecuguard.findings.models import Diagnostic, DiagnosticKind
from ecuguard.tokenizer import Token, TokenKind

logger = logging.getLogger(__name__)

Span = tuple[int, int]
Scope = tuple[tuple[int, int], ...]

TYPE_KEYWORDS = frozenset(
    {
        "void", "char", "short", "int", "long", "float", "double", "signed",
        "unsigned", "_Bool", "bool", "const", "volatile", "static", "extern",
        "register", "auto", "struct", "union", "enum", "class", "inline",
        "restrict", "typename", "constexpr", "mutable",
    }
)
_TAG_KEYWORDS = frozenset({"struct", "union", "enum", "class"})
_QUALIFIERS = frozenset({"const", "volatile", "restrict"})
_PREFIX_KEYWORDS = frozenset({"else", "do", "return", "break", "continue"})
_CONTROL_KEYWORDS = frozenset({"if", "while", "switch", "for"})
_LOOP_KEYWORDS = frozenset({"while", "for"})
_SUFFIX_WORDS = frozenset({"const", "volatile", "noexcept", "throw", "override", "final"})
ASSIGNMENT_OPS = frozenset({"=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>="})
_SIGNIFICANT = frozenset(TokenKind) - {TokenKind.DIRECTIVE, TokenKind.UNKNOWN}


class LiteralHint(str, Enum):
    CREDENTIAL = "credential"
    KEY = "key"
    NUMERIC = "numeric"
    PLAIN = "plain"


@dataclass(frozen=True)
class Parameter:
    name: str
    type_text: str
    capacity: Optional[int]
    is_pointer: bool
    token: Token
    index: int


@dataclass(frozen=True)
class FunctionDef:
    """A function definition; body spans the opening brace to the closing one."""

    name: str
    parameters: tuple[Parameter, ...]
    body: Span
    token: Token
    index: int
    unit_path: str
    complete: bool = True

    def parameter(self, name: str) -> Optional[Parameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def contains(self, index: int) -> bool:
        return self.body[0] < index < self.body[1]


@dataclass(frozen=True)
class CallSite:
    callee: str
    arguments: tuple[Span, ...]
    function: Optional[FunctionDef]
    token: Token
    index: int
    close: int
    scope: Scope = ()

    @property
    def span(self) -> Span:
        return (self.index, self.close + 1)


@dataclass(frozen=True)
class VariableDecl:
    name: str
    type_text: str
    capacity: Optional[int]
    is_pointer: bool
    is_array: bool
    initializer: Optional[Span]
    function: Optional[FunctionDef]
    token: Token
    index: int

    @property
    def is_unbounded(self) -> bool:
        """True when no fixed capacity could be inferred (pointer, heap, complex declarator)."""
        return self.capacity is None


@dataclass(frozen=True)
class Assignment:
    target: str
    operator: str
    value: Span
    function: Optional[FunctionDef]
    token: Token
    index: int


@dataclass(frozen=True)
class LiteralOccurrence:
    value: str
    kind: TokenKind
    hint: LiteralHint
    assigned_to: Optional[str]
    function: Optional[FunctionDef]
    token: Token
    index: int
    end: int


@dataclass
class StructuralModel:
    path: str
    tokens: list[Token]
    functions: list[FunctionDef] = field(default_factory=list)
    calls: list[CallSite] = field(default_factory=list)
    decls: list[VariableDecl] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)
    literals: list[LiteralOccurrence] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


# --- literal helpers -------------------------------------------------------

_STRING_ESCAPE_RE = re.compile(r"\\(x[0-9a-fA-F]+|[0-7]{1,3}|.)")
_STRING_PREFIX_RE = re.compile(r'^(?:u8|u|U|L)?(["\'])(.*)\1$', re.DOTALL)


def unquote_c_literal(raw: str) -> Optional[str]:
    """Decode a C string/char literal body (best effort, not a full C lexer)."""
    m = _STRING_PREFIX_RE.match(raw.strip())
    if m is None:
        return None

    def repl(esc):
        ch = esc.group(1)
        if ch[0] == "x" and len(ch) > 1:
            return chr(int(ch[1:], 16) & 0xFF)
        if ch.isdigit():
            return chr(int(ch, 8) & 0xFF)
        return {
            "n": "\n",
            "t": "\t",
            "r": "\r",
            "\\": "\\",
            '"': '"',
            "'": "'",
            "0": "\0",
        }.get(ch, ch)

    return _STRING_ESCAPE_RE.sub(repl, m.group(2))


def parse_int_literal(text: str) -> Optional[int]:
    txt = text.lower().replace("'", "").rstrip("ul")
    try:
        if txt.startswith("0x"):
            return int(txt, 16)
        if txt.startswith("0b"):
            return int(txt, 2)
        if txt.startswith("0") and txt != "0":
            return int(txt, 8)
        return int(txt, 10)
    except ValueError:
        return None


_CREDENTIAL_NAME_RE = re.compile(
    r"pass(?:word|wd|phrase)?|pwd|(?:^|_)pin(?:_|$)|pincode|credential|login", re.IGNORECASE
)
_KEY_NAME_RE = re.compile(r"key|secret|token|seed|salt|api_?key", re.IGNORECASE)
_SIZE_NAME_RE = re.compile(
    r"(?:len|length|size|sz|count|cnt|idx|index|num|max|min|bits|id)$|^(?:num|n|max|min)_", re.IGNORECASE
)
_KEY_VALUE_RES = (
    re.compile(r"\b[0-9a-fA-F]{32,}\b"),
    re.compile(r"-----BEGIN [A-Z ]+-----"),
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
)


def classify_literal(kind: TokenKind, value: str, assigned_to: Optional[str]) -> LiteralHint:
    """
    Classify a literal as credential-like, key-like, numeric, or plain.

    Numbers assigned to a credential/key name (`char key = 0x42;`, the bytes
    of `uint8_t secoc_key[16] = {...}`) take the name's hint unless the name
    reads as a size or count (`key_len`, `num_keys`).
    """
    if kind is TokenKind.NUMBER:
        if assigned_to and not _SIZE_NAME_RE.search(assigned_to):
            if _CREDENTIAL_NAME_RE.search(assigned_to):
                return LiteralHint.CREDENTIAL
            if _KEY_NAME_RE.search(assigned_to):
                return LiteralHint.KEY
        return LiteralHint.NUMERIC
    if assigned_to:
        if _CREDENTIAL_NAME_RE.search(assigned_to):
            return LiteralHint.CREDENTIAL
        if _KEY_NAME_RE.search(assigned_to):
            return LiteralHint.KEY
    if any(pattern.search(value) for pattern in _KEY_VALUE_RES):
        return LiteralHint.KEY
    return LiteralHint.PLAIN


# --- token span helpers ----------------------------------------------------


def match_close(tokens: list[Token], index: int, end: Optional[int] = None) -> Optional[int]:
    """Return the index of the delimiter closing tokens[index], or None."""
    pairs = {"(": ")", "[": "]", "{": "}"}
    opener = tokens[index].text
    closer = pairs[opener]
    depth = 0
    stop = len(tokens) if end is None else end
    for k in range(index, stop):
        tok = tokens[k]
        if tok.kind is not TokenKind.PUNCTUATION:
            continue
        if tok.text == opener:
            depth += 1
        elif tok.text == closer:
            depth -= 1
            if depth == 0:
                return k
    return None


def split_top_level(tokens: list[Token], start: int, end: int, sep: str = ",") -> list[Span]:
    """Split tokens[start:end] at separators that are not nested in brackets."""
    parts: list[Span] = []
    depth = 0
    part_start = start
    for k in range(start, end):
        tok = tokens[k]
        if tok.is_op("(", "[", "{"):
            depth += 1
        elif tok.is_op(")", "]", "}"):
            depth = max(0, depth - 1)
        elif depth == 0 and tok.is_op(sep):
            parts.append((part_start, k))
            part_start = k + 1
    if part_start < end or parts:
        parts.append((part_start, end))
    return parts


def _is_cast_group(tokens: list[Token], start: int, close: int) -> bool:
    inner = tokens[start + 1 : close]
    if not inner:
        return False
    has_type = False
    for tok in inner:
        if tok.kind is TokenKind.KEYWORD and tok.text in TYPE_KEYWORDS:
            has_type = True
        elif tok.kind is TokenKind.IDENTIFIER:
            continue
        elif not tok.is_op("*", "&"):
            return False
    return has_type or inner[-1].is_op("*") or (len(inner) == 1 and inner[0].text.endswith("_t"))


def root_identifier(tokens: list[Token], start: int, end: int) -> Optional[int]:
    """
    Index of the identifier an lvalue-ish expression is rooted at.

    `&engine_control` -> engine_control, `(char*)msg->data` -> msg,
    `*p` -> p. Returns None when the expression starts with a call or a literal.
    """
    k = start
    while k < end:
        tok = tokens[k]
        if tok.is_op("("):
            close = match_close(tokens, k, end)
            if close is not None and _is_cast_group(tokens, k, close) and close + 1 < end:
                k = close + 1
                continue
            k += 1
            continue
        if tok.is_op("&", "*", "++", "--", "!", "-", "~"):
            k += 1
            continue
        if tok.kind is TokenKind.IDENTIFIER:
            if k + 1 < end and tokens[k + 1].is_op("("):
                return None
            return k
        return None
    return None


def is_field_name(tokens: list[Token], index: int) -> bool:
    """True if tokens[index] is the member part of `a.b` or `a->b`."""
    return index > 0 and tokens[index - 1].is_op(".", "->")


def sizeof_spans(tokens: list[Token], start: int, end: int) -> list[Span]:
    """Spans covered by `sizeof(...)` / `sizeof x` inside tokens[start:end]."""
    spans: list[Span] = []
    for k in range(start, end):
        tok = tokens[k]
        if tok.kind is TokenKind.KEYWORD and tok.text == "sizeof" and k + 1 < end:
            if tokens[k + 1].is_op("("):
                close = match_close(tokens, k + 1, end)
                spans.append((k, (close if close is not None else end - 1) + 1))
            else:
                spans.append((k, k + 2))
    return spans


# --- parser ----------------------------------------------------------------


def parse(tokens: Iterable[Token], path: str = "<unit>") -> StructuralModel:
    """
    Build the structural model of one unit.

    Structural anomalies are recorded as diagnostics on the model; they
    truncate the affected function only and never raise.
    """
    significant = [tok for tok in tokens if tok.kind in _SIGNIFICANT]
    model = StructuralModel(path=path, tokens=significant)
    _Parser(model).run()
    return model


class _Parser:
    def __init__(self, model: StructuralModel) -> None:
        self.model = model
        self.toks = model.tokens
        self.n = len(self.toks)

    def _diag(self, message: str, tok: Optional[Token] = None) -> None:
        logger.warning("%s: %s", self.model.path, message)
        self.model.diagnostics.append(
            Diagnostic(
                kind=DiagnosticKind.STRUCTURAL,
                message=message,
                path=self.model.path,
                line=tok.line if tok is not None else None,
            )
        )

    # -- file scope ---------------------------------------------------------

    def run(self) -> None:
        toks = self.toks
        i = 0
        stmt_start = 0
        transparent = 0
        while i < self.n:
            tok = toks[i]
            if tok.kind is TokenKind.IDENTIFIER and i + 1 < self.n and toks[i + 1].is_op("("):
                close = match_close(toks, i + 1)
                if close is None:
                    i = self._resync(i + 1)
                    self._diag(f"unbalanced parentheses after '{tok.text}'; skipped {self._skipped_to(i)}", tok)
                    stmt_start = i
                    continue
                body_open = self._after_declarator_suffix(close + 1)
                if body_open < self.n and toks[body_open].is_op("{") and not self._has_top_level_assign(stmt_start, i):
                    i = self._function(i, close, body_open)
                    stmt_start = i
                    continue
                i = close + 1
                continue
            if tok.is_op("{"):
                head = toks[stmt_start:i]
                if head and (head[0].text == "namespace" or (head[0].text == "extern" and len(head) == 2 and head[1].kind is TokenKind.STRING)):
                    transparent += 1
                    i += 1
                    stmt_start = i
                    continue
                close = match_close(toks, i)
                if close is None:
                    i = self._resync(i + 1)
                    self._diag(f"unbalanced braces at file scope; skipped {self._skipped_to(i)}", tok)
                    stmt_start = i
                    continue
                i = close + 1
                continue
            if tok.is_op("}"):
                if transparent:
                    transparent -= 1
                else:
                    self._diag("stray closing brace at file scope", tok)
                i += 1
                stmt_start = i
                continue
            if tok.is_op(";"):
                self._statement(stmt_start, i, None, ())
                stmt_start = i + 1
            i += 1

    def _after_declarator_suffix(self, k: int) -> int:
        """Skip `const`, `noexcept`, `__attribute__((...))` and similar after a parameter list."""
        toks = self.toks
        while k < self.n:
            tok = toks[k]
            if tok.text in _SUFFIX_WORDS or (tok.kind is TokenKind.IDENTIFIER and tok.text.startswith("__")):
                if k + 1 < self.n and toks[k + 1].is_op("("):
                    close = match_close(toks, k + 1)
                    if close is None:
                        return self.n
                    k = close + 1
                else:
                    k += 1
                continue
            return k
        return k

    def _has_top_level_assign(self, start: int, end: int) -> bool:
        return any(tok.is_op("=") for tok in self.toks[start:end])

    def _function(self, name_idx: int, params_close: int, body_open: int) -> int:
        toks = self.toks
        name_tok = toks[name_idx]
        params = self._parameters(name_idx + 1, params_close)
        body_end, complete = self._body_end(body_open)
        fdef = FunctionDef(
            name=name_tok.text,
            parameters=tuple(params),
            body=(body_open, body_end),
            token=name_tok,
            index=name_idx,
            unit_path=self.model.path,
            complete=complete,
        )
        self.model.functions.append(fdef)
        if not complete:
            self._diag(f"unbalanced braces in function '{fdef.name}'; analysis truncated", name_tok)
        self._body(fdef)
        return body_end + 1 if complete else body_end

    def _body_end(self, body_open: int) -> tuple[int, bool]:
        close = match_close(self.toks, body_open)
        if close is not None:
            return close, True
        # Resync at the next function header that starts a line.
        for k in range(body_open + 1, self.n):
            if self.toks[k].column == 1 and self._looks_like_header(k):
                return k, False
        return self.n, False

    def _resync(self, k: int) -> int:
        """Index to resume file-scope parsing at: the next column-1 function header, else past the next `;`."""
        for j in range(k, self.n):
            if self.toks[j].column == 1 and self._looks_like_header(j):
                return j
        for j in range(k, self.n):
            if self.toks[j].is_op(";"):
                return j + 1
        return self.n

    def _skipped_to(self, k: int) -> str:
        return f"to line {self.toks[k].line}" if k < self.n else "rest of unit"

    def _looks_like_header(self, k: int) -> bool:
        toks = self.toks
        j = k
        while j < self.n and j - k < 10:
            tok = toks[j]
            if tok.kind is TokenKind.IDENTIFIER and j + 1 < self.n and toks[j + 1].is_op("("):
                close = match_close(toks, j + 1)
                if close is None:
                    return False
                after = self._after_declarator_suffix(close + 1)
                return after < self.n and toks[after].is_op("{")
            if tok.kind in (TokenKind.KEYWORD, TokenKind.IDENTIFIER) or tok.is_op("*", "::", "&"):
                j += 1
                continue
            return False
        return False

    def _parameters(self, open_idx: int, close: int) -> list[Parameter]:
        params: list[Parameter] = []
        for start, end in split_top_level(self.toks, open_idx + 1, close):
            if start >= end or self.toks[start].text in ("void", "...") and end - start == 1:
                continue
            decl_start = self._split_type(start, end)
            if decl_start is None:
                continue
            type_text = self._text(start, decl_start)
            parsed = self._declarator(decl_start, end)
            if parsed is None:
                continue
            name_idx, is_pointer, capacity, is_array, _ = parsed
            params.append(
                Parameter(
                    name=self.toks[name_idx].text,
                    type_text=type_text,
                    capacity=capacity,
                    is_pointer=is_pointer or is_array and capacity is None,
                    token=self.toks[name_idx],
                    index=name_idx,
                )
            )
        return params

    # -- function bodies ----------------------------------------------------

    def _body(self, fdef: FunctionDef) -> None:
        toks = self.toks
        start, end = fdef.body[0] + 1, fdef.body[1]
        stack: list[list[int]] = [[fdef.body[0], 0]]
        paren = 0
        stmt_start = start
        k = start

        def scope() -> Scope:
            return tuple((o, s) for o, s in stack)

        while k < end:
            tok = toks[k]
            if tok.is_op("("):
                paren += 1
            elif tok.is_op(")"):
                paren = max(0, paren - 1)
            elif tok.is_op("{"):
                prev = toks[k - 1] if k > start else None
                if paren > 0 or (prev is not None and (prev.is_op("=", ",") or prev.text == "return")):
                    close = match_close(toks, k, end)
                    if close is not None:
                        k = close + 1
                        continue
                self._statement(stmt_start, k, fdef, scope())
                stack.append([k, 0])
                stmt_start = k + 1
                paren = 0
            elif tok.is_op("}"):
                self._statement(stmt_start, k, fdef, scope())
                if len(stack) > 1:
                    stack.pop()
                stmt_start = k + 1
                paren = 0
            elif tok.is_op(";") and paren == 0:
                self._statement(stmt_start, k, fdef, scope())
                stmt_start = k + 1
            elif tok.kind is TokenKind.KEYWORD and tok.text in ("case", "default") and paren == 0:
                self._statement(stmt_start, k, fdef, scope())
                stack[-1][1] += 1
                colon = k + 1
                while colon < end and not toks[colon].is_op(":"):
                    colon += 1
                k = colon + 1
                stmt_start = k
                continue
            k += 1
        self._statement(stmt_start, end, fdef, scope())

    # -- statements ---------------------------------------------------------

    def _statement(self, start: int, end: int, fn: Optional[FunctionDef], scope: Scope) -> None:
        start, scope = self._strip_prefix(start, end, fn, scope)
        if start >= end:
            return
        if self.toks[start].text == "typedef":
            return
        decl_start = self._split_type(start, end)
        if decl_start is not None:
            self._declaration(start, decl_start, end, fn, scope)
        else:
            self._expression(start, end, fn, scope)

    def _strip_prefix(
        self, start: int, end: int, fn: Optional[FunctionDef], scope: Scope
    ) -> tuple[int, Scope]:
        """
        Consume `else`, `return`, labels and control headers, parsing header contents.

        Returns where the remaining statement starts and the scope it runs in.
        Code that only runs on some paths gets a segment keyed by the keyword
        index: an `else` branch, a `while`/`for` header and body, and the body
        of an `if`/`switch` written without braces. The condition of a leading
        `if` and the body of a `do` keep the enclosing scope.
        """
        toks = self.toks
        while start < end:
            tok = toks[start]
            if tok.kind is TokenKind.KEYWORD and tok.text == "else":
                scope = scope + ((start, 0),)
                start += 1
                continue
            if tok.kind is TokenKind.KEYWORD and tok.text in _PREFIX_KEYWORDS:
                start += 1
                continue
            if tok.kind is TokenKind.KEYWORD and tok.text == "goto":
                return end, scope
            if (
                tok.kind is TokenKind.IDENTIFIER
                and start + 1 < end
                and toks[start + 1].is_op(":")
                and fn is not None
            ):
                start += 2
                continue
            if tok.kind is TokenKind.KEYWORD and tok.text in _CONTROL_KEYWORDS:
                if start + 1 >= end or not toks[start + 1].is_op("("):
                    return end, scope
                close = match_close(toks, start + 1, end)
                if close is None:
                    close = end
                branch = scope + ((start, 0),)
                if tok.text == "for":
                    parts = split_top_level(toks, start + 2, close, sep=";")
                    for n, (ps, pe) in enumerate(parts):
                        if n == 0:
                            self._statement(ps, pe, fn, branch)
                        else:
                            self._expression(ps, pe, fn, branch)
                elif tok.text in _LOOP_KEYWORDS:
                    self._expression(start + 2, close, fn, branch)
                else:
                    self._expression(start + 2, close, fn, scope)
                scope = branch
                start = close + 1
                continue
            break
        return start, scope

    def _split_type(self, start: int, end: int) -> Optional[int]:
        """Return the index where declarators begin, or None if not a declaration."""
        toks = self.toks
        k = start
        saw_type = False
        saw_keyword = False
        named = False
        while k < end:
            tok = toks[k]
            if tok.kind is TokenKind.KEYWORD and tok.text in TYPE_KEYWORDS:
                saw_type = saw_keyword = True
                k += 1
                if tok.text in _TAG_KEYWORDS:
                    if k < end and toks[k].kind is TokenKind.IDENTIFIER:
                        k += 1
                    if k < end and toks[k].is_op("{"):
                        close = match_close(toks, k, end)
                        if close is None:
                            return None
                        k = close + 1
                    named = True
                continue
            if tok.kind is TokenKind.IDENTIFIER and not named:
                j = k + 1
                while j + 1 < end and toks[j].is_op("::") and toks[j + 1].kind is TokenKind.IDENTIFIER:
                    j += 2
                m = j
                while m < end and (toks[m].is_op("*", "&", "&&") or toks[m].text in _QUALIFIERS):
                    m += 1
                if m < end and toks[m].kind is TokenKind.IDENTIFIER:
                    saw_type = named = True
                    k = j
                    continue
            break
        if not saw_type or k >= end:
            return None
        tok = toks[k]
        if tok.is_op("*", "&", "&&") or tok.kind is TokenKind.IDENTIFIER:
            return k
        if saw_keyword and tok.is_op("(") and k + 1 < end and toks[k + 1].is_op("*"):
            return k
        return None

    def _declarator(self, start: int, end: int) -> Optional[tuple[int, bool, Optional[int], bool, int]]:
        """Parse one declarator: (name index, pointer, capacity, array, index after)."""
        toks = self.toks
        j = start
        pointer = False
        while j < end and (toks[j].is_op("*", "&", "&&") or toks[j].text in _QUALIFIERS):
            pointer = pointer or toks[j].is_op("*")
            j += 1
        if j < end and toks[j].kind is TokenKind.IDENTIFIER:
            name_idx = j
            j += 1
        elif j + 2 < end and toks[j].is_op("(") and toks[j + 1].is_op("*") and toks[j + 2].kind is TokenKind.IDENTIFIER:
            name_idx = j + 2
            pointer = True
            close = match_close(toks, j, end)
            j = end if close is None else close + 1
            if j < end and toks[j].is_op("("):
                close = match_close(toks, j, end)
                j = end if close is None else close + 1
        else:
            return None
        dims: list[Optional[int]] = []
        while j < end and toks[j].is_op("["):
            close = match_close(toks, j, end)
            if close is None:
                return None
            if close == j + 2 and toks[j + 1].kind is TokenKind.NUMBER:
                dims.append(parse_int_literal(toks[j + 1].text))
            else:
                dims.append(None)
            j = close + 1
        capacity = dims[0] if len(dims) == 1 else None
        return name_idx, pointer, capacity, bool(dims), j

    def _declaration(self, start: int, decl_start: int, end: int, fn: Optional[FunctionDef], scope: Scope) -> None:
        toks = self.toks
        type_text = self._text(start, decl_start)
        targets: list[tuple[Span, str]] = []
        for ps, pe in split_top_level(toks, decl_start, end):
            if ps >= pe:
                continue
            parsed = self._declarator(ps, pe)
            if parsed is None:
                self._diag(f"unparsable declarator '{self._text(ps, pe)}' skipped", toks[ps])
                continue
            name_idx, pointer, capacity, is_array, j = parsed
            if j < pe and toks[j].is_op("("):
                # Function prototype, not a variable.
                continue
            init: Optional[Span] = None
            if j < pe and toks[j].is_op("="):
                init = (j + 1, pe)
            name_tok = toks[name_idx]
            self.model.decls.append(
                VariableDecl(
                    name=name_tok.text,
                    type_text=type_text,
                    capacity=capacity,
                    is_pointer=pointer,
                    is_array=is_array,
                    initializer=init,
                    function=fn,
                    token=name_tok,
                    index=name_idx,
                )
            )
            if init is not None:
                self.model.assignments.append(
                    Assignment(name_tok.text, "=", init, fn, name_tok, name_idx)
                )
                targets.append((init, name_tok.text))
        # Only initializers can hold calls; a prototype's parameter list is not one.
        for init, _ in targets:
            self._calls(init[0], init[1], fn, scope)
        self._literals(start, end, fn, targets)

    def _expression(self, start: int, end: int, fn: Optional[FunctionDef], scope: Scope) -> None:
        toks = self.toks
        targets: list[tuple[Span, str]] = []
        for ps, pe in split_top_level(toks, start, end):
            depth = 0
            for a in range(ps, pe):
                tok = toks[a]
                if tok.is_op("(", "["):
                    depth += 1
                elif tok.is_op(")", "]"):
                    depth -= 1
                elif depth == 0 and tok.kind is TokenKind.OPERATOR and tok.text in ASSIGNMENT_OPS:
                    root = root_identifier(toks, ps, a)
                    if root is not None:
                        value = (a + 1, pe)
                        self.model.assignments.append(
                            Assignment(toks[root].text, tok.text, value, fn, toks[root], root)
                        )
                        targets.append((value, toks[root].text))
                    break
        self._calls(start, end, fn, scope)
        self._literals(start, end, fn, targets)

    def _calls(self, start: int, end: int, fn: Optional[FunctionDef], scope: Scope) -> None:
        toks = self.toks
        for k in range(start, end - 1):
            tok = toks[k]
            if tok.kind is not TokenKind.IDENTIFIER or not toks[k + 1].is_op("("):
                continue
            close = match_close(toks, k + 1, end)
            if close is None:
                close = end - 1
                args = split_top_level(toks, k + 2, end)
            else:
                args = split_top_level(toks, k + 2, close)
            self.model.calls.append(
                CallSite(
                    callee=tok.text,
                    arguments=tuple(span for span in args if span[0] < span[1]),
                    function=fn,
                    token=tok,
                    index=k,
                    close=close,
                    scope=scope,
                )
            )

    def _literals(self, start: int, end: int, fn: Optional[FunctionDef], targets: list[tuple[Span, str]]) -> None:
        toks = self.toks
        k = start
        while k < end:
            tok = toks[k]
            if tok.kind not in (TokenKind.STRING, TokenKind.CHAR, TokenKind.NUMBER):
                k += 1
                continue
            first = k
            if tok.kind is TokenKind.STRING:
                parts = []
                while k < end and toks[k].kind is TokenKind.STRING:
                    parts.append(unquote_c_literal(toks[k].text) or "")
                    k += 1
                value = "".join(parts)
            elif tok.kind is TokenKind.CHAR:
                value = unquote_c_literal(tok.text) or ""
                k += 1
            else:
                value = tok.text
                k += 1
            assigned_to = self._assigned_to(first, targets)
            self.model.literals.append(
                LiteralOccurrence(
                    value=value,
                    kind=tok.kind,
                    hint=classify_literal(tok.kind, value, assigned_to),
                    assigned_to=assigned_to,
                    function=fn,
                    token=tok,
                    index=first,
                    end=k,
                )
            )

    def _assigned_to(self, index: int, targets: list[tuple[Span, str]]) -> Optional[str]:
        """Name a literal is directly assigned to, if its value expression makes no calls."""
        for (vs, ve), name in targets:
            if vs <= index < ve:
                calls = any(
                    self.toks[k].kind is TokenKind.IDENTIFIER and self.toks[k + 1].is_op("(")
                    for k in range(vs, ve - 1)
                )
                return None if calls else name
        return None

    def _text(self, start: int, end: int) -> str:
        return " ".join(tok.text for tok in self.toks[start:end])
