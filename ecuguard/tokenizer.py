# Lexical scanner: turn C/C++ source text into positioned tokens.
# Comments are dropped, everything else keeps exact offsets and 1-based
# line/column so later stages can report precise locations.

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class TokenKind(str, Enum):
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    STRING = "string"
    CHAR = "char"
    NUMBER = "number"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    DIRECTIVE = "directive"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Token:
    """
    A single lexical token.

    start/end index characters of the unit text; byte_start is the UTF-8
    byte offset of the first character, which is what findings report.
    """

    kind: TokenKind
    text: str
    start: int
    end: int
    line: int
    column: int
    byte_start: int

    def is_op(self, *texts: str) -> bool:
        return self.kind in (TokenKind.OPERATOR, TokenKind.PUNCTUATION) and self.text in texts


KEYWORDS = frozenset(
    {
        "auto", "break", "case", "char", "const", "continue", "default", "do",
        "double", "else", "enum", "extern", "float", "for", "goto", "if",
        "inline", "int", "long", "register", "restrict", "return", "short",
        "signed", "sizeof", "static", "struct", "switch", "typedef", "union",
        "unsigned", "void", "volatile", "while", "_Bool", "_Static_assert",
        "_Alignof", "_Alignas", "_Noreturn", "_Thread_local",
        # C++
        "bool", "catch", "class", "const_cast", "constexpr", "decltype",
        "delete", "dynamic_cast", "explicit", "friend", "mutable", "namespace",
        "new", "noexcept", "nullptr", "operator", "private", "protected",
        "public", "reinterpret_cast", "static_assert", "static_cast",
        "template", "this", "throw", "try", "typename", "using", "virtual",
    }
)

# Longest operators first so the alternation is greedy in the right order.
_OPERATORS = [
    ">>=", "<<=", "...", "->*",
    "->", "++", "--", "<<", ">>", "<=", ">=", "==", "!=", "&&", "||",
    "+=", "-=", "*=", "/=", "%=", "&=", "^=", "|=", "::", "##",
    "+", "-", "*", "/", "%", "&", "|", "^", "~", "!", "<", ">", "=", "?",
    ":", ".", "#",
]

_TOKEN_RE = re.compile(
    r"""
    (?P<newline>\r?\n)
  | (?P<space>[ \t\f\v\r]+)
  | (?P<splice>\\\r?\n)
  | (?P<block_comment>/\*[\s\S]*?(?:\*/|\Z))
  | (?P<line_comment>//(?:\\\r?\n|[^\n])*)
  | (?P<string>(?:u8|u|U|L)?"(?:\\.|[^"\\\n])*")
  | (?P<char>(?:u8|u|U|L)?'(?:\\.|[^'\\\n])*')
  | (?P<number>\.?[0-9](?:[eEpP][+-]|[A-Za-z0-9_.'])*)
  | (?P<identifier>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<operator>"""
    + "|".join(re.escape(op) for op in _OPERATORS)
    + r""")
  | (?P<punctuation>[()\[\]{};,])
    """,
    re.VERBOSE,
)

_DIRECTIVE_RE = re.compile(r"#(?:\\\r?\n|[^\n])*")


class TokenStream:
    """
    Restartable, lazy token sequence for one unit of text.

    Every iteration re-scans the text from the beginning, so the stream can be
    consumed any number of times and always yields the same tokens.
    """

    def __init__(self, text: str) -> None:
        self.text = text

    def __iter__(self) -> Iterator[Token]:
        return iter_tokens(self.text)

    def __repr__(self) -> str:
        return f"TokenStream(len={len(self.text)})"


def tokenize(text: str) -> TokenStream:
    """Return a restartable token sequence for text. Never raises."""
    return TokenStream(text)


def iter_tokens(text: str) -> Iterator[Token]:
    """
    Yield tokens for text in order.

    Unrecognised characters and unterminated string/char literals become
    UNKNOWN tokens instead of aborting.
    """
    pos = 0
    byte_pos = 0
    line = 1
    line_start = 0
    at_line_start = True
    length = len(text)

    while pos < length:
        # Preprocessor directive: '#' as the first non-blank on a line.
        m = _DIRECTIVE_RE.match(text, pos) if at_line_start and text[pos] == "#" else None
        if m is not None:
            value = m.group(0)
            yield Token(TokenKind.DIRECTIVE, value, pos, m.end(), line, pos - line_start + 1, byte_pos)
            line, line_start = _advance_lines(value, pos, line, line_start)
            byte_pos += _utf8_len(value)
            pos = m.end()
            continue

        m = _TOKEN_RE.match(text, pos)
        if m is None:
            end = _unknown_end(text, pos)
            value = text[pos:end]
            yield Token(TokenKind.UNKNOWN, value, pos, end, line, pos - line_start + 1, byte_pos)
            at_line_start = False
            byte_pos += _utf8_len(value)
            pos = end
            continue

        group = m.lastgroup
        value = m.group(0)
        column = pos - line_start + 1

        if group == "newline":
            line += 1
            line_start = m.end()
            at_line_start = True
        elif group in ("space", "splice"):
            if group == "splice":
                line += 1
                line_start = m.end()
        elif group in ("block_comment", "line_comment"):
            line, line_start = _advance_lines(value, pos, line, line_start)
        else:
            kind = TokenKind(group)
            if kind is TokenKind.IDENTIFIER and value in KEYWORDS:
                kind = TokenKind.KEYWORD
            yield Token(kind, value, pos, m.end(), line, column, byte_pos)
            at_line_start = False
        byte_pos += _utf8_len(value)
        pos = m.end()


def _utf8_len(value: str) -> int:
    # surrogatepass: lone surrogates in str input must not make the lexer raise.
    return len(value.encode("utf-8", "surrogatepass"))


def _advance_lines(value: str, pos: int, line: int, line_start: int) -> tuple[int, int]:
    """Return the (line, line_start) after consuming value starting at pos."""
    newlines = value.count("\n")
    if newlines:
        line += newlines
        line_start = pos + value.rfind("\n") + 1
    return line, line_start


def _unknown_end(text: str, pos: int) -> int:
    """End offset for an UNKNOWN token starting at pos."""
    if text[pos] in "\"'":
        # Unterminated literal: swallow the rest of the line.
        newline = text.find("\n", pos)
        return len(text) if newline == -1 else newline
    return pos + 1
