from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional

from collection_macros.core.errors import ExpansionSyntaxError


TokenKind = Literal["NAME", "NUMBER", "STRING", "OP", "NEWLINE", "COMMENT"]

OPEN_BRACKETS: dict[str, str] = {"(": ")", "[": "]", "{": "}"}
CLOSE_BRACKETS: dict[str, str] = {v: k for k, v in OPEN_BRACKETS.items()}


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    start: int
    end: int


_STRING_PREFIX = r"(?:[rR][bBfF]?|[bBfF][rR]?|[uU])?"

# Longest operators first; "..." must win over "..".
_OPERATORS = [
    "...", "..=", "**=", "//=", ">>=", "<<=",
    "=>", "->", ":=", "==", "!=", "<=", ">=", "**", "//", "<<", ">>",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "@=", "..",
]

_TOKEN_RE = re.compile(
    "|".join(
        [
            r"(?P<WS>[ \t\f]+|\\\r?\n)",
            r"(?P<NEWLINE>\r?\n)",
            r"(?P<COMMENT>#[^\r\n]*)",
            r"(?P<STRING>" + _STRING_PREFIX + r"(?:'''(?:[^\\]|\\.)*?'''"
            r'|"""(?:[^\\]|\\.)*?"""'
            r"|'(?:[^'\\\r\n]|\\.)*'"
            r'|"(?:[^"\\\r\n]|\\.)*"))',
            r"(?P<NUMBER>0[xXoObB][0-9a-fA-F_]+|\d[\d_]*(?:\.\d[\d_]*)?(?:[eE][+-]?\d[\d_]*)?[jJ]?)",
            r"(?P<NAME>[^\W\d]\w*)",
            r"(?P<OP>" + "|".join(re.escape(op) for op in _OPERATORS) + r"|[\[\](){}.,:;=+\-*/%<>!~^&|@])",
        ]
    ),
    re.DOTALL,
)


def tokenize(text: str, *, file: Optional[str] = None) -> list[Token]:
    """Split source text into tokens.

    Whitespace and backslash continuations are dropped; newlines and comments are
    kept so callers can find statement boundaries. Offsets index into ``text``.
    """

    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            ch = text[pos]
            if ch in "'\"":
                raise ExpansionSyntaxError(
                    code="E_UNTERMINATED_STRING",
                    message="string literal is never closed",
                    file=file,
                    path=position(text, pos),
                )
            raise ExpansionSyntaxError(
                code="E_BAD_TOKEN",
                message=f"unexpected character {ch!r}",
                file=file,
                path=position(text, pos),
            )
        kind = m.lastgroup
        if kind != "WS":
            tokens.append(Token(kind=kind, text=m.group(), start=m.start(), end=m.end()))  # type: ignore[arg-type]
        pos = m.end()
    return tokens


def position(text: str, offset: int) -> str:
    """Render an offset as ``line:col`` (both 1-based)."""
    line = text.count("\n", 0, offset) + 1
    col = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return f"{line}:{col}"


def significant(tokens: list[Token]) -> list[Token]:
    """Tokens that matter inside a bracketed region (no comments or newlines)."""
    return [t for t in tokens if t.kind not in ("NEWLINE", "COMMENT")]


def match_brackets(tokens: list[Token], *, text: str, file: Optional[str] = None) -> dict[int, int]:
    """Map the index of every opening bracket token to its closing partner.

    Uses an explicit stack; raises E_UNBALANCED on a stray or mismatched closer or
    an unclosed opener.
    """

    pairs: dict[int, int] = {}
    stack: list[int] = []
    for i, tok in enumerate(tokens):
        if tok.kind != "OP":
            continue
        if tok.text in OPEN_BRACKETS:
            stack.append(i)
        elif tok.text in CLOSE_BRACKETS:
            if not stack or tokens[stack[-1]].text != CLOSE_BRACKETS[tok.text]:
                raise ExpansionSyntaxError(
                    code="E_UNBALANCED",
                    message=f"unexpected closing {tok.text!r}",
                    file=file,
                    path=position(text, tok.start),
                )
            pairs[stack.pop()] = i
    if stack:
        opener = tokens[stack[-1]]
        raise ExpansionSyntaxError(
            code="E_UNBALANCED",
            message=f"{opener.text!r} is never closed (expected {OPEN_BRACKETS[opener.text]!r})",
            file=file,
            path=position(text, opener.start),
        )
    return pairs
