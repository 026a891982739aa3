from __future__ import annotations

import keyword
from typing import Callable, Optional

import structlog

from collection_macros.core.errors import ExpansionSyntaxError
from collection_macros.core.model import (
    CONTAINER_KINDS,
    ComprehensionList,
    ComprehensionMap,
    Fragment,
    IdentifierMap,
    LiteralForm,
    PlainList,
    PlainMap,
)
from collection_macros.core.parse.tokenize import (
    OPEN_BRACKETS,
    Token,
    match_brackets,
    position,
    significant,
    tokenize,
)

log = structlog.get_logger(__name__)


# Grammar (";" separates the output clause from the generator clause):
#
#   list-literal       := '[' expr (',' expr)* ']'
#   list-comprehension := '[' expr ';' pattern 'in' expr ((',' | ';' 'if') guard)? ']'
#   map-literal        := '{' expr '=>' expr (',' expr '=>' expr)* '}'
#                       | '{' '(' expr ',' expr ')' (',' '(' expr ',' expr ')')* '}'
#   map-comprehension  := '{' expr '=>' expr ';' pattern 'in' expr ((',' | ';' 'if') guard)? '}'
#   identifier-map     := '{' ident ':' expr (',' ident ':' expr)* '}'
#
# Any bracket pair may delimit the fragment. Trailing commas are accepted.


class _Scanner:
    """Top-level delimiter search over one bracketed token list.

    Sub-expressions stay opaque: nested brackets are skipped whole through the
    pairs table, so delimiters inside them never split the outer region.
    """

    def __init__(self, text: str, tokens: list[Token], pairs: dict[int, int], file: Optional[str]):
        self.text = text
        self.tokens = tokens
        self.pairs = pairs
        self.file = file

    def find_all(self, lo: int, hi: int, pred: Callable[[Token], bool]) -> list[int]:
        out: list[int] = []
        i = lo
        while i < hi:
            tok = self.tokens[i]
            if pred(tok):
                out.append(i)
            if tok.kind == "OP" and tok.text in OPEN_BRACKETS:
                i = self.pairs[i] + 1
                continue
            i += 1
        return out

    def find_first(self, lo: int, hi: int, pred: Callable[[Token], bool]) -> Optional[int]:
        found = self.find_all(lo, hi, pred)
        return found[0] if found else None

    def split(self, lo: int, hi: int, pred: Callable[[Token], bool]) -> list[tuple[int, int]]:
        segments: list[tuple[int, int]] = []
        start = lo
        for i in self.find_all(lo, hi, pred):
            segments.append((start, i))
            start = i + 1
        segments.append((start, hi))
        return segments

    def fragment(self, lo: int, hi: int, *, what: str) -> Fragment:
        if lo >= hi:
            at = self.tokens[lo].start if lo < len(self.tokens) else len(self.text)
            raise self.error("E_EMPTY_CLAUSE", f"expected {what}, found nothing", at)
        start = self.tokens[lo].start
        text = self.text[start : self.tokens[hi - 1].end]
        grouped = "\n" in text or bool(self.find_all(lo, hi, lambda t: _is_op(t, ",") or _is_op(t, ":=")))
        return Fragment(text=text, offset=start, parenthesize=grouped)

    def error(self, code: str, message: str, at: int) -> ExpansionSyntaxError:
        return ExpansionSyntaxError(code=code, message=message, file=self.file, path=position(self.text, at))


def _is_op(tok: Token, text: str) -> bool:
    return tok.kind == "OP" and tok.text == text


def _is_name(tok: Token, text: str) -> bool:
    return tok.kind == "NAME" and tok.text == text


def _is_identifier(tok: Token) -> bool:
    return tok.kind == "NAME" and not keyword.iskeyword(tok.text)


def recognize(
    kind: str,
    fragment: str,
    *,
    range_sugar: bool = True,
    file: Optional[str] = None,
) -> LiteralForm:
    """Parse one bracketed fragment into a LiteralForm.

    ``kind`` is the invoking macro: list, map or iter. A leading ``kind!`` prefix
    is accepted and ignored. Raises ExpansionSyntaxError naming the expected
    construct when the fragment is malformed.
    """

    if kind not in CONTAINER_KINDS:
        raise ExpansionSyntaxError(
            code="E_UNKNOWN_KIND",
            message=f"unknown container kind: {kind} (choose one of: {', '.join(CONTAINER_KINDS)})",
            file=file,
            path="kind",
        )

    tokens = significant(tokenize(fragment, file=file))
    if len(tokens) >= 2 and tokens[0].kind == "NAME" and _is_op(tokens[1], "!"):
        if tokens[0].text != kind:
            raise ExpansionSyntaxError(
                code="E_UNSUPPORTED_FORM",
                message=f"{tokens[0].text}! fragment passed as kind {kind}",
                file=file,
                path=position(fragment, tokens[0].start),
            )
        tokens = tokens[2:]

    pairs = match_brackets(tokens, text=fragment, file=file)
    if not tokens or tokens[0].text not in OPEN_BRACKETS or pairs.get(0) != len(tokens) - 1:
        raise ExpansionSyntaxError(
            code="E_NOT_BRACKETED",
            message="expected one bracketed region: [...], {...} or (...)",
            file=file,
            path=position(fragment, tokens[0].start) if tokens else "1:1",
        )

    sc = _Scanner(fragment, tokens, pairs, file)
    lo, hi = 1, len(tokens) - 1
    if hi > lo and _is_op(tokens[hi - 1], ","):
        hi -= 1

    if lo == hi:
        if hi != len(tokens) - 1:
            raise sc.error("E_EMPTY_CLAUSE", "expected an entry before ','", tokens[hi].start)
        form: LiteralForm = PlainMap(entries=[]) if kind == "map" else PlainList(elements=[])
    else:
        semis = sc.find_all(lo, hi, lambda t: _is_op(t, ";"))
        if semis:
            form = _comprehension(sc, kind, lo, hi, semis, range_sugar)
        elif kind == "map":
            form = _map_literal(sc, lo, hi)
        else:
            form = _list_literal(sc, lo, hi)

    log.debug("fragment_recognized", kind=kind, form=type(form).__name__)
    return form


def _comprehension(
    sc: _Scanner, kind: str, lo: int, hi: int, semis: list[int], range_sugar: bool
) -> LiteralForm:
    tokens = sc.tokens
    if len(semis) > 2:
        raise sc.error("E_UNEXPECTED_TOKEN", "expected at most two ';' in a comprehension", tokens[semis[2]].start)

    head_hi = semis[0]
    arrows = sc.find_all(lo, head_hi, lambda t: _is_op(t, "=>"))
    if kind == "map":
        if len(arrows) != 1:
            at = tokens[arrows[1]].start if arrows else tokens[head_hi].start
            raise sc.error("E_EXPECTED_ARROW", "expected 'key => value' before ';'", at)
        key = sc.fragment(lo, arrows[0], what="a key expression before '=>'")
        value = sc.fragment(arrows[0] + 1, head_hi, what="a value expression after '=>'")
    elif arrows:
        raise sc.error("E_UNSUPPORTED_FORM", "'=>' is only valid in map comprehensions", tokens[arrows[0]].start)
    else:
        element = sc.fragment(lo, head_hi, what="an output expression before ';'")

    gen_lo = head_hi + 1
    gen_hi = semis[1] if len(semis) == 2 else hi
    in_idx = sc.find_first(gen_lo, gen_hi, lambda t: _is_name(t, "in"))
    if in_idx is None:
        at = tokens[gen_lo].start if gen_lo < gen_hi else tokens[gen_hi].start
        raise sc.error("E_EXPECTED_IN", "expected 'pattern in iterable' after ';'", at)
    pattern = sc.fragment(gen_lo, in_idx, what="a binding pattern before 'in'")

    guard: Optional[Fragment] = None
    if len(semis) == 2:
        iter_hi = gen_hi
        guard_lo = semis[1] + 1
        if guard_lo >= hi or not _is_name(tokens[guard_lo], "if"):
            at = tokens[guard_lo].start if guard_lo < hi else tokens[hi].start
            raise sc.error("E_EXPECTED_GUARD", "expected 'if guard' after the second ';'", at)
        guard = sc.fragment(guard_lo + 1, hi, what="a guard expression after 'if'")
    else:
        commas = sc.find_all(in_idx + 1, hi, lambda t: _is_op(t, ","))
        if len(commas) > 1:
            raise sc.error("E_UNEXPECTED_TOKEN", "expected a single guard after the iterable", tokens[commas[1]].start)
        iter_hi = commas[0] if commas else hi
        if commas:
            guard_lo = commas[0] + 1
            if guard_lo < hi and _is_name(tokens[guard_lo], "if"):
                guard_lo += 1
            guard = sc.fragment(guard_lo, hi, what="a guard expression after ','")

    iterable = _iterable(sc, in_idx + 1, iter_hi, range_sugar)

    if kind == "map":
        return ComprehensionMap(key=key, value=value, pattern=pattern, iterable=iterable, guard=guard)
    return ComprehensionList(element=element, pattern=pattern, iterable=iterable, guard=guard)


def _iterable(sc: _Scanner, lo: int, hi: int, range_sugar: bool) -> Fragment:
    iterable = sc.fragment(lo, hi, what="an iterable expression after 'in'")
    if not range_sugar:
        return iterable
    dots = sc.find_all(lo, hi, lambda t: t.kind == "OP" and t.text in ("..", "..="))
    if not dots:
        return iterable
    if len(dots) > 1:
        raise sc.error("E_UNEXPECTED_TOKEN", "expected a single range operator", sc.tokens[dots[1]].start)
    op = sc.tokens[dots[0]]
    start = sc.fragment(lo, dots[0], what=f"a range start before {op.text!r}")
    stop = sc.fragment(dots[0] + 1, hi, what=f"a range end after {op.text!r}")
    stop_text = f"({stop.text}) + 1" if op.text == "..=" else stop.text
    return Fragment(
        text=f"range({start.text}, {stop_text})",
        offset=iterable.offset,
        parenthesize=False,
    )


def _list_literal(sc: _Scanner, lo: int, hi: int) -> PlainList:
    elements: list[Fragment] = []
    for s_lo, s_hi in sc.split(lo, hi, lambda t: _is_op(t, ",")):
        arrow = sc.find_first(s_lo, s_hi, lambda t: _is_op(t, "=>"))
        if arrow is not None:
            raise sc.error("E_UNSUPPORTED_FORM", "'key => value' entries are only valid in map!", sc.tokens[arrow].start)
        if s_hi - s_lo >= 2 and _is_identifier(sc.tokens[s_lo]) and _is_op(sc.tokens[s_lo + 1], ":"):
            raise sc.error("E_UNSUPPORTED_FORM", "'ident: value' entries are only valid in map!", sc.tokens[s_lo].start)
        elements.append(sc.fragment(s_lo, s_hi, what="an expression"))
    return PlainList(elements=elements)


def _map_literal(sc: _Scanner, lo: int, hi: int) -> LiteralForm:
    tokens = sc.tokens
    segments = sc.split(lo, hi, lambda t: _is_op(t, ","))
    first_lo, first_hi = segments[0]

    if first_hi - first_lo >= 2 and _is_identifier(tokens[first_lo]) and _is_op(tokens[first_lo + 1], ":"):
        id_entries: list[tuple[str, Fragment]] = []
        for s_lo, s_hi in segments:
            if s_lo >= s_hi:
                raise sc.error("E_EMPTY_CLAUSE", "expected 'ident: value', found nothing", tokens[s_lo].start)
            if s_hi - s_lo < 2 or not _is_identifier(tokens[s_lo]) or not _is_op(tokens[s_lo + 1], ":"):
                raise sc.error("E_EXPECTED_IDENT_COLON", "expected 'ident: value'", tokens[s_lo].start)
            id_entries.append((tokens[s_lo].text, sc.fragment(s_lo + 2, s_hi, what="a value after ':'")))
        return IdentifierMap(entries=id_entries)

    has_arrow = any(sc.find_first(s_lo, s_hi, lambda t: _is_op(t, "=>")) is not None for s_lo, s_hi in segments)
    entries: list[tuple[Fragment, Fragment]] = []
    for s_lo, s_hi in segments:
        if s_lo >= s_hi:
            raise sc.error("E_EMPTY_CLAUSE", "expected a map entry, found nothing", tokens[s_lo].start)
        if has_arrow:
            arrows = sc.find_all(s_lo, s_hi, lambda t: _is_op(t, "=>"))
            if len(arrows) != 1:
                at = tokens[arrows[1]].start if arrows else tokens[s_lo].start
                raise sc.error("E_EXPECTED_ARROW", "expected 'key => value'", at)
            entries.append(
                (
                    sc.fragment(s_lo, arrows[0], what="a key before '=>'"),
                    sc.fragment(arrows[0] + 1, s_hi, what="a value after '=>'"),
                )
            )
        else:
            entries.append(_pair_entry(sc, s_lo, s_hi))
    return PlainMap(entries=entries)


def _pair_entry(sc: _Scanner, lo: int, hi: int) -> tuple[Fragment, Fragment]:
    tokens = sc.tokens
    if not (_is_op(tokens[lo], "(") and sc.pairs.get(lo) == hi - 1):
        raise sc.error(
            "E_EXPECTED_ARROW",
            "expected 'key => value', 'ident: value' or '(key, value)'",
            tokens[lo].start,
        )
    inner_lo, inner_hi = lo + 1, hi - 1
    if inner_hi > inner_lo and _is_op(tokens[inner_hi - 1], ","):
        inner_hi -= 1
    commas = sc.find_all(inner_lo, inner_hi, lambda t: _is_op(t, ","))
    if len(commas) != 1:
        raise sc.error("E_EXPECTED_ARROW", "expected a '(key, value)' pair", tokens[lo].start)
    return (
        sc.fragment(inner_lo, commas[0], what="a key before ','"),
        sc.fragment(commas[0] + 1, inner_hi, what="a value after ','"),
    )
