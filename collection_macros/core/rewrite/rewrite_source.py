from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import structlog

from collection_macros.core.boundary import expand
from collection_macros.core.errors import ExpansionError, RewriteError
from collection_macros.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from collection_macros.core.model import CONTAINER_KINDS
from collection_macros.core.parse.recognize import recognize
from collection_macros.core.parse.tokenize import (
    CLOSE_BRACKETS,
    OPEN_BRACKETS,
    Token,
    match_brackets,
    position,
    tokenize,
)

log = structlog.get_logger(__name__)

# Clause headers that cannot have a definition inserted in front of them.
_CONTINUATION_KEYWORDS = {"elif", "else", "except", "finally"}
# Soft keyword; only a header when the line ends in a top-level ":".
_CASE = "case"
# Headers whose one-line body would lose its scope or clause if the helper went first.
_COMPOUND_HEADERS = {"def", "class", "for", "while", "if", "with", "try", "async"}
# A helper function would change what these mean.
_FORBIDDEN_IN_SITE = {"yield", "await"}


@dataclass(frozen=True)
class RewriteSite:
    kind: str
    function_name: str
    line: int


@dataclass(frozen=True)
class RewriteResult:
    source: str
    sites: list[RewriteSite]


@dataclass(frozen=True)
class _Site:
    kind: str
    name_index: int
    close_index: int


def rewrite_source(
    text: str,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
    file: Optional[str] = None,
) -> RewriteResult:
    """Replace every ``list![...]``, ``map!{...}`` and ``iter![...]`` site.

    Each site becomes a call to a generated helper, and the helper definition is
    inserted in front of the statement holding the site, at the same indentation.
    Sites nested in other sites are expanded along with the outer one, so their
    helpers are defined inside the outer helper's body.

    All sites are recognized against the original text first, so syntax errors
    report positions in the file as written.
    """

    site_lines = _precheck(text, config=config, file=file)

    taken = {t.text for t in tokenize(text, file=file) if t.kind == "NAME"}
    counters: dict[str, int] = {}
    sites: list[RewriteSite] = []

    while True:
        tokens = tokenize(text, file=file)
        pairs = match_brackets(tokens, text=text, file=file)
        site = _next_site(tokens, pairs)
        if site is None:
            break

        stmt_index = _statement_start(tokens, site.name_index)
        _check_site(tokens, pairs, stmt_index, site, text=text, file=file)

        stmt_tok = tokens[stmt_index]
        line_start = text.rfind("\n", 0, stmt_tok.start) + 1
        indent = text[line_start : stmt_tok.start]

        helper = _helper_name(site.kind, config, taken, counters)
        taken.add(helper)

        start = tokens[site.name_index].start
        end = tokens[site.close_index].end
        expansion = expand(site.kind, text[start:end], config=config, name=helper, file=file, indent=indent)

        line = site_lines[len(sites)]
        sites.append(RewriteSite(kind=site.kind, function_name=helper, line=line))
        log.info("site_rewritten", kind=site.kind, function=helper, line=line, file=file)

        text = text[:line_start] + expansion.source + text[line_start:start] + expansion.call + text[end:]

    return RewriteResult(source=text, sites=sites)


def _precheck(text: str, *, config: ExpansionConfig, file: Optional[str]) -> list[int]:
    """Recognize every site up front; return the line of each outermost one."""
    tokens = tokenize(text, file=file)
    pairs = match_brackets(tokens, text=text, file=file)
    lines: list[int] = []
    outer_end = -1
    for i, tok in enumerate(tokens):
        site = _site_at(tokens, pairs, i)
        if site is None:
            continue
        if tok.start >= outer_end:
            lines.append(text.count("\n", 0, tok.start) + 1)
            outer_end = tokens[site.close_index].end
        start, end = tok.start, tokens[site.close_index].end
        try:
            recognize(site.kind, text[start:end], range_sugar=config.range_sugar, file=file)
        except ExpansionError as e:
            raise replace(
                e,
                file=file,
                path=position(text, start),
                message=f"{e.message} (in {site.kind}! at {e.path})",
            ) from e
    return lines


def _site_at(tokens: list[Token], pairs: dict[int, int], i: int) -> Optional[_Site]:
    if i + 2 >= len(tokens):
        return None
    name, bang, opener = tokens[i], tokens[i + 1], tokens[i + 2]
    if name.kind != "NAME" or name.text not in CONTAINER_KINDS:
        return None
    if bang.kind != "OP" or bang.text != "!" or bang.start != name.end:
        return None
    if opener.kind != "OP" or opener.text not in OPEN_BRACKETS:
        return None
    if i > 0 and tokens[i - 1].kind == "OP" and tokens[i - 1].text == ".":
        return None
    return _Site(kind=name.text, name_index=i, close_index=pairs[i + 2])


def _next_site(tokens: list[Token], pairs: dict[int, int]) -> Optional[_Site]:
    for i in range(len(tokens)):
        site = _site_at(tokens, pairs, i)
        if site is not None:
            return site
    return None


def _statement_start(tokens: list[Token], index: int) -> int:
    """Index of the first token of the logical line holding ``tokens[index]``."""
    depth = 0
    start = 0
    for i in range(index):
        tok = tokens[i]
        if tok.kind == "OP" and tok.text in OPEN_BRACKETS:
            depth += 1
        elif tok.kind == "OP" and tok.text in CLOSE_BRACKETS:
            depth -= 1
        elif tok.kind == "NEWLINE" and depth == 0:
            start = i + 1
    while tokens[start].kind in ("NEWLINE", "COMMENT"):
        start += 1
    return start


def _check_site(
    tokens: list[Token],
    pairs: dict[int, int],
    stmt_index: int,
    site: _Site,
    *,
    text: str,
    file: Optional[str],
) -> None:
    site_tok = tokens[site.name_index]
    first = tokens[stmt_index]

    def unsupported(message: str, at: int = site_tok.start) -> RewriteError:
        return RewriteError(
            code="E_REWRITE_UNSUPPORTED_SITE",
            message=message,
            file=file,
            path=position(text, at),
        )

    if first.kind == "NAME" and (first.text in _CONTINUATION_KEYWORDS or _is_case_header(tokens, stmt_index)):
        raise unsupported(f"{site.kind}! cannot be expanded on an '{first.text}' line; move it to its own statement")

    depth = 0
    for tok in tokens[stmt_index : site.name_index]:
        if tok.kind == "OP" and tok.text in OPEN_BRACKETS:
            depth += 1
        elif tok.kind == "OP" and tok.text in CLOSE_BRACKETS:
            depth -= 1
        elif tok.kind == "NAME" and tok.text == "lambda":
            raise unsupported(f"{site.kind}! cannot be expanded inside a lambda")
        elif depth == 0 and tok.kind == "OP" and tok.text == ":" and first.text in _COMPOUND_HEADERS:
            raise unsupported(
                f"{site.kind}! cannot be expanded in the body of a one-line '{first.text}' statement; "
                "put the body on its own line"
            )

    for i in range(stmt_index, site.name_index):
        if pairs.get(i, -1) > site.close_index and _binds_loop_variable(tokens, pairs, i):
            raise unsupported(
                f"{site.kind}! cannot be expanded inside a comprehension or generator expression; "
                "bind it to a name outside first"
            )

    for tok in tokens[site.name_index : site.close_index]:
        if tok.kind == "NAME" and tok.text in _FORBIDDEN_IN_SITE:
            raise unsupported(f"'{tok.text}' is not allowed inside {site.kind}!", tok.start)


def _is_case_header(tokens: list[Token], stmt_index: int) -> bool:
    """True for ``case <pattern>:`` lines; ``case`` is also a valid plain name."""
    if tokens[stmt_index].text != _CASE or stmt_index + 1 >= len(tokens):
        return False
    after = tokens[stmt_index + 1]
    if after.kind == "NEWLINE" or (after.kind == "OP" and after.text in ("=", ":", ".")):
        return False
    depth = 0
    for tok in tokens[stmt_index + 1 :]:
        if tok.kind == "OP" and tok.text in OPEN_BRACKETS:
            depth += 1
        elif tok.kind == "OP" and tok.text in CLOSE_BRACKETS:
            depth -= 1
        elif depth == 0 and tok.kind == "NEWLINE":
            return False
        elif depth == 0 and tok.kind == "OP" and tok.text == ":":
            return True
    return False


def _binds_loop_variable(tokens: list[Token], pairs: dict[int, int], opener: int) -> bool:
    """Whether the bracketed region at ``opener`` is a comprehension at its own level."""
    i = opener + 1
    close = pairs[opener]
    while i < close:
        tok = tokens[i]
        if tok.kind == "OP" and tok.text in OPEN_BRACKETS:
            i = pairs[i] + 1
            continue
        if tok.kind == "NAME" and tok.text == "for":
            return True
        i += 1
    return False


def _helper_name(kind: str, config: ExpansionConfig, taken: set[str], counters: dict[str, int]) -> str:
    n = counters.get(kind, 0)
    while True:
        n += 1
        candidate = f"{config.helper_prefix}_{kind}_{n}"
        if candidate not in taken:
            counters[kind] = n
            return candidate
