from __future__ import annotations

from collection_macros.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from collection_macros.core.expand.lower import (
    KEY_SLOT,
    Allocate,
    Append,
    Evaluate,
    ForEach,
    Insert,
    InsertUnique,
    Op,
    SkipUnless,
    Yield,
)
from collection_macros.core.model import Fragment


ERRORS_MODULE = "collection_macros.core.errors"


def render_function(
    ops: list[Op],
    *,
    name: str,
    config: ExpansionConfig = DEFAULT_CONFIG,
    reserved: set[str] | None = None,
    indent: str = "",
) -> str:
    """Render ops as a Python function definition named ``name``.

    A sequence or mapping is built in a local accumulator and returned; ops
    without an Allocate render as a generator. Local names avoid everything in
    ``reserved`` (the names used by the fragments). ``indent`` prefixes each
    emitted statement line; text inside multi-line fragments is left alone.
    """

    taken = set(reserved or ())
    acc = _unique_name(f"{config.helper_prefix}_acc", taken)
    taken.add(acc)
    slots = {KEY_SLOT: _unique_name(f"{config.helper_prefix}_key", taken)}
    taken.add(slots[KEY_SLOT])
    error_name = _unique_name("DuplicateKeyError", taken)

    pad = " " * config.indent
    body: list[str] = []
    if _contains(ops, InsertUnique):
        alias = "" if error_name == "DuplicateKeyError" else f" as {error_name}"
        body.append(f"from {ERRORS_MODULE} import DuplicateKeyError{alias}")

    is_generator = not any(isinstance(op, Allocate) for op in ops)
    _emit(ops, body, depth=0, pad=pad, acc=acc, slots=slots, error_name=error_name)

    if is_generator:
        if not ops:
            body.append("yield from ()")
    else:
        body.append(f"return {acc}")

    lines = [f"{indent}def {name}():"] + [indent + pad + line for line in body]
    return "\n".join(lines) + "\n"


def _emit(
    ops: list[Op],
    out: list[str],
    *,
    depth: int,
    pad: str,
    acc: str,
    slots: dict[str, str],
    error_name: str,
) -> None:
    ind = pad * depth
    for op in ops:
        if isinstance(op, Allocate):
            out.append(f"{ind}{acc} = {'[]' if op.container == 'sequence' else '{}'}")
        elif isinstance(op, ForEach):
            out.append(f"{ind}for {_expr(op.pattern)} in {_expr(op.iterable)}:")
            _emit(op.body, out, depth=depth + 1, pad=pad, acc=acc, slots=slots, error_name=error_name)
        elif isinstance(op, SkipUnless):
            out.append(f"{ind}if not ({op.guard.text}):")
            out.append(f"{ind}{pad}continue")
        elif isinstance(op, Evaluate):
            out.append(f"{ind}{slots[op.target]} = {_expr(op.expr)}")
        elif isinstance(op, Append):
            out.append(f"{ind}{acc}.append({_expr(op.value)})")
        elif isinstance(op, Yield):
            out.append(f"{ind}yield {_expr(op.value)}")
        elif isinstance(op, Insert):
            out.append(f"{ind}{acc}[{slots[op.key]}] = {_expr(op.value)}")
        elif isinstance(op, InsertUnique):
            key = slots[op.key]
            out.append(f"{ind}if {key} in {acc}:")
            out.append(f"{ind}{pad}raise {error_name}.for_key({key})")
            out.append(f"{ind}{acc}[{key}] = {_expr(op.value)}")


def _expr(fragment: Fragment) -> str:
    if fragment.parenthesize:
        return f"({fragment.text})"
    return fragment.text


def _contains(ops: list[Op], op_type: type) -> bool:
    for op in ops:
        if isinstance(op, op_type):
            return True
        if isinstance(op, ForEach) and _contains(op.body, op_type):
            return True
    return False


def _unique_name(base: str, taken: set[str]) -> str:
    if base not in taken:
        return base
    n = 2
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"
