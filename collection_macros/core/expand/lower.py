from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from collection_macros.core.model import (
    ComprehensionList,
    ComprehensionMap,
    Fragment,
    IdentifierMap,
    LiteralForm,
    PlainList,
    PlainMap,
)


ContainerShape = Literal["sequence", "mapping"]

# Symbolic slot for the evaluated key; the renderer picks the real local name.
KEY_SLOT = "key"


@dataclass(frozen=True)
class Allocate:
    container: ContainerShape


@dataclass(frozen=True)
class ForEach:
    pattern: Fragment
    iterable: Fragment
    body: list["Op"] = field(default_factory=list)


@dataclass(frozen=True)
class SkipUnless:
    guard: Fragment


@dataclass(frozen=True)
class Evaluate:
    target: str
    expr: Fragment


@dataclass(frozen=True)
class Append:
    value: Fragment


@dataclass(frozen=True)
class Yield:
    value: Fragment


@dataclass(frozen=True)
class Insert:
    key: str
    value: Fragment


@dataclass(frozen=True)
class InsertUnique:
    key: str
    value: Fragment


Op = Union[Allocate, ForEach, SkipUnless, Evaluate, Append, Yield, Insert, InsertUnique]


def lower(form: LiteralForm, kind: str) -> list[Op]:
    """Turn a LiteralForm into imperative construction ops.

    Source order is kept and each fragment appears at exactly one use site, so
    every sub-expression is evaluated once per element. Map keys are evaluated
    before values. Lowering a recognized form cannot fail.

    The ``iter`` kind lowers list forms to ``Yield`` without an allocation,
    giving a generator instead of a container.
    """

    lazy = kind == "iter"

    if isinstance(form, PlainList):
        emit = Yield if lazy else Append
        ops: list[Op] = [] if lazy else [Allocate("sequence")]
        ops.extend(emit(e) for e in form.elements)
        return ops

    if isinstance(form, ComprehensionList):
        inner: Op = Yield(form.element) if lazy else Append(form.element)
        loop = ForEach(form.pattern, form.iterable, _guarded(form.guard, [inner]))
        return [loop] if lazy else [Allocate("sequence"), loop]

    if isinstance(form, PlainMap):
        ops = [Allocate("mapping")]
        for key, value in form.entries:
            ops.extend([Evaluate(KEY_SLOT, key), Insert(KEY_SLOT, value)])
        return ops

    if isinstance(form, ComprehensionMap):
        body: list[Op] = [Evaluate(KEY_SLOT, form.key), Insert(KEY_SLOT, form.value)]
        return [Allocate("mapping"), ForEach(form.pattern, form.iterable, _guarded(form.guard, body))]

    if isinstance(form, IdentifierMap):
        ops = [Allocate("mapping")]
        for name, value in form.entries:
            ops.extend([Evaluate(KEY_SLOT, Fragment(text=repr(name))), InsertUnique(KEY_SLOT, value)])
        return ops

    raise TypeError(f"not a literal form: {form!r}")  # pragma: no cover


def _guarded(guard: Optional[Fragment], body: list[Op]) -> list[Op]:
    if guard is None:
        return body
    return [SkipUnless(guard), *body]


def ops_to_dicts(ops: list[Op]) -> list[dict[str, Any]]:
    """Plain-data view of ops, for JSON output."""
    out: list[dict[str, Any]] = []
    for op in ops:
        item: dict[str, Any] = {"op": type(op).__name__}
        if isinstance(op, Allocate):
            item["container"] = op.container
        elif isinstance(op, ForEach):
            item["pattern"] = op.pattern.text
            item["iterable"] = op.iterable.text
            item["body"] = ops_to_dicts(op.body)
        elif isinstance(op, SkipUnless):
            item["guard"] = op.guard.text
        elif isinstance(op, Evaluate):
            item["target"] = op.target
            item["expr"] = op.expr.text
        elif isinstance(op, (Append, Yield)):
            item["value"] = op.value.text
        else:
            item["key"] = op.key
            item["value"] = op.value.text
        out.append(item)
    return out
