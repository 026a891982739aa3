from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union


ContainerKind = Literal["list", "map", "iter"]

CONTAINER_KINDS: tuple[str, ...] = ("list", "map", "iter")


@dataclass(frozen=True)
class Fragment:
    """Opaque source text, re-emitted verbatim.

    parenthesize is set when the text spans lines or has a top-level comma, so it
    must be grouped to stay a single expression.
    """

    text: str
    offset: int = 0
    parenthesize: bool = False


@dataclass(frozen=True)
class PlainList:
    elements: list[Fragment]


@dataclass(frozen=True)
class PlainMap:
    entries: list[tuple[Fragment, Fragment]]


@dataclass(frozen=True)
class ComprehensionList:
    element: Fragment
    pattern: Fragment
    iterable: Fragment
    guard: Optional[Fragment] = None


@dataclass(frozen=True)
class ComprehensionMap:
    key: Fragment
    value: Fragment
    pattern: Fragment
    iterable: Fragment
    guard: Optional[Fragment] = None


@dataclass(frozen=True)
class IdentifierMap:
    entries: list[tuple[str, Fragment]]


LiteralForm = Union[PlainList, PlainMap, ComprehensionList, ComprehensionMap, IdentifierMap]


def form_name(form: LiteralForm) -> str:
    return type(form).__name__
