"""Expansion invocation boundary.

One bracketed fragment plus a container kind goes in; one generated function
definition (or an ExpansionError) comes out. Nothing is cached between calls, so
separate sites can be expanded independently and in any order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from collection_macros.core.expand.config import DEFAULT_CONFIG, ExpansionConfig
from collection_macros.core.expand.lower import Op, lower
from collection_macros.core.expand.render import render_function
from collection_macros.core.model import LiteralForm
from collection_macros.core.parse.recognize import recognize
from collection_macros.core.parse.tokenize import tokenize
from collection_macros.core.validate.duplicate_keys import check_identifier_map

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Expansion:
    kind: str
    form: LiteralForm
    ops: list[Op]
    function_name: str
    source: str

    @property
    def call(self) -> str:
        return f"{self.function_name}()"


def expand(
    kind: str,
    fragment: str,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
    name: Optional[str] = None,
    file: Optional[str] = None,
    indent: str = "",
) -> Expansion:
    """Recognize, validate and lower one fragment into a function definition.

    Raises ExpansionSyntaxError for malformed fragments, and DuplicateKeyError
    only when ``config.strict_identifier_keys`` is set. Bang-form sites inside
    the fragment are expanded too, as helpers nested in the generated one.
    """

    form = recognize(kind, fragment, range_sugar=config.range_sugar, file=file)
    check_identifier_map(form, strict=config.strict_identifier_keys, file=file)
    ops = lower(form, kind)

    function_name = name or f"{config.helper_prefix}_{kind}"
    reserved = {t.text for t in tokenize(fragment, file=file) if t.kind == "NAME"}
    reserved.add(function_name)
    source = render_function(ops, name=function_name, config=config, reserved=reserved, indent=indent)

    # Sites nested in opaque fragments are still raw; lower them inside this helper.
    from collection_macros.core.rewrite.rewrite_source import rewrite_source

    source = rewrite_source(source, config=config, file=file).source

    log.debug("fragment_expanded", kind=kind, form=type(form).__name__, function=function_name)
    return Expansion(kind=kind, form=form, ops=ops, function_name=function_name, source=source)


def evaluate(
    kind: str,
    fragment: str,
    namespace: Optional[dict[str, Any]] = None,
    *,
    config: ExpansionConfig = DEFAULT_CONFIG,
) -> Any:
    """Expand a fragment and run it against ``namespace``.

    The namespace is copied, so the caller's dict never sees the helper
    definition. Runtime errors from the generated code, DuplicateKeyError
    included, propagate unchanged.
    """

    expansion = expand(kind, fragment, config=config)
    scope: dict[str, Any] = dict(namespace or {})
    code = compile(expansion.source, f"<{kind}!>", "exec")
    exec(code, scope)
    return scope[expansion.function_name]()
