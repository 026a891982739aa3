from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional

import structlog

from collection_macros.core.errors import DuplicateKeyError
from collection_macros.core.model import Fragment, IdentifierMap, LiteralForm

log = structlog.get_logger(__name__)


def find_duplicate_keys(entries: Iterable[tuple[str, Fragment]]) -> list[str]:
    """Return identifier names that occur more than once, in order of first repeat."""
    seen: set[str] = set()
    dupes: list[str] = []
    for name, _ in entries:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


def check_identifier_map(
    form: LiteralForm,
    *,
    strict: bool = False,
    file: Optional[str] = None,
) -> list[str]:
    """Inspect an identifier-keyed map for repeated keys.

    Non-strict mode only reports: the generated code carries the runtime check
    and raises DuplicateKeyError when it runs. Strict mode raises here, at
    expansion time. Other forms pass through untouched.
    """

    if not isinstance(form, IdentifierMap):
        return []

    dupes = find_duplicate_keys(form.entries)
    if not dupes:
        return []

    if strict:
        raise DuplicateKeyError.for_key(dupes[0], file=file)

    counts = Counter(name for name, _ in form.entries)
    log.warning(
        "duplicate_identifier_keys",
        keys=dupes,
        counts={k: counts[k] for k in dupes},
        file=file,
    )
    return dupes
