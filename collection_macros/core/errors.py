from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExpansionError(Exception):
    """Base error envelope. The CLI prints these instead of tracebacks."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<fragment>"
        return f"{loc}: {self.code}: {self.message}"


class SourceLoadError(ExpansionError):
    pass


class ExpansionSyntaxError(ExpansionError):
    """Malformed literal or comprehension. Raised at expansion time, never by generated code."""


class RewriteError(ExpansionError):
    pass


@dataclass(frozen=True)
class DuplicateKeyError(ExpansionError):
    """An identifier-keyed map repeated a key.

    Generated code raises this while building the map. The strict expansion mode
    raises it earlier, before any code exists.
    """

    key: str = ""

    @classmethod
    def for_key(cls, key: str, *, file: Optional[str] = None) -> "DuplicateKeyError":
        return cls(
            code="E_DUPLICATE_KEY",
            message=f"{key} already in map",
            file=file,
            path=key,
            key=key,
        )
