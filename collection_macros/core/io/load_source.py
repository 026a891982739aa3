from __future__ import annotations

from pathlib import Path

from collection_macros.core.errors import SourceLoadError


SOURCE_SUFFIXES: set[str] = {".py", ".pym"}


def load_source(path: str) -> str:
    """Read a source file that may contain list!/map!/iter! sites.

    Only the suffix is checked here; the rewriter owns syntax checks.
    """

    p = Path(path)
    if not p.exists():
        raise SourceLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    if p.suffix.lower() not in SOURCE_SUFFIXES:
        raise SourceLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message="supported formats are .py and .pym",
            file=str(p),
        )

    try:
        return p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise SourceLoadError(code="E_FILE_DECODE", message=str(e), file=str(p)) from e
    except OSError as e:  # pragma: no cover
        raise SourceLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e


def write_source(text: str, path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
