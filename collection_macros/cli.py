from __future__ import annotations

import json
from collections import Counter
from dataclasses import replace
from typing import Any, Optional

import typer
import yaml
from rich.console import Console
from rich.syntax import Syntax

from collection_macros.core.boundary import Expansion, evaluate, expand
from collection_macros.core.errors import (
    DuplicateKeyError,
    ExpansionError,
    ExpansionSyntaxError,
    RewriteError,
    SourceLoadError,
)
from collection_macros.core.expand.config import ConfigError, ExpansionConfig, load_and_merge
from collection_macros.core.expand.lower import ops_to_dicts
from collection_macros.core.io.load_source import load_source, write_source
from collection_macros.core.logging import configure_logging
from collection_macros.core.model import (
    ComprehensionList,
    ComprehensionMap,
    IdentifierMap,
    LiteralForm,
    PlainList,
    PlainMap,
    form_name,
)
from collection_macros.core.rewrite.rewrite_source import rewrite_source
from collection_macros.core.validate.duplicate_keys import find_duplicate_keys

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines"),
) -> None:
    """Expand list!/map!/iter! literals and comprehensions into plain Python."""
    configure_logging(verbose=verbose, log_json=log_json)


@app.command("expand")
def expand_cmd(
    kind: str = typer.Argument(..., help="Container kind: list|map|iter"),
    fragment: str = typer.Argument(..., help="Bracketed fragment, e.g. '[x*x ; x in 0..5]'"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML settings file"),
    name: Optional[str] = typer.Option(None, "--name", help="Name of the generated function"),
    highlight: bool = typer.Option(False, "--highlight", help="Syntax-highlight text output"),
) -> None:
    """Print the function generated for one fragment."""
    _check_format(format, "E_EXPAND_UNKNOWN_FORMAT")
    config = _load_config(config_file)

    try:
        expansion = expand(kind, fragment, config=config, name=name)
    except ExpansionError as e:
        if format == "json":
            _emit_json("expand", False, exit_code=2, errors=[e])
        _print_errors([e])
        raise typer.Exit(code=2)

    if format == "json":
        _emit_json(
            "expand",
            True,
            exit_code=0,
            errors=[],
            kind=expansion.kind,
            form=form_name(expansion.form),
            function=expansion.function_name,
            ops=ops_to_dicts(expansion.ops),
            source=expansion.source,
        )

    if highlight:
        Console().print(Syntax(expansion.source, "python"))
        return
    typer.echo(expansion.source, nl=False)


@app.command("check")
def check_cmd(
    kind: str = typer.Argument(..., help="Container kind: list|map|iter"),
    fragment: str = typer.Argument(..., help="Bracketed fragment"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML settings file"),
    strict: bool = typer.Option(False, "--strict", help="Fail on repeated identifier keys now"),
) -> None:
    """Expand and compile a fragment without printing it; report its form."""
    _check_format(format, "E_CHECK_UNKNOWN_FORMAT")
    config = _load_config(config_file)
    if strict:
        config = replace(config, strict_identifier_keys=True)

    try:
        expansion = expand(kind, fragment, config=config)
        _compile_expansion(expansion)
    except ExpansionError as e:
        if format == "json":
            _emit_json("check", False, exit_code=2, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=2)

    form = expansion.form
    dupes = find_duplicate_keys(form.entries) if isinstance(form, IdentifierMap) else []
    summary = _summarize_form(form)
    summary["duplicate_keys"] = dupes

    if format == "json":
        _emit_json("check", True, exit_code=0, errors=[], summary=summary)

    typer.echo(f"OK: {summary['form']} ({summary['entry_count']} entries)")
    if dupes:
        typer.echo(
            f"WARN: repeated identifier keys: {', '.join(dupes)} (DuplicateKeyError at runtime)",
            err=True,
        )


@app.command("eval")
def eval_cmd(
    kind: str = typer.Argument(..., help="Container kind: list|map|iter"),
    fragment: str = typer.Argument(..., help="Bracketed fragment"),
    define: list[str] = typer.Option(
        [],
        "--define",
        "-D",
        help="Bind a name before evaluation: NAME=VALUE (VALUE parsed as YAML)",
    ),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML settings file"),
) -> None:
    """Expand a fragment, run it and print the resulting container."""
    config = _load_config(config_file)
    namespace = _parse_defines(define)

    try:
        result = evaluate(kind, fragment, namespace, config=config)
        if kind == "iter":
            result = list(result)
    except (ExpansionSyntaxError, DuplicateKeyError) as e:
        _print_errors([e])
        raise typer.Exit(code=2)
    except Exception as e:
        _print_errors(
            [
                ExpansionError(
                    code="E_EVAL_FAILED",
                    message=f"{type(e).__name__}: {e}",
                    file=None,
                    path=kind,
                )
            ]
        )
        raise typer.Exit(code=1)

    typer.echo(repr(result))


@app.command("rewrite")
def rewrite_cmd(
    path: str = typer.Argument(..., help="Path to a source file (.py/.pym)"),
    out: str = typer.Option(..., "--out", help="Path to write the rewritten Python source"),
    config_file: Optional[str] = typer.Option(None, "--config", help="Optional YAML settings file"),
) -> None:
    """Rewrite every list!/map!/iter! site in a file into plain Python."""
    try:
        text = load_source(path)
    except SourceLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    config = _load_config(config_file, file=path)

    try:
        result = rewrite_source(text, config=config, file=path)
    except (ExpansionSyntaxError, DuplicateKeyError, RewriteError) as e:
        _print_errors([e])
        raise typer.Exit(code=2)

    write_source(result.source, out)
    typer.echo(f"OK: wrote {out} ({len(result.sites)} sites)")


def _check_format(format: str, code: str) -> None:
    if format not in ("text", "json"):
        err = ExpansionError(
            code=code,
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _load_config(config_file: Optional[str], *, file: Optional[str] = None) -> ExpansionConfig:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                SourceLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    file=file,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except ConfigError as e:
        _print_errors(
            [
                ExpansionError(
                    code="E_CONFIG_FILE_INVALID",
                    message=str(e),
                    file=file,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=2)


def _compile_expansion(expansion: Expansion) -> None:
    try:
        compile(expansion.source, f"<{expansion.kind}!>", "exec")
    except SyntaxError as e:
        raise ExpansionSyntaxError(
            code="E_GENERATED_SYNTAX",
            message=f"generated code does not compile: {e.msg} (line {e.lineno} of the helper)",
            file=None,
            path=expansion.kind,
        ) from e


def _parse_defines(defines: list[str]) -> dict[str, Any]:
    namespace: dict[str, Any] = {}
    for item in defines:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name.isidentifier():
            _print_errors(
                [
                    ExpansionError(
                        code="E_EVAL_BAD_DEFINE",
                        message=f"expected NAME=VALUE, got: {item}",
                        file=None,
                        path="define",
                    )
                ]
            )
            raise typer.Exit(code=2)
        namespace[name] = yaml.safe_load(value)
    return namespace


def _summarize_form(form: LiteralForm) -> dict[str, Any]:
    summary: dict[str, Any] = {"form": form_name(form)}
    if isinstance(form, PlainList):
        summary["entry_count"] = len(form.elements)
    elif isinstance(form, (PlainMap, IdentifierMap)):
        summary["entry_count"] = len(form.entries)
        if isinstance(form, IdentifierMap):
            summary["keys"] = [name for name, _ in form.entries]
            summary["key_counts"] = dict(Counter(summary["keys"]))
    else:
        summary["entry_count"] = 1
        summary["pattern"] = form.pattern.text
        summary["iterable"] = form.iterable.text
        summary["guard"] = form.guard.text if form.guard else None
        if isinstance(form, ComprehensionMap):
            summary["key"] = form.key.text
            summary["value"] = form.value.text
        elif isinstance(form, ComprehensionList):
            summary["element"] = form.element.text
    return summary


def _to_item(e: ExpansionError) -> dict:
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
    }


def _emit_json(command: str, ok: bool, *, exit_code: int, errors: list[ExpansionError], **extra: Any) -> None:
    payload = {
        "tool": "collection-macros",
        "command": command,
        "ok": ok,
        "error_count": len(errors),
        "errors": [_to_item(e) for e in errors],
        **extra,
    }
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _print_errors(errors: list[ExpansionError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="collection-macros")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
