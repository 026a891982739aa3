import json

from typer.testing import CliRunner

from collection_macros.cli import app


runner = CliRunner()


def test_cli_expand_prints_helper():
    r = runner.invoke(app, ["expand", "list", "[x*x ; x in 0..5]"])
    assert r.exit_code == 0
    assert r.stdout == (
        "def _expand_list():\n"
        "    _expand_acc = []\n"
        "    for x in range(0, 5):\n"
        "        _expand_acc.append(x*x)\n"
        "    return _expand_acc\n"
    )


def test_cli_expand_name_and_config():
    r = runner.invoke(
        app,
        ["expand", "list", "[x ; x in 0..3]", "--name", "build", "--config", "examples/custom.yaml"],
    )
    assert r.exit_code == 0
    assert "def build():" in r.stdout
    assert "  _lit_acc = []" in r.stdout
    assert "for x in 0..3:" in r.stdout


def test_cli_expand_highlight():
    r = runner.invoke(app, ["expand", "map", "{a: 1}", "--highlight"])
    assert r.exit_code == 0
    assert "DuplicateKeyError" in r.stdout


def test_cli_expand_json():
    r = runner.invoke(app, ["expand", "map", "map!{x => x * x ; x in 0..3}", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["tool"] == "collection-macros"
    assert payload["command"] == "expand"
    assert payload["ok"] is True
    assert payload["errors"] == []
    assert payload["form"] == "ComprehensionMap"
    assert payload["function"] == "_expand_map"
    assert payload["ops"][0] == {"op": "Allocate", "container": "mapping"}
    assert payload["source"].startswith("def _expand_map():\n")


def test_cli_expand_syntax_error():
    r = runner.invoke(app, ["expand", "list", "[v * 2 ; v values]"])
    assert r.exit_code == 2
    assert "E_EXPECTED_IN" in (r.stdout + r.stderr)


def test_cli_expand_json_failure_contains_codes():
    r = runner.invoke(app, ["expand", "map", "{a => 1 ; x in xs", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    assert payload["error_count"] == 1
    assert {e["code"] for e in payload["errors"]} == {"E_UNBALANCED"}


def test_cli_expand_unknown_kind():
    r = runner.invoke(app, ["expand", "set", "[1, 2]"])
    assert r.exit_code == 2
    assert "E_UNKNOWN_KIND" in (r.stdout + r.stderr)


def test_cli_expand_unknown_format():
    r = runner.invoke(app, ["expand", "list", "[1]", "--format", "yaml"])
    assert r.exit_code == 2
    assert "E_EXPAND_UNKNOWN_FORMAT" in (r.stdout + r.stderr)


def test_cli_expand_missing_config():
    r = runner.invoke(app, ["expand", "list", "[1]", "--config", "examples/nope.yaml"])
    assert r.exit_code == 1
    assert "E_CONFIG_FILE_NOT_FOUND" in (r.stdout + r.stderr)


def test_cli_expand_invalid_config():
    r = runner.invoke(app, ["expand", "list", "[1]", "--config", "examples/invalid-config.yaml"])
    assert r.exit_code == 2
    assert "E_CONFIG_FILE_INVALID" in (r.stdout + r.stderr)
