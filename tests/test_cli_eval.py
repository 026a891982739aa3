from typer.testing import CliRunner

from collection_macros.cli import app


runner = CliRunner()


def test_cli_eval_list():
    r = runner.invoke(app, ["eval", "list", "list![x*x ; x in 0..5]"])
    assert r.exit_code == 0
    assert r.stdout.strip() == "[0, 1, 4, 9, 16]"


def test_cli_eval_defines_are_yaml():
    r = runner.invoke(
        app,
        ["eval", "map", "{name => n ; (name, n) in pairs}", "-D", "pairs=[[a, 1], [b, 2]]"],
    )
    assert r.exit_code == 0
    assert r.stdout.strip() == "{'a': 1, 'b': 2}"


def test_cli_eval_iter_is_materialized():
    r = runner.invoke(app, ["eval", "iter", "[i ; i in 0..=n]", "--define", "n=2"])
    assert r.exit_code == 0
    assert r.stdout.strip() == "[0, 1, 2]"


def test_cli_eval_duplicate_key():
    r = runner.invoke(app, ["eval", "map", "map!{field1: 0, field1: 1}"])
    assert r.exit_code == 2
    out = r.stdout + r.stderr
    assert "E_DUPLICATE_KEY" in out
    assert "field1 already in map" in out


def test_cli_eval_syntax_error():
    r = runner.invoke(app, ["eval", "list", "[x ; x in]"])
    assert r.exit_code == 2
    assert "E_EMPTY_CLAUSE" in (r.stdout + r.stderr)


def test_cli_eval_runtime_error():
    r = runner.invoke(app, ["eval", "list", "[1 / x ; x in xs]", "-D", "xs=[0]"])
    assert r.exit_code == 1
    out = r.stdout + r.stderr
    assert "E_EVAL_FAILED" in out
    assert "ZeroDivisionError" in out


def test_cli_eval_bad_define():
    r = runner.invoke(app, ["eval", "list", "[1]", "-D", "not a define"])
    assert r.exit_code == 2
    assert "E_EVAL_BAD_DEFINE" in (r.stdout + r.stderr)
