from __future__ import annotations

from typer.testing import CliRunner

import fragcache
from fragcache.cli import app


def test_get_version_matches_dunder():
    assert fragcache.get_version() == fragcache.__version__


def test_module_main_calls_run(monkeypatch):
    import fragcache.__main__ as main_mod

    called = {"ok": False}

    def fake_run():
        called["ok"] = True

    monkeypatch.setattr(main_mod, "run", fake_run)
    main_mod.main()
    assert called["ok"] is True


def test_cli_version_flag_prints_version():
    runner = CliRunner()
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert f"fragcache v{fragcache.__version__}" in result.stdout


def test_cli_run_accepts_argv(monkeypatch):
    from fragcache import cli

    captured = {}

    def fake_app(*, args=None):
        captured["args"] = args

    monkeypatch.setattr(cli, "app", fake_app)
    cli.run(["verify", "--json"])
    assert captured["args"] == ["verify", "--json"]
