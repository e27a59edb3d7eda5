"""Tests for the command line helper."""

from __future__ import annotations

from pathlib import Path

import pytest

from obcontainer import config as config_module
from obcontainer.cli import main, parse_args
from obcontainer.runtime import ScriptedRuntime


@pytest.fixture(autouse=True)
def _no_settings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config_module, "SETTINGS_FILE", tmp_path / "missing.toml")
    monkeypatch.setattr(config_module, "PYPROJECT_FILE", tmp_path / "missing-pyproject.toml")


def test_parse_args_collects_params() -> None:
    args = parse_args(["--param", "useSSL=false", "--param", "foo=bar", "--tenant", "acme"])

    assert args.params == [("useSSL", "false"), ("foo", "bar")]
    assert args.tenant_name == "acme"
    assert args.hold is True


def test_parse_args_rejects_malformed_param() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--param", "novalue"])


def test_main_prints_descriptor_and_destroys(capsys: pytest.CaptureFixture[str]) -> None:
    runtime = ScriptedRuntime(host="db.local", base_port=30000)

    code = main(
        ["--tenant", "acme", "--password", "pw", "--param", "useSSL=false", "--no-hold"],
        runtime=runtime,
    )

    out = capsys.readouterr().out
    assert code == 0
    assert "url      = mysql+pymysql://db.local:30000/test?useSSL=false" in out
    assert "username = root@acme" in out
    assert "rpc_port = 30001" in out
    (instance,) = runtime.instances.values()
    assert instance.environment["OB_TENANT_NAME"] == "acme"
    assert instance.destroyed is True


def test_main_reports_configuration_errors(capsys: pytest.CaptureFixture[str]) -> None:
    runtime = ScriptedRuntime()

    code = main(["--tenant", "sys", "--no-hold"], runtime=runtime)

    assert code == 1
    assert "Configuration error" in capsys.readouterr().err
    assert runtime.instances == {}


def test_main_reports_startup_errors(capsys: pytest.CaptureFixture[str]) -> None:
    runtime = ScriptedRuntime(("crashed",))

    code = main(["--no-hold"], runtime=runtime)

    assert code == 1
    assert "Startup failed" in capsys.readouterr().err
    (instance,) = runtime.instances.values()
    assert instance.destroyed is True


def test_main_reads_settings_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    settings_path = tmp_path / "obcontainer.toml"
    settings_path.write_text('[obcontainer]\ndialect = "native"\ntenant_name = "fromfile"\n')
    runtime = ScriptedRuntime(host="db.local", base_port=30000)

    code = main(["--config", str(settings_path), "--no-hold"], runtime=runtime)

    out = capsys.readouterr().out
    assert code == 0
    assert "url      = mysql+oceanbase://db.local:30000/test" in out
    assert "username = root@fromfile" in out
