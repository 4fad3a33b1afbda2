from __future__ import annotations

import pytest

from vault import cli


@pytest.fixture
def vault_env(monkeypatch: pytest.MonkeyPatch, tmp_path, make_session):
    host_file = tmp_path / "host" / "state.json"
    host_file.parent.mkdir()
    host_file.write_bytes(make_session("alice@example.com"))
    monkeypatch.setenv("VAULT_HOST_STATE_PATH", str(host_file))
    monkeypatch.setenv("VAULT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("VAULT_OAUTH_CLIENT_ID", raising=False)
    monkeypatch.delenv("VAULT_BACKUP_PASSWORD", raising=False)
    # Keep the root logger free of handlers bound to captured streams
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)
    return tmp_path


def test_capture_then_list(vault_env, capsys: pytest.CaptureFixture[str]):
    assert cli.main(["capture"]) == 0
    assert "Captured alice@example.com" in capsys.readouterr().out

    assert cli.main(["list"]) == 0
    out = capsys.readouterr().out
    assert "* alice@example.com" in out
    assert (vault_env / "data" / "accounts" / "alice@example.com.json").exists()


def test_export_all_and_import_all(vault_env, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
    monkeypatch.setenv("VAULT_BACKUP_PASSWORD", "hunter22")
    bundle = vault_env / "all.vault.json"

    assert cli.main(["capture"]) == 0
    assert cli.main(["export-all", "--out", str(bundle)]) == 0
    assert cli.main(["remove", "alice@example.com"]) == 0
    assert not (vault_env / "data" / "accounts" / "alice@example.com.json").exists()

    assert cli.main(["import-all", str(bundle)]) == 0
    assert "Imported 1 accounts" in capsys.readouterr().out
    assert (vault_env / "data" / "accounts" / "alice@example.com.json").exists()


def test_unknown_account_is_reported(vault_env, capsys: pytest.CaptureFixture[str]):
    assert cli.main(["restore", "nobody@example.com"]) == 1
    assert "error:" in capsys.readouterr().err


def test_missing_configuration(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]):
    monkeypatch.delenv("VAULT_HOST_STATE_PATH", raising=False)

    assert cli.main(["list"]) == 2
    assert "VAULT_HOST_STATE_PATH" in capsys.readouterr().err
