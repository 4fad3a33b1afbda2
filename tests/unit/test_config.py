from __future__ import annotations

from pathlib import Path

import pytest

from common.cloudcode import DEFAULT_BASE_URL
from vault.config import VaultSettings


_ENV_VARS = (
    "VAULT_DATA_DIR",
    "VAULT_HOST_STATE_PATH",
    "VAULT_OAUTH_CLIENT_ID",
    "VAULT_OAUTH_CLIENT_SECRET",
    "VAULT_CLOUDCODE_BASE_URL",
    "VAULT_HTTP_TIMEOUT",
    "VAULT_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_host_state_path_is_required():
    with pytest.raises(RuntimeError) as ei:
        VaultSettings.from_env()
    assert "VAULT_HOST_STATE_PATH" in str(ei.value)


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("VAULT_HOST_STATE_PATH", str(tmp_path / "state.json"))

    s = VaultSettings.from_env()

    assert s.host_state_path == tmp_path / "state.json"
    assert s.data_dir == Path("~/.credential-vault").expanduser()
    assert s.oauth_client_id is None
    assert s.cloudcode_base_url == DEFAULT_BASE_URL
    assert s.http_timeout == 15.0
    assert s.log_level == "INFO"


def test_overrides_and_derived_paths(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("VAULT_HOST_STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("VAULT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("VAULT_OAUTH_CLIENT_ID", "cid")
    monkeypatch.setenv("VAULT_OAUTH_CLIENT_SECRET", "csecret")
    monkeypatch.setenv("VAULT_CLOUDCODE_BASE_URL", "https://cc.test")
    monkeypatch.setenv("VAULT_HTTP_TIMEOUT", "2.5")
    monkeypatch.setenv("VAULT_LOG_LEVEL", "debug")

    s = VaultSettings.from_env()

    assert s.captures_dir == tmp_path / "data" / "accounts"
    assert s.exports_dir == tmp_path / "data" / "exports"
    assert s.model_cache_path == tmp_path / "data" / "models.json"
    assert s.oauth_client_id == "cid"
    assert s.oauth_client_secret == "csecret"
    assert s.cloudcode_base_url == "https://cc.test"
    assert s.http_timeout == 2.5
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize("value", ["abc", "0", "-1"])
def test_invalid_timeout(monkeypatch: pytest.MonkeyPatch, tmp_path, value: str):
    monkeypatch.setenv("VAULT_HOST_STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("VAULT_HTTP_TIMEOUT", value)

    with pytest.raises(RuntimeError):
        VaultSettings.from_env()
