from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from common.cloudcode import DEFAULT_BASE_URL


# Environment variable names
ENV_DATA_DIR = "VAULT_DATA_DIR"
ENV_HOST_STATE_PATH = "VAULT_HOST_STATE_PATH"
ENV_OAUTH_CLIENT_ID = "VAULT_OAUTH_CLIENT_ID"
ENV_OAUTH_CLIENT_SECRET = "VAULT_OAUTH_CLIENT_SECRET"
ENV_CLOUDCODE_BASE_URL = "VAULT_CLOUDCODE_BASE_URL"
ENV_HTTP_TIMEOUT = "VAULT_HTTP_TIMEOUT"
ENV_LOG_LEVEL = "VAULT_LOG_LEVEL"

DEFAULT_DATA_DIR = Path("~/.credential-vault")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


@dataclass
class VaultSettings:
    """
    Runtime configuration for the vault.

    Environment variables
    - `VAULT_HOST_STATE_PATH`:     host application's session file (required)
    - `VAULT_DATA_DIR`:            where captures, exports and caches live
                                   (default: ~/.credential-vault)
    - `VAULT_OAUTH_CLIENT_ID`:     OAuth client id; needed only to refresh tokens
    - `VAULT_OAUTH_CLIENT_SECRET`: optional OAuth client secret
    - `VAULT_CLOUDCODE_BASE_URL`:  CloudCode API base URL
    - `VAULT_HTTP_TIMEOUT`:        per-request timeout in seconds (default 15)
    - `VAULT_LOG_LEVEL`:           logging level name (default INFO)
    """

    host_state_path: Path
    data_dir: Path = field(default_factory=lambda: DEFAULT_DATA_DIR.expanduser())
    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    cloudcode_base_url: str = DEFAULT_BASE_URL
    http_timeout: float = 15.0
    log_level: str = "INFO"

    @property
    def captures_dir(self) -> Path:
        return self.data_dir / "accounts"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"

    @property
    def model_cache_path(self) -> Path:
        return self.data_dir / "models.json"

    @classmethod
    def from_env(cls) -> "VaultSettings":
        host_state = _require(_getenv(ENV_HOST_STATE_PATH), ENV_HOST_STATE_PATH)
        data_dir = _getenv(ENV_DATA_DIR)
        timeout_raw = _getenv(ENV_HTTP_TIMEOUT, "15")
        try:
            timeout = float(timeout_raw)  # type: ignore[arg-type]
        except ValueError as ex:
            raise RuntimeError(f"Invalid {ENV_HTTP_TIMEOUT}: {timeout_raw!r}") from ex
        if timeout <= 0:
            raise RuntimeError(f"Invalid {ENV_HTTP_TIMEOUT}: must be > 0")

        return cls(
            host_state_path=Path(host_state).expanduser(),
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR.expanduser(),
            oauth_client_id=_getenv(ENV_OAUTH_CLIENT_ID),
            oauth_client_secret=_getenv(ENV_OAUTH_CLIENT_SECRET),
            cloudcode_base_url=_getenv(ENV_CLOUDCODE_BASE_URL, DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
            http_timeout=timeout,
            log_level=(_getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper(),
        )


__all__ = ["VaultSettings"]
