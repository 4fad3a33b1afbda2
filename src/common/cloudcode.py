from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from .errors import AuthError, NetworkError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://daily-cloudcode-pa.sandbox.googleapis.com"
DEFAULT_USER_AGENT = "antigravity/windows/amd64"
IDE_TYPE = "ANTIGRAVITY"

LOAD_CODE_ASSIST_PATH = "/v1internal:loadCodeAssist"
FETCH_MODELS_PATH = "/v1internal:fetchAvailableModels"

# One initial attempt plus at most one retry on transient failures
MAX_ATTEMPTS = 2
_RETRY_STATUSES = (429, 500, 502, 503, 504)


class CodeAssistSession(BaseModel):
    """Result of a successful session-init call."""

    project_id: Optional[str] = Field(
        default=None, description="cloudaicompanionProject from the response"
    )
    payload: Dict[str, Any] = Field(default_factory=dict)


def _extract_project(payload: Dict[str, Any]) -> Optional[str]:
    project = payload.get("cloudaicompanionProject")
    if isinstance(project, str) and project:
        return project
    # Some responses wrap the project as {"id": "...", "name": "..."}
    if isinstance(project, dict):
        pid = project.get("id")
        if isinstance(pid, str) and pid:
            return pid
    return None


class CloudCodeClient:
    """
    Async client for the two CloudCode endpoints the vault depends on.

    Notes
    - `load_code_assist` is the session-init call: it validates an access
      token and returns the account's project id.
    - Any `{"error": {...}}` payload, or HTTP 401/403, raises `AuthError`.
    - Transport errors, 429 and 5xx are retried once, then raise `NetworkError`.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 15.0,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._user_agent = user_agent
        self._timeout = timeout
        self._retry_backoff = retry_backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CloudCodeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # --------------- Public API ---------------
    async def load_code_assist(self, access_token: str) -> CodeAssistSession:
        payload = await self._post(
            LOAD_CODE_ASSIST_PATH,
            access_token,
            {"metadata": {"ideType": IDE_TYPE}},
        )
        return CodeAssistSession(project_id=_extract_project(payload), payload=payload)

    async def fetch_available_models(self, access_token: str, project: str) -> Dict[str, Any]:
        """Return the model catalog for `project` as `{model_id: descriptor}`."""
        payload = await self._post(FETCH_MODELS_PATH, access_token, {"project": project})
        models = payload.get("models")
        if isinstance(models, dict):
            return models
        return payload

    # --------------- Internal ---------------
    def _headers(self, access_token: str) -> Dict[str, str]:
        return {
            "User-Agent": self._user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {access_token}",
        }

    async def _post(self, path: str, access_token: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        attempt = 0
        last_exc: Optional[Exception] = None
        while attempt < MAX_ATTEMPTS:
            try:
                resp = await self._client.post(url, json=body, headers=self._headers(access_token))
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.status_code in _RETRY_STATUSES:
                    last_exc = NetworkError(f"HTTP {resp.status_code} from CloudCode")
                else:
                    return self._handle_response(resp)

            attempt += 1
            if attempt < MAX_ATTEMPTS:
                logger.debug("Retrying CloudCode %s after: %s", path, last_exc)
                await asyncio.sleep(self._retry_backoff)

        raise NetworkError(f"CloudCode {path} failed after retry") from last_exc

    @classmethod
    def _handle_response(cls, resp: httpx.Response) -> Dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError:
            payload = None
        cls._raise_on_api_error(payload, resp)
        if not isinstance(payload, dict):
            raise NetworkError("Malformed response from CloudCode")
        return payload

    @staticmethod
    def _raise_on_api_error(payload: Any, resp: httpx.Response) -> None:
        if isinstance(payload, dict) and "error" in payload:
            err = payload.get("error")
            if isinstance(err, dict):
                code = err.get("status") or err.get("code")
                message = err.get("message") or "CloudCode API error"
            else:
                code, message = err, "CloudCode API error"
            raise AuthError(f"{message} (code={code})", code=None if code is None else str(code))
        if resp.status_code in (401, 403):
            raise AuthError(f"HTTP {resp.status_code} from CloudCode", code=str(resp.status_code))
        if resp.status_code != 200:
            raise NetworkError(f"HTTP {resp.status_code} from CloudCode: {resp.text[:200]}")


__all__ = [
    "CloudCodeClient",
    "CodeAssistSession",
    "DEFAULT_BASE_URL",
    "DEFAULT_USER_AGENT",
]
