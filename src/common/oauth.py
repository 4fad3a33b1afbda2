from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ValidationError

from .errors import AuthError, NetworkError


logger = logging.getLogger(__name__)

GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

MAX_ATTEMPTS = 2
_RETRY_STATUSES = (429, 500, 502, 503, 504)
# Only failures where the request never reached the provider are retried:
# a refresh token may be single-use, so a read timeout must not trigger a
# second grant with the same token.
_RETRY_TRANSPORT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


class TokenResponse(BaseModel):
    access_token: str
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    id_token: Optional[str] = None


class OAuthClient:
    """
    Minimal RFC 6749 `refresh_token` grant client.

    The request is form-encoded: `client_id`, `grant_type=refresh_token`,
    `refresh_token` and, when configured, `client_secret`. The provider
    answers `{"access_token": ...}` or an `error` payload (`invalid_grant`
    and friends), which raises `AuthError`.
    """

    def __init__(
        self,
        client_id: str,
        *,
        client_secret: Optional[str] = None,
        token_endpoint: str = GOOGLE_TOKEN_ENDPOINT,
        timeout: float = 15.0,
        retry_backoff: float = 0.5,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not client_id:
            raise ValueError("client_id is required")
        self._client_id = client_id
        self._client_secret = client_secret or None
        self._token_endpoint = token_endpoint
        self._timeout = timeout
        self._retry_backoff = retry_backoff
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OAuthClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        if not refresh_token:
            raise AuthError("No refresh token available", code="missing_refresh_token")

        form: Dict[str, str] = {
            "client_id": self._client_id,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        if self._client_secret:
            form["client_secret"] = self._client_secret

        payload = await self._request(form)
        try:
            return TokenResponse.model_validate(payload)
        except ValidationError as ve:
            raise AuthError("Token response carries no access_token", code="invalid_response") from ve

    # --------------- Internal ---------------
    async def _request(self, form: Dict[str, str]) -> Dict[str, Any]:
        attempt = 0
        last_exc: Optional[Exception] = None
        while attempt < MAX_ATTEMPTS:
            try:
                resp = await self._client.post(
                    self._token_endpoint,
                    data=form,
                    headers={"Accept": "application/json"},
                )
            except _RETRY_TRANSPORT_ERRORS as exc:
                last_exc = exc
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                raise NetworkError("Token endpoint unreachable") from exc
            else:
                if resp.status_code in _RETRY_STATUSES:
                    last_exc = NetworkError(f"HTTP {resp.status_code} from token endpoint")
                else:
                    return self._handle_response(resp)

            attempt += 1
            if attempt < MAX_ATTEMPTS:
                logger.debug("Retrying token refresh after: %s", last_exc)
                await asyncio.sleep(self._retry_backoff)

        raise NetworkError("Token refresh failed after retry") from last_exc

    @staticmethod
    def _handle_response(resp: httpx.Response) -> Dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and "error" in payload:
            err = payload.get("error")
            if isinstance(err, dict):
                code = err.get("status") or err.get("code")
                message = err.get("message") or "token refresh rejected"
            else:
                code = err
                message = payload.get("error_description") or "token refresh rejected"
            raise AuthError(f"{message} (code={code})", code=None if code is None else str(code))
        if resp.status_code in (400, 401, 403):
            raise AuthError(f"HTTP {resp.status_code} from token endpoint", code=str(resp.status_code))
        if resp.status_code != 200 or not isinstance(payload, dict):
            raise NetworkError(f"Unexpected response from token endpoint: HTTP {resp.status_code}")
        return payload


__all__ = ["OAuthClient", "TokenResponse", "GOOGLE_TOKEN_ENDPOINT"]
