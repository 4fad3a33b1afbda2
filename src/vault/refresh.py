from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from common.cache import ModelCatalogCache
from common.cloudcode import CloudCodeClient, CodeAssistSession
from common.errors import AggregationError, AuthError, NetworkError, RefreshError
from common.locks import KeyedLock
from common.oauth import OAuthClient
from state.models import Account, TokenState
from state.session import identity_of, with_access_token


logger = logging.getLogger(__name__)


class TokenRefreshCoordinator:
    """
    Decide whether an account's session is usable and refresh it at most once.

    Expiry is never predicted: the only signal is a rejected session-init call.
    On rejection the access token is refreshed with the account's refresh
    handle, unless the account is the one the host is using right now. The
    host refreshes that session itself, and a second refresh with the same
    (possibly single-use) handle could log the host out.

    Refreshed tokens live in memory only. Calls for the same identity are
    serialized; different identities proceed in parallel.
    """

    def __init__(
        self,
        cloudcode: CloudCodeClient,
        oauth: Optional[OAuthClient] = None,
        *,
        cache: Optional[ModelCatalogCache] = None,
    ) -> None:
        self._cloudcode = cloudcode
        self._oauth = oauth
        self._cache = cache or ModelCatalogCache()
        self._locks = KeyedLock()

    @property
    def cache(self) -> ModelCatalogCache:
        return self._cache

    # --------------- Public API ---------------
    async def ensure_valid_session(self, account: Account, active_identity: Optional[str]) -> Account:
        """
        Validate `account`'s session, refreshing its token once if needed.

        Returns the same Account object: marked VALID with its project id on
        success, or untouched when it is the active identity and the call was
        rejected. Raises RefreshError when a refresh was attempted and failed
        (the account is not modified), and NetworkError when the first
        session-init call cannot reach the server.
        """
        async with self._locks.hold(account.identity):
            await self._validate(account, active_identity)
        return account

    async def load_models(self, account: Account, active_identity: Optional[str]) -> Optional[Dict[str, Any]]:
        """
        Validate the session, then fetch and cache the model catalog.

        Returns None when validation was skipped for the active identity.
        Raises AggregationError when the session is valid but has no project id.
        """
        async with self._locks.hold(account.identity):
            if not await self._validate(account, active_identity):
                return None
            project = account.context.project_id
            if not project:
                raise AggregationError(f"No project id for {account.identity}; cannot list models")
            models = await self._cloudcode.fetch_available_models(account.auth.access_token, project)
        self._cache.put(account.identity, project_id=project, models=models)
        logger.debug("Cached %d models for %s", len(models), account.identity)
        return models

    # --------------- Internal ---------------
    async def _validate(self, account: Account, active_identity: Optional[str]) -> bool:
        identity = account.identity
        try:
            session = await self._cloudcode.load_code_assist(account.auth.access_token)
        except AuthError as ex:
            rejection = ex
        else:
            self._mark_valid(account, session)
            return True

        if self._is_active(account, active_identity):
            logger.info("Session rejected for active account %s; leaving refresh to the host", identity)
            return False

        logger.info("Session rejected for %s (code=%s); refreshing access token", identity, rejection.code)
        if self._oauth is None:
            raise RefreshError(f"Cannot refresh {identity}: OAuth client is not configured") from rejection
        try:
            token = await self._oauth.refresh_access_token(account.auth.refresh_handle or "")
        except (AuthError, NetworkError) as ex:
            raise RefreshError(f"Token refresh failed for {identity}: {ex}") from ex

        try:
            session = await self._cloudcode.load_code_assist(token.access_token)
        except (AuthError, NetworkError) as ex:
            raise RefreshError(f"Session still rejected after refresh for {identity}: {ex}") from ex

        # Commit only after the new token has been accepted
        raw_state = with_access_token(account.raw_state, token.access_token)
        account.auth.access_token = token.access_token
        account.raw_state = raw_state
        self._mark_valid(account, session)
        logger.info("Refreshed access token for %s", identity)
        return True

    @staticmethod
    def _is_active(account: Account, active_identity: Optional[str]) -> bool:
        # An account saved under a custom name still shares the host's
        # refresh handle when its session email is the host's
        if not active_identity:
            return False
        return active_identity in (account.identity, identity_of(account.raw_state))

    @staticmethod
    def _mark_valid(account: Account, session: CodeAssistSession) -> None:
        account.token_state = TokenState.VALID
        if session.project_id:
            account.context.project_id = session.project_id


__all__ = ["TokenRefreshCoordinator"]
