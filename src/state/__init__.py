"""
Account models, backup envelopes and local persistence.

Session state captured from the host is kept in memory (`AccountStore`),
mirrored as plaintext capture files, and sealed with AES-256-GCM only when
explicitly exported (`codec`).
"""

from .models import Account, AuthTokens, SessionContext, TokenState
from .store import AccountStore

__all__ = ["Account", "AuthTokens", "SessionContext", "TokenState", "AccountStore"]
