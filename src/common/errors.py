from __future__ import annotations

from typing import Optional


class VaultError(RuntimeError):
    """Base error for the credential vault."""


class AuthError(VaultError):
    """The OAuth provider or the session endpoint rejected our credentials."""

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class NetworkError(VaultError):
    """Transport failure, exhausted retry, or an unreadable response."""


class RefreshError(VaultError):
    """A token refresh attempt failed; the account was left untouched."""


class AggregationError(VaultError):
    """A session validated but carries no project id for dependent lookups."""


class BackupError(VaultError):
    """Base error for backup envelope handling."""


class IntegrityError(BackupError):
    """Sealed envelope failed authentication (wrong password or tampered data)."""


class DecodeError(BackupError):
    """Input is neither a valid sealed envelope nor legacy text, or the
    recovered session state cannot be parsed."""


class SwitchError(VaultError):
    """Base error for capture/restore operations."""


class NotFoundError(SwitchError):
    """Unknown identity, or no active session in the host."""


class SwitchConflictError(SwitchError):
    """Another switch operation currently holds the host state."""


__all__ = [
    "VaultError",
    "AuthError",
    "NetworkError",
    "RefreshError",
    "AggregationError",
    "BackupError",
    "IntegrityError",
    "DecodeError",
    "SwitchError",
    "NotFoundError",
    "SwitchConflictError",
]
