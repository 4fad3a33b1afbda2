from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


SEALED_VERSION = 2
SEALED_KDF = "pbkdf2-sha256"
SEALED_ITERATIONS = 210_000


class TokenState(str, Enum):
    """What we know about an account's access token.

    There is no expiry timestamp upstream, so the state only moves on call
    outcomes: a successful session-init marks it VALID; everything else
    leaves it as UNKNOWN_MAYBE_EXPIRED.
    """

    VALID = "valid"
    UNKNOWN_MAYBE_EXPIRED = "unknown_maybe_expired"


class AuthTokens(BaseModel):
    access_token: str
    refresh_handle: Optional[str] = Field(
        default=None, description="Token presented to the OAuth refresh grant"
    )
    id_token: Optional[str] = None


class SessionContext(BaseModel):
    project_id: Optional[str] = Field(
        default=None, description="Cloud project returned by session-init"
    )


class Account(BaseModel):
    """
    One captured identity of the host application.

    Fields
    - identity: the account email; unique key in AccountStore.
    - auth / context: the parts of `raw_state` the vault understands.
    - raw_state: the host's serialized session, opaque beyond `auth`/`context`.
    - token_state: see `TokenState`.

    Notes
    - `auth.access_token` and `raw_state` are kept consistent: a refresh
      rewrites both in memory. Neither is written back to disk until the
      account is captured or exported again.
    """

    identity: str
    auth: AuthTokens
    context: SessionContext = Field(default_factory=SessionContext)
    raw_state: bytes
    token_state: TokenState = TokenState.UNKNOWN_MAYBE_EXPIRED


class SealedEnvelope(BaseModel):
    """Versioned AES-256-GCM backup envelope; binary fields are base64 text."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = Field(default=SEALED_VERSION, alias="v")
    kdf: str = SEALED_KDF
    iterations: int = Field(default=SEALED_ITERATIONS, alias="iter")
    salt: str
    nonce: str
    ciphertext: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class LegacyEnvelope(BaseModel):
    """Pre-v2 backup text: base64 of the plaintext XOR-ed with the password."""

    kind: Literal["legacy"] = "legacy"
    text: str


class ExportedAccount(BaseModel):
    """One capture file inside a multi-account export bundle."""

    filename: str
    content: Any
    timestamp: int


__all__ = [
    "SEALED_VERSION",
    "SEALED_KDF",
    "SEALED_ITERATIONS",
    "TokenState",
    "AuthTokens",
    "SessionContext",
    "Account",
    "SealedEnvelope",
    "LegacyEnvelope",
    "ExportedAccount",
]
