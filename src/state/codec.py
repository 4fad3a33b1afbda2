"""
Backup envelope codec.

Two on-disk shapes are understood:

- Sealed (v2): JSON `{"v":2,"kdf":"pbkdf2-sha256","iter":210000,"salt":...,
  "nonce":...,"ciphertext":...}`. The key is PBKDF2-HMAC-SHA256 over the
  password and salt; the payload is AES-256-GCM with no associated data.
- Legacy: bare base64 of `plaintext XOR repeat(password)`. Read-only. It has
  no integrity check, so a wrong password yields garbage instead of an error.

`encode()` only ever produces the sealed shape, with a fresh salt and nonce
on every call.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from common.errors import DecodeError, IntegrityError

from .models import (
    SEALED_ITERATIONS,
    SEALED_KDF,
    SEALED_VERSION,
    LegacyEnvelope,
    SealedEnvelope,
)


logger = logging.getLogger(__name__)

SALT_LEN = 16
NONCE_LEN = 12
KEY_LEN = 32

# Bounds for the iteration count read from an envelope; a crafted file must
# not be able to stall decoding.
MIN_ITERATIONS = 10_000
MAX_ITERATIONS = 10_000_000

Envelope = Union[SealedEnvelope, LegacyEnvelope]


def _check_password(password: str) -> None:
    if not password:
        raise ValueError("password must not be empty")


def _derive_key(password: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(text: str, what: str) -> bytes:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as ex:
        raise DecodeError(f"Invalid base64 in {what}") from ex


def _as_text(data: Union[str, bytes]) -> str:
    if isinstance(data, str):
        return data
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as ex:
        raise DecodeError("Backup is not UTF-8 text") from ex


# -------- Encode --------
def encode(raw_state: bytes, password: str) -> SealedEnvelope:
    """Seal `raw_state` under `password` into a v2 envelope."""
    _check_password(password)
    salt = secrets.token_bytes(SALT_LEN)
    nonce = secrets.token_bytes(NONCE_LEN)
    key = _derive_key(password, salt, SEALED_ITERATIONS)
    ciphertext = AESGCM(key).encrypt(nonce, bytes(raw_state), None)
    return SealedEnvelope(
        version=SEALED_VERSION,
        kdf=SEALED_KDF,
        iterations=SEALED_ITERATIONS,
        salt=_b64encode(salt),
        nonce=_b64encode(nonce),
        ciphertext=_b64encode(ciphertext),
    )


def encode_text(raw_state: bytes, password: str) -> str:
    return encode(raw_state, password).to_json()


# -------- Decode --------
def parse_envelope(data: Union[str, bytes]) -> Envelope:
    """Classify backup text by the presence of the `v` discriminator.

    A JSON object carrying `v` is a sealed envelope (validated here); anything
    else is treated as legacy text.
    """
    text = _as_text(data).strip()
    if not text:
        raise DecodeError("Backup is empty")

    if text.startswith("{"):
        try:
            obj = json.loads(text)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict) and "v" in obj:
            try:
                return SealedEnvelope.model_validate(obj)
            except ValidationError as ve:
                raise DecodeError(f"Malformed sealed envelope: {ve}") from ve

    return LegacyEnvelope(text=text)


def decode(data: Union[str, bytes], password: str) -> bytes:
    """Recover the plaintext from sealed or legacy backup text.

    Raises:
    - IntegrityError if a sealed envelope fails authentication.
    - DecodeError if the input matches neither shape.
    """
    _check_password(password)
    envelope = parse_envelope(data)
    if isinstance(envelope, SealedEnvelope):
        return _open_sealed(envelope, password)
    if isinstance(envelope, LegacyEnvelope):
        logger.warning("Decoding unauthenticated legacy backup; consider re-exporting it")
        return _decode_legacy(envelope, password)
    raise DecodeError(f"Unsupported envelope type: {type(envelope).__name__}")


def _open_sealed(envelope: SealedEnvelope, password: str) -> bytes:
    if envelope.version != SEALED_VERSION:
        raise DecodeError(f"Unsupported envelope version: {envelope.version}")
    if envelope.kdf != SEALED_KDF:
        raise DecodeError(f"Unsupported KDF: {envelope.kdf}")
    if not (MIN_ITERATIONS <= envelope.iterations <= MAX_ITERATIONS):
        raise DecodeError(f"Unsupported KDF iteration count: {envelope.iterations}")

    salt = _b64decode(envelope.salt, "salt")
    nonce = _b64decode(envelope.nonce, "nonce")
    ciphertext = _b64decode(envelope.ciphertext, "ciphertext")
    if len(salt) != SALT_LEN or len(nonce) != NONCE_LEN:
        raise DecodeError("Malformed sealed envelope: bad salt or nonce length")

    key = _derive_key(password, salt, envelope.iterations)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as ex:
        raise IntegrityError("Wrong password or corrupted backup") from ex


def _decode_legacy(envelope: LegacyEnvelope, password: str) -> bytes:
    data = _b64decode(envelope.text, "legacy backup")
    key = password.encode("utf-8")
    return bytes(b ^ key[i % len(key)] for i, b in enumerate(data))


__all__ = [
    "Envelope",
    "encode",
    "encode_text",
    "parse_envelope",
    "decode",
    "SALT_LEN",
    "NONCE_LEN",
    "MIN_ITERATIONS",
    "MAX_ITERATIONS",
]
