from __future__ import annotations

import base64
import json

import pytest

from common.errors import DecodeError, IntegrityError
from state import codec
from state.models import LegacyEnvelope, SealedEnvelope


def _legacy_text(plaintext: bytes, password: str) -> str:
    """Produce legacy backup text the way older releases exported it."""
    key = password.encode("utf-8")
    mixed = bytes(b ^ key[i % len(key)] for i, b in enumerate(plaintext))
    return base64.b64encode(mixed).decode("ascii")


def test_encode_then_decode_returns_payload():
    text = codec.encode_text(b"session-blob", "abcd1234")
    assert codec.decode(text, "abcd1234") == b"session-blob"


def test_sealed_envelope_json_shape():
    obj = json.loads(codec.encode_text(b"payload", "abcd1234"))

    assert set(obj) == {"v", "kdf", "iter", "salt", "nonce", "ciphertext"}
    assert obj["v"] == 2
    assert obj["kdf"] == "pbkdf2-sha256"
    assert obj["iter"] == 210_000
    assert len(base64.b64decode(obj["salt"])) == 16
    assert len(base64.b64decode(obj["nonce"])) == 12
    # AES-GCM appends a 16-byte tag
    assert len(base64.b64decode(obj["ciphertext"])) == len(b"payload") + 16


def test_wrong_password_raises_integrity_error():
    text = codec.encode_text(b"session-blob", "abcd1234")
    with pytest.raises(IntegrityError):
        codec.decode(text, "abcd1235")


def test_tampered_ciphertext_raises_integrity_error():
    obj = json.loads(codec.encode_text(b"session-blob", "abcd1234"))
    ct = bytearray(base64.b64decode(obj["ciphertext"]))
    ct[0] ^= 0x01
    obj["ciphertext"] = base64.b64encode(bytes(ct)).decode("ascii")

    with pytest.raises(IntegrityError):
        codec.decode(json.dumps(obj), "abcd1234")


def test_salt_and_nonce_are_fresh_per_encode():
    seen = set()
    for _ in range(8):
        env = codec.encode(b"same payload", "same password")
        seen.add((env.salt, env.nonce))
    assert len(seen) == 8


def test_decode_accepts_bytes_and_surrounding_whitespace():
    text = codec.encode_text(b"blob", "abcd1234")
    assert codec.decode(("\n  " + text + "\n").encode("utf-8"), "abcd1234") == b"blob"


def test_parse_envelope_discriminates_on_version_field():
    sealed = codec.parse_envelope(codec.encode_text(b"x", "abcd1234"))
    legacy = codec.parse_envelope(_legacy_text(b"x", "abcd1234"))

    assert isinstance(sealed, SealedEnvelope)
    assert isinstance(legacy, LegacyEnvelope)


def test_legacy_decode_with_correct_password():
    plaintext = b'{"context":{"email":"a@b.com"}}'
    text = _legacy_text(plaintext, "abcd1234")
    assert codec.decode(text, "abcd1234") == plaintext


def test_legacy_decode_with_wrong_password_returns_other_bytes_without_error():
    plaintext = b'{"context":{"email":"a@b.com"}}'
    text = _legacy_text(plaintext, "abcd1234")

    out = codec.decode(text, "zzzz9999")
    assert out != plaintext
    assert len(out) == len(plaintext)


@pytest.mark.parametrize("password", ["abcd1234", "wrong", "x", "a much longer password than the data"])
def test_legacy_path_never_raises_integrity_error(password: str):
    text = _legacy_text(b"some legacy payload", "abcd1234")
    # Any password "works" on the unauthenticated legacy format
    assert isinstance(codec.decode(text, password), bytes)


def test_unsupported_version_is_decode_error():
    obj = json.loads(codec.encode_text(b"x", "abcd1234"))
    obj["v"] = 3
    with pytest.raises(DecodeError):
        codec.decode(json.dumps(obj), "abcd1234")


@pytest.mark.parametrize("iterations", [1, 9_999, 10_000_001])
def test_iteration_count_out_of_bounds_is_decode_error(iterations: int):
    obj = json.loads(codec.encode_text(b"x", "abcd1234"))
    obj["iter"] = iterations
    with pytest.raises(DecodeError):
        codec.decode(json.dumps(obj), "abcd1234")


def test_unknown_kdf_is_decode_error():
    obj = json.loads(codec.encode_text(b"x", "abcd1234"))
    obj["kdf"] = "scrypt"
    with pytest.raises(DecodeError):
        codec.decode(json.dumps(obj), "abcd1234")


def test_bad_salt_length_is_decode_error():
    obj = json.loads(codec.encode_text(b"x", "abcd1234"))
    obj["salt"] = base64.b64encode(b"short").decode("ascii")
    with pytest.raises(DecodeError):
        codec.decode(json.dumps(obj), "abcd1234")


def test_missing_envelope_field_is_decode_error():
    obj = json.loads(codec.encode_text(b"x", "abcd1234"))
    del obj["nonce"]
    with pytest.raises(DecodeError):
        codec.decode(json.dumps(obj), "abcd1234")


@pytest.mark.parametrize("data", ["not base64 at all!", '{"hello": "world"}', "   "])
def test_input_matching_neither_shape_is_decode_error(data: str):
    with pytest.raises(DecodeError):
        codec.decode(data, "abcd1234")


def test_empty_password_is_rejected():
    with pytest.raises(ValueError):
        codec.encode(b"x", "")
    with pytest.raises(ValueError):
        codec.decode(_legacy_text(b"x", "abcd"), "")
