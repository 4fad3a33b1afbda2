from __future__ import annotations

import json

import pytest

from common.errors import DecodeError
from state.models import TokenState
from state.session import account_from_state, identity_of, with_access_token


def test_account_from_state_reads_known_fields(make_session):
    raw = make_session("alice@example.com", project_id="proj-1", settings={"theme": "dark"})

    account = account_from_state(raw)

    assert account.identity == "alice@example.com"
    assert account.auth.access_token == "access-token"
    assert account.auth.refresh_handle == "refresh-token"
    assert account.auth.id_token == "id-token"
    assert account.context.project_id == "proj-1"
    assert account.raw_state == raw
    assert account.token_state is TokenState.UNKNOWN_MAYBE_EXPIRED


def test_explicit_identity_wins_over_email(make_session):
    account = account_from_state(make_session("alice@example.com"), identity="work")
    assert account.identity == "work"


def test_missing_refresh_token_is_none(make_session):
    account = account_from_state(make_session("alice@example.com", refresh_token=None, id_token=None))
    assert account.auth.refresh_handle is None
    assert account.auth.id_token is None


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2, 3]",
        b"\xff\xfe",
        json.dumps({"auth": {"access_token": "t"}}).encode(),
        json.dumps({"context": {"email": "a@b.com"}, "auth": {}}).encode(),
        json.dumps({"context": "a@b.com", "auth": {"access_token": "t"}}).encode(),
    ],
)
def test_unusable_state_is_decode_error(raw: bytes):
    with pytest.raises(DecodeError):
        account_from_state(raw)


def test_identity_of_never_raises(make_session):
    assert identity_of(make_session("bob@example.com")) == "bob@example.com"
    assert identity_of(b"") is None
    assert identity_of(b"garbage") is None
    assert identity_of(json.dumps({"auth": {}}).encode()) is None


def test_with_access_token_keeps_other_keys(make_session):
    raw = make_session("alice@example.com", settings={"lang": "한국어"})

    updated = json.loads(with_access_token(raw, "new-token").decode("utf-8"))

    assert updated["auth"]["access_token"] == "new-token"
    assert updated["auth"]["refresh_token"] == "refresh-token"
    assert updated["context"]["email"] == "alice@example.com"
    assert updated["settings"] == {"lang": "한국어"}
