from __future__ import annotations

import json
from typing import Any, Dict, Optional

from common.errors import DecodeError

from .models import Account, AuthTokens, SessionContext


def _load_session(raw_state: bytes) -> Dict[str, Any]:
    try:
        obj = json.loads(bytes(raw_state).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        raise DecodeError("Session state is not valid JSON") from ex
    if not isinstance(obj, dict):
        raise DecodeError("Session state must be a JSON object")
    return obj


def _section(obj: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = obj.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise DecodeError(f"Session state field '{name}' must be an object")
    return section


def _opt_str(section: Dict[str, Any], key: str) -> Optional[str]:
    val = section.get(key)
    return val if isinstance(val, str) and val != "" else None


def account_from_state(raw_state: bytes, *, identity: Optional[str] = None) -> Account:
    """
    Build an Account from the host's serialized session.

    Only `context.email`, `context.project_id` and `auth.{access_token,
    refresh_token, id_token}` are read. When `identity` is given it wins over
    `context.email`.

    Raises DecodeError when the state is unreadable, has no access token, or
    no identity can be determined.
    """
    obj = _load_session(raw_state)
    context = _section(obj, "context")
    auth = _section(obj, "auth")

    ident = identity or _opt_str(context, "email")
    if not ident:
        raise DecodeError("Session state has no account email")
    access_token = _opt_str(auth, "access_token")
    if not access_token:
        raise DecodeError("Session state has no access token")

    return Account(
        identity=ident,
        auth=AuthTokens(
            access_token=access_token,
            refresh_handle=_opt_str(auth, "refresh_token"),
            id_token=_opt_str(auth, "id_token"),
        ),
        context=SessionContext(project_id=_opt_str(context, "project_id")),
        raw_state=bytes(raw_state),
    )


def identity_of(raw_state: bytes) -> Optional[str]:
    """Return `context.email` of a session, or None if there is no usable one."""
    if not raw_state:
        return None
    try:
        obj = _load_session(raw_state)
        return _opt_str(_section(obj, "context"), "email")
    except DecodeError:
        return None


def with_access_token(raw_state: bytes, access_token: str) -> bytes:
    """Return `raw_state` with `auth.access_token` replaced; other keys are kept."""
    obj = _load_session(raw_state)
    auth = dict(_section(obj, "auth"))
    auth["access_token"] = access_token
    obj["auth"] = auth
    return json.dumps(obj, ensure_ascii=False).encode("utf-8")


__all__ = ["account_from_state", "identity_of", "with_access_token"]
