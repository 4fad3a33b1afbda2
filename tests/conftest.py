import json
import os
import sys

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `common.*`, `state.*`, `vault.*`
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


def _make_session(
    email: str,
    *,
    access_token: str = "access-token",
    refresh_token: str | None = "refresh-token",
    id_token: str | None = "id-token",
    project_id: str | None = None,
    **extra,
) -> bytes:
    """Host session bytes in the layout the vault parses."""
    auth = {"access_token": access_token}
    if refresh_token is not None:
        auth["refresh_token"] = refresh_token
    if id_token is not None:
        auth["id_token"] = id_token
    context = {"email": email}
    if project_id is not None:
        context["project_id"] = project_id
    return json.dumps({"context": context, "auth": auth, **extra}).encode("utf-8")


@pytest.fixture
def make_session():
    return _make_session
