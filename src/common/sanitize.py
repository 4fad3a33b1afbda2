"""
Masking of secrets and personal data in log output.

- Emails keep their first and last local character: `user@x.com` -> `u***r@x.com`.
- Token-like key/value pairs (`access_token`, `refresh_token`, `client_secret`,
  ...) and `Bearer` tokens keep their first four characters.
- User home directories collapse to `~`.

`configure_logging()` installs `RedactingFilter` on the root handler so every
module logger is covered without each call site having to remember.
"""

from __future__ import annotations

import logging
import re
from typing import Optional


_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_SENSITIVE_KV_RE = re.compile(
    r"""
    (?P<prefix>
        \\?["']?
        (?:key|token|secret|api[-_]?key|access[-_]?token|id[-_]?token|
           refresh[-_]?token|client[-_]?secret)
        \\?["']?
    )
    (?P<sep>\s*[:=]\s*\\?["']?)
    (?P<value>[A-Za-z0-9._~+/=-]{20,})
    """,
    re.IGNORECASE | re.VERBOSE,
)
_BEARER_RE = re.compile(r"(?P<prefix>Bearer\s+)(?P<value>[A-Za-z0-9._~+/=-]{20,})", re.IGNORECASE)
_UNIX_HOME_RE = re.compile(r"/home/[^/\s]+")
_WINDOWS_HOME_RE = re.compile(r"C:\\Users\\[^\\\s]+", re.IGNORECASE)

_VISIBLE = 4


def _mask(value: str) -> str:
    if len(value) <= _VISIBLE:
        return value
    return value[:_VISIBLE] + "*" * (len(value) - _VISIBLE)


def _mask_email(m: re.Match[str]) -> str:
    email = m.group(0)
    local, _, domain = email.partition("@")
    if len(local) <= 1:
        return email
    if len(local) == 2:
        return f"{local[0]}*@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"


def sanitize_email(text: str) -> str:
    return _EMAIL_RE.sub(_mask_email, text)


def sanitize_paths(text: str) -> str:
    text = _UNIX_HOME_RE.sub("~", text)
    return _WINDOWS_HOME_RE.sub("~", text)


def sanitize_secrets(text: str) -> str:
    text = _SENSITIVE_KV_RE.sub(lambda m: f"{m['prefix']}{m['sep']}{_mask(m['value'])}", text)
    return _BEARER_RE.sub(lambda m: f"{m['prefix']}{_mask(m['value'])}", text)


def sanitize(text: str) -> str:
    return sanitize_secrets(sanitize_paths(sanitize_email(text)))


class RedactingFilter(logging.Filter):
    """Rewrite each record's message through `sanitize()`."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = sanitize(message)
        record.args = None
        return True


def configure_logging(level: str | int = "INFO", *, handler: Optional[logging.Handler] = None) -> logging.Handler:
    """Attach a redacting stream handler to the root logger and set its level.

    Calling it again only updates the level and returns the handler already
    installed.
    """
    root = logging.getLogger()
    level = level if isinstance(level, int) else level.upper()
    for existing in root.handlers:
        if any(isinstance(f, RedactingFilter) for f in existing.filters):
            root.setLevel(level)
            return existing
    h = handler or logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    h.addFilter(RedactingFilter())
    root.addHandler(h)
    root.setLevel(level)
    return h


__all__ = [
    "sanitize",
    "sanitize_email",
    "sanitize_paths",
    "sanitize_secrets",
    "RedactingFilter",
    "configure_logging",
]
