"""
Common utilities for the credential vault.

Modules:
- errors: exception hierarchy shared by every layer
- cloudcode: async client for session-init and model listing
- oauth: async OAuth refresh-token grant client
- cache: per-identity model catalog cache
- locks: per-identity and exclusive asyncio locks
- sanitize: log redaction for tokens, emails and home paths
"""

__all__ = [
    "errors",
    "cloudcode",
    "oauth",
    "cache",
    "locks",
    "sanitize",
]
