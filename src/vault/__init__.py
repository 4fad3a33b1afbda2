"""
Account switching for the host application.

`SwitchController` captures and restores host sessions under a single
switch-lock; `TokenRefreshCoordinator` validates and refreshes tokens
without racing the host's own session.
"""

from .config import VaultSettings
from .host import FileHostStateBridge, HostStateBridge
from .refresh import TokenRefreshCoordinator
from .switch import SwitchController, SwitchPhase

__all__ = [
    "VaultSettings",
    "HostStateBridge",
    "FileHostStateBridge",
    "TokenRefreshCoordinator",
    "SwitchController",
    "SwitchPhase",
]
