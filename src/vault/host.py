from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from state.files import atomic_write_bytes


class HostStateBridge(Protocol):
    """Access to the host application's single active session.

    `write_state` is expected to be atomic: readers see either the previous
    session or the new one, never a mix.
    """

    def read_state(self) -> bytes: ...

    def write_state(self, raw_state: bytes) -> None: ...


class FileHostStateBridge:
    """Host session kept in one file; a missing file means no active session."""

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read_state(self) -> bytes:
        if not self._path.exists():
            return b""
        return self._path.read_bytes()

    def write_state(self, raw_state: bytes) -> None:
        atomic_write_bytes(self._path, raw_state)


__all__ = ["HostStateBridge", "FileHostStateBridge"]
