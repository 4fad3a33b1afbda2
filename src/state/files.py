from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator, Tuple


logger = logging.getLogger(__name__)

CAPTURE_SUFFIX = ".json"


def atomic_write_bytes(path: os.PathLike[str] | str, data: bytes) -> Path:
    """Write `data` to `path` so readers only ever see the old or the new file.

    The bytes go to a temp file in the destination directory, are fsynced,
    and then renamed over the destination. If anything fails (or the task is
    cancelled) before the rename, the previous file is left untouched.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.tmp-", dir=target.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    finally:
        # Best-effort cleanup of the temp file when the rename did not happen
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
    return target


def _check_identity(identity: str) -> str:
    if not identity or not identity.strip():
        raise ValueError("identity is required")
    if identity.startswith(".") or any(ch in identity for ch in ("/", "\\", "\x00")):
        raise ValueError(f"identity is not usable as a file name: {identity!r}")
    return identity


class CaptureDirectory:
    """
    One plaintext capture file per identity: `<root>/<identity>.json`.

    Files hold the host's raw session bytes exactly as captured. They are not
    encrypted; sealing happens only on explicit export.
    """

    def __init__(self, root: os.PathLike[str] | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, identity: str) -> Path:
        return self._root / f"{_check_identity(identity)}{CAPTURE_SUFFIX}"

    def write(self, identity: str, raw_state: bytes) -> Path:
        return atomic_write_bytes(self.path_for(identity), raw_state)

    def delete(self, identity: str) -> bool:
        path = self.path_for(identity)
        if not path.exists():
            return False
        path.unlink()
        return True

    def clear(self) -> int:
        if not self._root.exists():
            return 0
        deleted = 0
        for path in self._root.glob(f"*{CAPTURE_SUFFIX}"):
            path.unlink()
            deleted += 1
        return deleted

    def scan(self) -> Iterator[Tuple[str, bytes]]:
        """Yield `(identity, raw_state)` for every readable capture file."""
        if not self._root.exists():
            return
        for path in sorted(self._root.glob(f"*{CAPTURE_SUFFIX}")):
            if not path.is_file():
                continue
            try:
                data = path.read_bytes()
            except OSError as ex:
                logger.warning("Skipping unreadable capture file %s: %s", path.name, ex)
                continue
            yield path.name[: -len(CAPTURE_SUFFIX)], data


__all__ = ["atomic_write_bytes", "CaptureDirectory", "CAPTURE_SUFFIX"]
