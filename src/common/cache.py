from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    project_id: str
    models: Dict[str, Any]
    fetched_at: str  # ISO 8601 timestamp with offset, e.g., "+00:00"


class ModelCatalogCache:
    """
    Last fetched model catalog per identity.

    - Key: account identity (email). Value: project id, `{model_id: descriptor}`
      and the fetch time.
    - Memory-only by default. With a `path`, entries are also mirrored to a
      single JSON file so the catalog survives restarts; the file is a cache,
      so read and write failures only log.
    """

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else None
        self._data: Dict[str, _Entry] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self._path is None or not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as ex:
            logger.warning("Ignoring unreadable model cache %s: %s", self._path, ex)
            return
        if not isinstance(raw, dict):
            return
        for identity, v in raw.items():
            if not isinstance(v, dict) or not isinstance(v.get("models"), dict):
                continue
            self._data[str(identity)] = _Entry(
                project_id=str(v.get("project_id", "")),
                models=v["models"],
                fetched_at=str(v.get("fetched_at", "")),
            )

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as f:
                json.dump({k: asdict(v) for k, v in self._data.items()}, f, indent=2, sort_keys=True)
        except OSError as ex:
            logger.warning("Could not write model cache %s: %s", self._path, ex)

    def get(self, identity: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_loaded()
            entry = self._data.get(identity)
            return dict(entry.models) if entry else None

    def project_of(self, identity: str) -> Optional[str]:
        with self._lock:
            self._ensure_loaded()
            entry = self._data.get(identity)
            if entry is None:
                return None
            return entry.project_id or None

    def put(self, identity: str, *, project_id: str, models: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_loaded()
            now = datetime.now(UTC).isoformat(timespec="seconds")
            self._data[identity] = _Entry(project_id=project_id, models=dict(models), fetched_at=now)
            self._save()

    def discard(self, identity: str) -> None:
        with self._lock:
            self._ensure_loaded()
            if self._data.pop(identity, None) is not None:
                self._save()


__all__ = ["ModelCatalogCache"]
