from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .models import Account


class AccountStore:
    """
    In-memory registry of known accounts keyed by identity.

    - At most one Account per identity; `put()` replaces.
    - `list()` returns a snapshot; later mutations of the store do not affect it.
    - Thread-safe. No file or network I/O; persistence lives in `state.files`.

    Instances are owned by whoever builds the SwitchController and passed
    down explicitly; there is no module-level registry.
    """

    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.Lock()

    def put(self, account: Account) -> None:
        with self._lock:
            self._accounts[account.identity] = account

    def get(self, identity: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(identity)

    def list(self) -> List[Account]:
        with self._lock:
            return list(self._accounts.values())

    def remove(self, identity: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.pop(identity, None)

    def clear(self) -> None:
        with self._lock:
            self._accounts.clear()

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._accounts

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)
