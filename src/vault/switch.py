from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from pydantic import ValidationError

from common.errors import DecodeError, NotFoundError
from common.locks import hold_exclusive
from state import codec
from state.files import CAPTURE_SUFFIX, CaptureDirectory, atomic_write_bytes
from state.models import Account, ExportedAccount
from state.session import account_from_state, identity_of
from state.store import AccountStore

from .host import HostStateBridge
from .refresh import TokenRefreshCoordinator


logger = logging.getLogger(__name__)

MIN_PASSWORD_LEN = 4
MAX_PASSWORD_LEN = 50


class SwitchPhase(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PERSISTED = "persisted"
    RESTORING = "restoring"
    VALIDATING = "validating"
    FAILED = "failed"


def check_password_policy(password: str) -> None:
    """Reject export passwords outside 4..50 characters."""
    if not password or not password.strip():
        raise ValueError("password is required")
    if len(password) < MIN_PASSWORD_LEN:
        raise ValueError(f"password must be at least {MIN_PASSWORD_LEN} characters")
    if len(password) > MAX_PASSWORD_LEN:
        raise ValueError(f"password must be at most {MAX_PASSWORD_LEN} characters")


class SwitchController:
    """
    Capture, restore and back up host sessions, one identity at a time.

    The host exposes a single active session, so every operation that reads
    or writes it (`capture`, `restore`, `switch_to`) holds the switch-lock for
    its whole duration. With `blocking=False` (default) a busy lock raises
    SwitchConflictError at once; with `blocking=True` the call waits its turn.

    Phases: IDLE -> CAPTURING -> PERSISTED -> RESTORING -> VALIDATING -> IDLE.
    Any failure moves to FAILED and releases the lock; the next operation
    starts again from IDLE.

    Usage
        controller = SwitchController(host=..., store=AccountStore(),
                                      captures=CaptureDirectory(dir),
                                      refresher=TokenRefreshCoordinator(...))
        controller.load_captures()
        await controller.capture()
        await controller.switch_to("bob@example.com")
    """

    def __init__(
        self,
        *,
        host: HostStateBridge,
        store: AccountStore,
        captures: CaptureDirectory,
        refresher: TokenRefreshCoordinator,
        exports_dir: Optional[os.PathLike[str] | str] = None,
        on_phase: Optional[Callable[[SwitchPhase], None]] = None,
    ) -> None:
        self._host = host
        self._store = store
        self._captures = captures
        self._refresher = refresher
        self._exports_dir = Path(exports_dir) if exports_dir else None
        self._on_phase = on_phase
        self._lock = asyncio.Lock()
        self._phase = SwitchPhase.IDLE

    @property
    def phase(self) -> SwitchPhase:
        return self._phase

    @property
    def store(self) -> AccountStore:
        return self._store

    @property
    def captures(self) -> CaptureDirectory:
        return self._captures

    def list_accounts(self) -> List[Account]:
        return sorted(self._store.list(), key=lambda a: a.identity)

    def active_identity(self) -> Optional[str]:
        return identity_of(self._host.read_state())

    # -------- Host operations (switch-lock) --------
    async def capture(self, identity: Optional[str] = None, *, blocking: bool = False) -> Account:
        """Snapshot the host's current session into the store and its capture file."""
        async with self._operation(blocking):
            return self._capture_locked(identity)

    async def restore(self, identity: str, *, blocking: bool = False) -> None:
        """Validate `identity`'s session and make it the host's active session."""
        async with self._operation(blocking):
            await self._restore_locked(identity)

    async def switch_to(self, identity: str, *, blocking: bool = False) -> Account:
        """Capture whoever is signed in to the host, then restore `identity`."""
        async with self._operation(blocking):
            current = self.active_identity()
            if current:
                try:
                    self._capture_locked(current)
                except DecodeError as ex:
                    # Host has a half-written session; nothing worth keeping
                    logger.warning("Skipping capture of %s before switch: %s", current, ex)
            return await self._restore_locked(identity)

    async def load_models(self, identity: str) -> Optional[Dict[str, Any]]:
        account = self._require_account(identity)
        return await self._refresher.load_models(account, self.active_identity())

    # -------- Backup files --------
    def export_backup(
        self,
        identity: str,
        password: str,
        path: Optional[os.PathLike[str] | str] = None,
    ) -> Path:
        """Seal `identity`'s in-memory session state into a v2 backup file."""
        check_password_policy(password)
        account = self._require_account(identity)
        envelope = codec.encode(account.raw_state, password)
        target = Path(path) if path else self._default_export_path(identity)
        atomic_write_bytes(target, envelope.to_json().encode("utf-8"))
        logger.info("Exported %s to %s", identity, target)
        return target

    def export_bundle(self, password: str, path: os.PathLike[str] | str) -> Path:
        """Seal every capture file into one backup; corrupt captures are skipped."""
        check_password_policy(password)
        entries = self._collect_captures()
        payload = json.dumps([e.model_dump() for e in entries], ensure_ascii=False).encode("utf-8")
        target = atomic_write_bytes(Path(path), codec.encode_text(payload, password).encode("utf-8"))
        logger.info("Exported %d accounts to %s", len(entries), target)
        return target

    def import_backup(self, path: os.PathLike[str] | str, password: str) -> Account:
        """Decode a single-account backup (sealed or legacy) and register it.

        Nothing is registered unless decoding and parsing both succeed.
        """
        raw_state = codec.decode(Path(path).read_bytes(), password)
        account = account_from_state(raw_state)
        self._register(account)
        logger.info("Imported %s", account.identity)
        return account

    def import_bundle(self, path: os.PathLike[str] | str, password: str) -> List[Account]:
        """Decode a multi-account backup; all entries parse before any is registered."""
        plaintext = codec.decode(Path(path).read_bytes(), password)
        try:
            items = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as ex:
            raise DecodeError("Backup bundle is not valid JSON") from ex
        if not isinstance(items, list):
            raise DecodeError("Backup bundle must be a JSON array")

        accounts: List[Account] = []
        for item in items:
            try:
                entry = ExportedAccount.model_validate(item)
            except ValidationError as ve:
                raise DecodeError(f"Malformed bundle entry: {ve}") from ve
            if not entry.filename.endswith(CAPTURE_SUFFIX):
                raise DecodeError(f"Unexpected bundle file name: {entry.filename}")
            identity = entry.filename[: -len(CAPTURE_SUFFIX)]
            try:
                self._captures.path_for(identity)
            except ValueError as ex:
                raise DecodeError(str(ex)) from ex
            raw_state = json.dumps(entry.content, ensure_ascii=False).encode("utf-8")
            accounts.append(account_from_state(raw_state, identity=identity))

        for account in accounts:
            self._register(account)
        logger.info("Imported %d accounts from bundle", len(accounts))
        return accounts

    def load_captures(self) -> List[Account]:
        """Register every readable capture file; unparsable ones are skipped."""
        loaded: List[Account] = []
        for identity, raw_state in self._captures.scan():
            try:
                account = account_from_state(raw_state, identity=identity)
            except DecodeError as ex:
                logger.warning("Skipping corrupt capture %s: %s", identity, ex)
                continue
            self._store.put(account)
            loaded.append(account)
        return loaded

    def remove(self, identity: str) -> None:
        removed = self._store.remove(identity) is not None
        deleted = self._captures.delete(identity)
        if not removed and not deleted:
            raise NotFoundError(f"Unknown account: {identity}")
        self._refresher.cache.discard(identity)
        logger.info("Removed %s", identity)

    def clear_all(self) -> int:
        """Delete every capture file and forget every account; returns files deleted."""
        for account in self._store.list():
            self._refresher.cache.discard(account.identity)
        deleted = self._captures.clear()
        self._store.clear()
        logger.info("Cleared %d capture files", deleted)
        return deleted

    # -------- Internal --------
    @asynccontextmanager
    async def _operation(self, blocking: bool) -> AsyncIterator[None]:
        async with hold_exclusive(self._lock, blocking=blocking, what="host session"):
            self._enter(SwitchPhase.IDLE)
            try:
                yield
            except BaseException:
                self._enter(SwitchPhase.FAILED)
                raise
            self._enter(SwitchPhase.IDLE)

    def _enter(self, phase: SwitchPhase) -> None:
        self._phase = phase
        logger.debug("Switch phase -> %s", phase.value)
        if self._on_phase is not None:
            self._on_phase(phase)

    def _capture_locked(self, identity: Optional[str]) -> Account:
        self._enter(SwitchPhase.CAPTURING)
        raw_state = self._host.read_state()
        if not raw_state:
            raise NotFoundError("No active session in the host")
        account = account_from_state(raw_state, identity=identity)
        host_identity = identity_of(raw_state)
        if identity and host_identity and identity != host_identity:
            logger.warning("Capturing host session of %s as %s", host_identity, identity)
        self._register(account)
        self._enter(SwitchPhase.PERSISTED)
        logger.info("Captured %s", account.identity)
        return account

    async def _restore_locked(self, identity: str) -> Account:
        self._enter(SwitchPhase.RESTORING)
        account = self._require_account(identity)
        active = self.active_identity()
        self._enter(SwitchPhase.VALIDATING)
        await self._refresher.ensure_valid_session(account, active)
        self._host.write_state(account.raw_state)
        logger.info("Restored %s (token_state=%s)", identity, account.token_state.value)
        return account

    def _register(self, account: Account) -> None:
        # File first: a failed write must not leave an unpersisted registration
        self._captures.write(account.identity, account.raw_state)
        self._store.put(account)

    def _require_account(self, identity: str) -> Account:
        account = self._store.get(identity)
        if account is None:
            raise NotFoundError(f"Unknown account: {identity}")
        return account

    def _default_export_path(self, identity: str) -> Path:
        if self._exports_dir is None:
            raise ValueError("No export path given and no exports directory configured")
        # Reuse the capture-name check for the export file name
        name = self._captures.path_for(identity).stem
        return self._exports_dir / f"{name}.vault.json"

    def _collect_captures(self) -> List[ExportedAccount]:
        entries: List[ExportedAccount] = []
        now = int(time.time())
        for identity, raw_state in self._captures.scan():
            try:
                content = json.loads(raw_state.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError) as ex:
                logger.warning("Skipping corrupt capture %s: %s", identity, ex)
                continue
            entries.append(
                ExportedAccount(filename=f"{identity}{CAPTURE_SUFFIX}", content=content, timestamp=now)
            )
        return entries


__all__ = ["SwitchController", "SwitchPhase", "check_password_policy"]
