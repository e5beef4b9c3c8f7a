"""In-process VaultStore, used by tests and single-process deployments."""

from __future__ import annotations

import itertools
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set

from totpvault.storage.backend import VaultStore
from totpvault.vault.models import SyncLogRecord, VaultEntry

logger = logging.getLogger("totpvault.storage")


class MemoryVaultStore(VaultStore):
    """Dict-backed store; every operation runs under one lock."""

    def __init__(self, clock=None):
        super().__init__(clock)
        self._owners: Set[int] = set()
        self._entries: Dict[int, VaultEntry] = {}
        self._log: List[SyncLogRecord] = []
        self._ids = itertools.count(1)
        self._lock = threading.RLock()

    # -- owners -------------------------------------------------------------
    def add_owner(self, owner_id: int) -> None:
        with self._lock:
            self._owners.add(owner_id)

    def owner_exists(self, owner_id: int) -> bool:
        with self._lock:
            return owner_id in self._owners

    def purge_owner(self, owner_id: int) -> int:
        with self._lock:
            doomed = [i for i, e in self._entries.items() if e.owner_id == owner_id]
            for entry_id in doomed:
                del self._entries[entry_id]
            self._log = [r for r in self._log if r.owner_id != owner_id]
            self._owners.discard(owner_id)
        logger.info("Purged owner %s (%d entries)", owner_id, len(doomed))
        return len(doomed)

    # -- entries ------------------------------------------------------------
    def insert_entry(self, owner_id: int, values: Mapping[str, Any]) -> VaultEntry:
        fields = self.check_changes(values)
        with self._lock:
            now = self.clock()
            entry = VaultEntry(
                id=next(self._ids),
                owner_id=owner_id,
                created_at=now,
                updated_at=now,
                **fields,
            )
            self._entries[entry.id] = entry
            return entry

    def get_entry(
        self, owner_id: int, entry_id: int, include_deleted: bool = False
    ) -> Optional[VaultEntry]:
        with self._lock:
            entry = self._owned(owner_id, entry_id)
        if entry is None or (entry.is_deleted and not include_deleted):
            return None
        return entry

    def list_active(self, owner_id: int) -> List[VaultEntry]:
        with self._lock:
            rows = [
                e for e in self._entries.values() if e.owner_id == owner_id and not e.is_deleted
            ]
        # position ascending, then newest first
        rows.sort(key=lambda e: e.created_at, reverse=True)
        rows.sort(key=lambda e: e.position)
        return rows

    def list_changed_since(self, owner_id: int, since: datetime) -> List[VaultEntry]:
        with self._lock:
            rows = [
                e for e in self._entries.values() if e.owner_id == owner_id and e.updated_at > since
            ]
        rows.sort(key=lambda e: e.updated_at)
        return rows

    def update_entry(
        self, owner_id: int, entry_id: int, changes: Mapping[str, Any]
    ) -> Optional[VaultEntry]:
        fields = self.check_changes(changes)
        with self._lock:
            entry = self._owned(owner_id, entry_id)
            if entry is None or entry.is_deleted:
                return None
            updated = entry.with_changes(updated_at=self.clock(), **fields)
            self._entries[entry_id] = updated
            return updated

    def tombstone(
        self, owner_id: int, entry_id: int, deleted_at: datetime
    ) -> Optional[VaultEntry]:
        with self._lock:
            entry = self._owned(owner_id, entry_id)
            if entry is None or entry.is_deleted:
                return entry
            updated = entry.with_changes(deleted_at=deleted_at, updated_at=self.clock())
            self._entries[entry_id] = updated
            return updated

    def tombstone_all(self, owner_id: int, deleted_at: datetime) -> int:
        count = 0
        with self._lock:
            for entry_id, entry in list(self._entries.items()):
                if entry.owner_id == owner_id and not entry.is_deleted:
                    self._entries[entry_id] = entry.with_changes(
                        deleted_at=deleted_at, updated_at=self.clock()
                    )
                    count += 1
        return count

    # -- sync log -----------------------------------------------------------
    def append_sync_log(self, record: SyncLogRecord) -> None:
        with self._lock:
            self._log.append(record)

    def list_sync_log(self, owner_id: int) -> List[SyncLogRecord]:
        with self._lock:
            return [r for r in self._log if r.owner_id == owner_id]

    # ------------------------------------------------------------------
    def _owned(self, owner_id: int, entry_id: int) -> Optional[VaultEntry]:
        entry = self._entries.get(entry_id)
        if entry is None or entry.owner_id != owner_id:
            return None
        return entry
