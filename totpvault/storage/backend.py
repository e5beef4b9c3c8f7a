"""VaultStore: the persistence contract every backend implements.

Operations are expressed at the level the vault needs them ("insert and
return the generated id", "tombstone this row") so each backend can implement
them natively. A single call is atomic; nothing spans calls.
"""

from __future__ import annotations

import abc
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from totpvault.vault.models import SyncLogRecord, VaultEntry, utcnow

# Columns a caller may change through update_entry.
MUTABLE_FIELDS = (
    "name",
    "issuer",
    "secret_encrypted",
    "algorithm",
    "digits",
    "period",
    "icon",
    "color",
    "position",
)


class MonotonicClock:
    """Timestamps that strictly increase even if the wall clock stalls or steps back."""

    def __init__(self, source: Callable[[], datetime] = utcnow):
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            now = self._source()
            if self._last is not None and now <= self._last:
                now = self._last + timedelta(microseconds=1)
            self._last = now
            return now


class VaultStore(abc.ABC):
    """Row-oriented entry table, append-only sync log, and owners."""

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self.clock = clock if isinstance(clock, MonotonicClock) else MonotonicClock(clock or utcnow)

    # -- owners -------------------------------------------------------------
    @abc.abstractmethod
    def add_owner(self, owner_id: int) -> None:
        """Register an owner (supplied by the users table upstream)."""

    @abc.abstractmethod
    def owner_exists(self, owner_id: int) -> bool: ...

    @abc.abstractmethod
    def purge_owner(self, owner_id: int) -> int:
        """Physically delete every entry and log row of an owner (account deletion)."""

    # -- entries ------------------------------------------------------------
    @abc.abstractmethod
    def insert_entry(self, owner_id: int, values: Mapping[str, Any]) -> VaultEntry:
        """Insert a row and return it with its generated id."""

    @abc.abstractmethod
    def get_entry(
        self, owner_id: int, entry_id: int, include_deleted: bool = False
    ) -> Optional[VaultEntry]: ...

    @abc.abstractmethod
    def list_active(self, owner_id: int) -> List[VaultEntry]:
        """Active rows ordered by position, newest first within a position."""

    @abc.abstractmethod
    def list_changed_since(self, owner_id: int, since: datetime) -> List[VaultEntry]:
        """Active and tombstoned rows with ``updated_at > since``, oldest change first."""

    @abc.abstractmethod
    def update_entry(
        self, owner_id: int, entry_id: int, changes: Mapping[str, Any]
    ) -> Optional[VaultEntry]:
        """Overwrite mutable columns of an active owned row; None if there is none."""

    @abc.abstractmethod
    def tombstone(
        self, owner_id: int, entry_id: int, deleted_at: datetime
    ) -> Optional[VaultEntry]:
        """Mark an owned row deleted. Already tombstoned rows are returned unchanged."""

    @abc.abstractmethod
    def tombstone_all(self, owner_id: int, deleted_at: datetime) -> int:
        """Tombstone every active row of an owner, returning how many changed."""

    # -- sync log -----------------------------------------------------------
    @abc.abstractmethod
    def append_sync_log(self, record: SyncLogRecord) -> None: ...

    @abc.abstractmethod
    def list_sync_log(self, owner_id: int) -> List[SyncLogRecord]: ...

    def close(self) -> None:
        """Release backend resources."""

    # -- helpers ------------------------------------------------------------
    @staticmethod
    def check_changes(changes: Mapping[str, Any]) -> Dict[str, Any]:
        unknown = set(changes) - set(MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not mutable: {', '.join(sorted(unknown))}")
        return dict(changes)
