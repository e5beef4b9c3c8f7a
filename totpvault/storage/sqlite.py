"""SQLite VaultStore: schema provisioning and native statements per operation."""

from __future__ import annotations

import logging
import os
import platform
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Mapping, Optional

from totpvault.storage.backend import VaultStore
from totpvault.vault.models import SyncDirection, SyncLogRecord, VaultEntry

logger = logging.getLogger("totpvault.storage")

# Fixed-width UTC text so lexical order equals chronological order.
_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS totp_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    issuer TEXT,
    secret_encrypted TEXT NOT NULL,
    algorithm TEXT NOT NULL DEFAULT 'sha1',
    digits INTEGER NOT NULL DEFAULT 6,
    period INTEGER NOT NULL DEFAULT 30,
    icon TEXT,
    color TEXT,
    position INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_totp_user_id ON totp_entries(user_id);
CREATE INDEX IF NOT EXISTS idx_totp_updated ON totp_entries(user_id, updated_at);

CREATE TABLE IF NOT EXISTS sync_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    device_id TEXT NOT NULL,
    sync_type TEXT NOT NULL,
    synced_at TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);
"""

_ENTRY_COLUMNS = (
    "id, user_id, name, issuer, secret_encrypted, algorithm, digits, period, "
    "icon, color, position, created_at, updated_at, deleted_at"
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def _dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class SqliteVaultStore(VaultStore):
    """Single-file store. One connection, serialised by a lock."""

    def __init__(self, db_path: Path | str, clock=None):
        super().__init__(clock)
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            if platform.system() != "Windows":
                try:
                    os.chmod(path.parent, 0o700)
                except OSError:
                    pass
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()
        if self.db_path != ":memory:" and platform.system() != "Windows":
            try:
                os.chmod(self.db_path, 0o600)
            except OSError as exc:
                logger.warning("Error setting permissions on %s: %s", self.db_path, exc)

    def _init_schema(self) -> None:
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)
        logger.info("Database tables initialized (%s)", self.db_path)

    # -- owners -------------------------------------------------------------
    def add_owner(self, owner_id: int) -> None:
        with self._lock, self._conn:
            self._conn.execute("INSERT OR IGNORE INTO users (id) VALUES (?)", (owner_id,))

    def owner_exists(self, owner_id: int) -> bool:
        with self._lock:
            row = self._conn.execute("SELECT 1 FROM users WHERE id = ?", (owner_id,)).fetchone()
        return row is not None

    def purge_owner(self, owner_id: int) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM totp_entries WHERE user_id = ?", (owner_id,))
            self._conn.execute("DELETE FROM sync_log WHERE user_id = ?", (owner_id,))
            self._conn.execute("DELETE FROM users WHERE id = ?", (owner_id,))
        logger.info("Purged owner %s (%d entries)", owner_id, cur.rowcount)
        return cur.rowcount

    # -- entries ------------------------------------------------------------
    def insert_entry(self, owner_id: int, values: Mapping[str, Any]) -> VaultEntry:
        fields = self.check_changes(values)
        with self._lock, self._conn:
            now = _ts(self.clock())
            columns = ["user_id", *fields.keys(), "created_at", "updated_at"]
            params = [owner_id, *fields.values(), now, now]
            cur = self._conn.execute(
                f"INSERT INTO totp_entries ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            row = self._select_one(owner_id, cur.lastrowid)
        return self._row_to_entry(row)

    def get_entry(
        self, owner_id: int, entry_id: int, include_deleted: bool = False
    ) -> Optional[VaultEntry]:
        with self._lock:
            row = self._select_one(owner_id, entry_id)
        if row is None:
            return None
        entry = self._row_to_entry(row)
        if entry.is_deleted and not include_deleted:
            return None
        return entry

    def list_active(self, owner_id: int) -> List[VaultEntry]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM totp_entries "
                "WHERE user_id = ? AND deleted_at IS NULL "
                "ORDER BY position ASC, created_at DESC, id DESC",
                (owner_id,),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def list_changed_since(self, owner_id: int, since: datetime) -> List[VaultEntry]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM totp_entries "
                "WHERE user_id = ? AND updated_at > ? "
                "ORDER BY updated_at ASC",
                (owner_id, _ts(since)),
            ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def update_entry(
        self, owner_id: int, entry_id: int, changes: Mapping[str, Any]
    ) -> Optional[VaultEntry]:
        fields = self.check_changes(changes)
        assignments = [f"{column} = ?" for column in fields] + ["updated_at = ?"]
        with self._lock, self._conn:
            params = [*fields.values(), _ts(self.clock()), entry_id, owner_id]
            cur = self._conn.execute(
                f"UPDATE totp_entries SET {', '.join(assignments)} "
                "WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
                params,
            )
            if cur.rowcount == 0:
                return None
            row = self._select_one(owner_id, entry_id)
        return self._row_to_entry(row)

    def tombstone(
        self, owner_id: int, entry_id: int, deleted_at: datetime
    ) -> Optional[VaultEntry]:
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE totp_entries SET deleted_at = ?, updated_at = ? "
                "WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
                (_ts(deleted_at), _ts(self.clock()), entry_id, owner_id),
            )
            row = self._select_one(owner_id, entry_id)
        return self._row_to_entry(row) if row is not None else None

    def tombstone_all(self, owner_id: int, deleted_at: datetime) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE totp_entries SET deleted_at = ?, updated_at = ? "
                "WHERE user_id = ? AND deleted_at IS NULL",
                (_ts(deleted_at), _ts(self.clock()), owner_id),
            )
        return cur.rowcount

    # -- sync log -----------------------------------------------------------
    def append_sync_log(self, record: SyncLogRecord) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO sync_log (user_id, device_id, sync_type, synced_at) "
                "VALUES (?, ?, ?, ?)",
                (record.owner_id, record.device_id, record.direction.value, _ts(record.timestamp)),
            )

    def list_sync_log(self, owner_id: int) -> List[SyncLogRecord]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT user_id, device_id, sync_type, synced_at FROM sync_log "
                "WHERE user_id = ? ORDER BY id ASC",
                (owner_id,),
            ).fetchall()
        return [
            SyncLogRecord(
                owner_id=r["user_id"],
                device_id=r["device_id"],
                direction=SyncDirection(r["sync_type"]),
                timestamp=_dt(r["synced_at"]),
            )
            for r in rows
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    def _select_one(self, owner_id: int, entry_id: int) -> Optional[sqlite3.Row]:
        return self._conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM totp_entries WHERE id = ? AND user_id = ?",
            (entry_id, owner_id),
        ).fetchone()

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> VaultEntry:
        return VaultEntry(
            id=row["id"],
            owner_id=row["user_id"],
            name=row["name"],
            issuer=row["issuer"],
            secret_encrypted=row["secret_encrypted"],
            algorithm=row["algorithm"],
            digits=row["digits"],
            period=row["period"],
            icon=row["icon"],
            color=row["color"],
            position=row["position"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            deleted_at=_dt(row["deleted_at"]),
        )
