"""SyncEngine: delta pull and batched push with tombstones.

Conflict policy is last-write-wins on whole fields. There are no per-field
timestamps or vector clocks, so two devices editing the same entry between
pulls overwrite each other in the order the server applies the statements,
regardless of device clocks.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence

from totpvault.config import Config
from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.errors import NotFoundError, ValidationError, VaultError
from totpvault.formats.validation import validate_record
from totpvault.storage.backend import VaultStore
from totpvault.vault.manager import (
    build_changes,
    canonical_to_values,
    coerce_entry_id,
    coerce_position,
    require_owner,
)
from totpvault.vault.models import (
    ItemFailure,
    PullResult,
    PushResult,
    SyncDirection,
    SyncedEntry,
    SyncLogRecord,
    VaultEntry,
    parse_timestamp,
)

logger = logging.getLogger("totpvault.sync")


class SyncEngine:
    """Stateless apart from its store and cipher; safe to share across requests."""

    def __init__(self, store: VaultStore, cipher: EnvelopeCipher):
        self.store = store
        self.cipher = cipher

    # ------------------------------------------------------------------
    #  Pull
    # ------------------------------------------------------------------
    def pull(
        self,
        owner_id: int,
        since: Any = None,
        device_id: str = Config.DEFAULT_DEVICE_ID,
    ) -> PullResult:
        """Return changes since ``since`` (oldest first) or a full active snapshot.

        ``sync_time`` is taken from the store clock before reading, so any
        write that races with this pull is returned again by the next one
        rather than skipped.
        """
        require_owner(self.store, owner_id)
        since_dt = parse_timestamp(since) if since not in (None, "") else None

        sync_time = self.store.clock()
        if since_dt is None:
            rows = self.store.list_active(owner_id)
        else:
            rows = self.store.list_changed_since(owner_id, since_dt)

        entries = [self._to_synced(row) for row in rows]

        self.store.append_sync_log(
            SyncLogRecord(
                owner_id=owner_id,
                device_id=device_id or Config.DEFAULT_DEVICE_ID,
                direction=SyncDirection.PULL,
                timestamp=sync_time,
            )
        )
        logger.info(
            "Pull for owner %s device %s: %d entries (%s)",
            owner_id,
            device_id,
            len(entries),
            "delta" if since_dt else "snapshot",
        )
        return PullResult(entries=entries, sync_time=sync_time)

    def _to_synced(self, row: VaultEntry) -> SyncedEntry:
        # tombstones are never decrypted
        secret: Optional[str] = None
        if not row.is_deleted:
            secret = self.cipher.decrypt(row.secret_encrypted)
        return SyncedEntry(
            id=row.id,
            name=row.name,
            secret=secret,
            issuer=row.issuer,
            algorithm=row.algorithm,
            digits=row.digits,
            period=row.period,
            icon=row.icon,
            color=row.color,
            position=row.position,
            updated_at=row.updated_at,
            deleted_at=row.deleted_at,
        )

    # ------------------------------------------------------------------
    #  Push
    # ------------------------------------------------------------------
    def push(
        self,
        owner_id: int,
        batch: Sequence[Mapping[str, Any]],
        device_id: str = Config.DEFAULT_DEVICE_ID,
    ) -> PushResult:
        """Apply a batch item by item; a failing item never stops the rest.

        Returned ``ids`` line up with the successfully applied items; for
        inserts they are the freshly minted ids the client must adopt.
        """
        require_owner(self.store, owner_id)
        if not isinstance(batch, (list, tuple)):
            raise ValidationError("Push batch must be a list of entries")

        ids: List[int] = []
        failures: List[ItemFailure] = []
        for index, item in enumerate(batch):
            try:
                ids.append(self._apply(owner_id, item))
            except VaultError as exc:
                failures.append(ItemFailure(_identify(item, index), str(exc)))
            except Exception:
                logger.exception("Unexpected error applying push item %d", index)
                failures.append(ItemFailure(_identify(item, index), "Internal error"))

        sync_time = self.store.clock()
        self.store.append_sync_log(
            SyncLogRecord(
                owner_id=owner_id,
                device_id=device_id or Config.DEFAULT_DEVICE_ID,
                direction=SyncDirection.PUSH,
                timestamp=sync_time,
            )
        )
        logger.info(
            "Push for owner %s device %s: %d applied, %d failed",
            owner_id,
            device_id,
            len(ids),
            len(failures),
        )
        return PushResult(
            updated_count=len(ids),
            failed_count=len(failures),
            ids=ids,
            failures=failures,
            sync_time=sync_time,
        )

    def _apply(self, owner_id: int, item: Any) -> int:
        if not isinstance(item, Mapping):
            raise ValidationError("Entry must be an object")

        # A client-supplied owner reference is never read: every statement
        # below is scoped to the authenticated owner_id.
        if item.get("deleted_at"):
            return self._apply_tombstone(owner_id, item)
        if item.get("id") is not None:
            return self._apply_update(owner_id, item)
        return self._apply_insert(owner_id, item)

    def _apply_tombstone(self, owner_id: int, item: Mapping[str, Any]) -> int:
        if item.get("id") is None:
            raise ValidationError("Tombstone requires an id")
        entry_id = coerce_entry_id(item["id"])
        deleted_at = parse_timestamp(item["deleted_at"])
        entry = self.store.tombstone(owner_id, entry_id, deleted_at)
        if entry is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        return entry.id

    def _apply_update(self, owner_id: int, item: Mapping[str, Any]) -> int:
        entry_id = coerce_entry_id(item["id"])
        changes = build_changes(item, self.cipher)
        if not changes:
            raise ValidationError("No fields to update")
        entry = self.store.update_entry(owner_id, entry_id, changes)
        if entry is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        return entry.id

    def _apply_insert(self, owner_id: int, item: Mapping[str, Any]) -> int:
        canonical = validate_record(item)
        position = coerce_position(item.get("position") or 0)
        entry = self.store.insert_entry(
            owner_id, canonical_to_values(canonical, self.cipher, position)
        )
        return entry.id


def _identify(item: Any, index: int) -> str:
    if isinstance(item, Mapping):
        if item.get("id") is not None:
            return str(item["id"])
        name = item.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return f"#{index}"
