"""ImportExportOrchestrator: bulk load and dump of an owner's vault.

Export results contain plaintext seeds. Callers must not log or persist them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from totpvault.config import Config
from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.errors import VaultError
from totpvault.formats.bulk import parse_bulk
from totpvault.formats.uri import build_uri, parse_uri
from totpvault.storage.backend import VaultStore
from totpvault.vault.manager import canonical_to_values, require_owner
from totpvault.vault.models import (
    CanonicalEntry,
    ImportedItem,
    ImportResult,
    ItemFailure,
    to_iso,
    utcnow,
)

logger = logging.getLogger("totpvault.transfer")


class ImportExportOrchestrator:
    def __init__(self, store: VaultStore, cipher: EnvelopeCipher):
        self.store = store
        self.cipher = cipher

    # ------------------------------------------------------------------
    #  Import
    # ------------------------------------------------------------------
    def import_bulk(
        self, owner_id: int, raw_payload: Any, replace_all: bool = False
    ) -> ImportResult:
        """Import a FreeOTP+, 2FAuth or canonical JSON payload.

        The payload shape is recognised before anything is written, so an
        unreadable file never wipes the vault even with ``replace_all``.
        """
        require_owner(self.store, owner_id)
        attempts = parse_bulk(raw_payload)

        if replace_all:
            removed = self.store.tombstone_all(owner_id, utcnow())
            logger.info("Replace-all import: %d entries tombstoned", removed)

        imported: List[ImportedItem] = []
        failed: List[ItemFailure] = []
        for attempt in attempts:
            if not attempt.ok:
                failed.append(attempt.failure)
                continue
            self._insert(owner_id, attempt.entry, imported, failed)

        logger.info(
            "Bulk import for owner %s: %d imported, %d failed",
            owner_id,
            len(imported),
            len(failed),
        )
        return ImportResult(imported=imported, failed=failed)

    def import_uris(self, owner_id: int, uris: Iterable[str]) -> ImportResult:
        """Import otpauth URIs; failures are identified by the URI itself."""
        require_owner(self.store, owner_id)
        imported: List[ImportedItem] = []
        failed: List[ItemFailure] = []
        for uri in uris:
            try:
                entry = parse_uri(uri)
            except VaultError as exc:
                failed.append(ItemFailure(str(uri), str(exc)))
                continue
            self._insert(owner_id, entry, imported, failed, identifier=str(uri))

        logger.info(
            "URI import for owner %s: %d imported, %d failed",
            owner_id,
            len(imported),
            len(failed),
        )
        return ImportResult(imported=imported, failed=failed)

    def _insert(
        self,
        owner_id: int,
        entry: CanonicalEntry,
        imported: List[ImportedItem],
        failed: List[ItemFailure],
        identifier: str | None = None,
    ) -> None:
        identifier = identifier or entry.name
        try:
            values = canonical_to_values(entry, self.cipher)
        except VaultError as exc:
            failed.append(ItemFailure(identifier, f"Encryption failed: {exc}"))
            return
        try:
            row = self.store.insert_entry(owner_id, values)
        except Exception:
            logger.exception("Failed to store imported entry")
            failed.append(ItemFailure(identifier, "Failed to store entry"))
            return
        imported.append(ImportedItem(id=row.id, name=row.name, issuer=row.issuer))

    # ------------------------------------------------------------------
    #  Export
    # ------------------------------------------------------------------
    def export_entries(self, owner_id: int) -> List[CanonicalEntry]:
        require_owner(self.store, owner_id)
        return [
            CanonicalEntry(
                name=row.name,
                secret=self.cipher.decrypt(row.secret_encrypted),
                issuer=row.issuer,
                algorithm=row.algorithm,
                digits=row.digits,
                period=row.period,
                icon=row.icon,
                color=row.color,
            )
            for row in self.store.list_active(owner_id)
        ]

    def export_all(self, owner_id: int) -> Dict[str, Any]:
        entries = self.export_entries(owner_id)
        logger.info("Exported %d entries for owner %s", len(entries), owner_id)
        return {
            "version": Config.EXPORT_VERSION,
            "type": Config.EXPORT_TYPE,
            "exportDate": to_iso(utcnow()),
            "entries": [dict(e.to_dict(), type="TOTP") for e in entries],
        }

    def export_uri_list(self, owner_id: int) -> Dict[str, Any]:
        uris = [build_uri(e) for e in self.export_entries(owner_id)]
        logger.info("Exported %d URIs for owner %s", len(uris), owner_id)
        return {"uris": uris, "count": len(uris)}
