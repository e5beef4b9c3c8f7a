"""VaultManager: single-entry CRUD and code generation for one owner at a time."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from totpvault.config import Config
from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.errors import NotFoundError, ValidationError
from totpvault.formats.uri import parse_uri
from totpvault.formats.validation import (
    normalize_algorithm,
    normalize_digits,
    normalize_name,
    normalize_period,
    normalize_secret,
    optional_text,
    validate_record,
)
from totpvault.otp.generator import CodeGenerator, GeneratedCode
from totpvault.storage.backend import VaultStore
from totpvault.vault.models import CanonicalEntry, VaultEntry, utcnow

logger = logging.getLogger("totpvault.vault")

# Fields a client may change on an existing entry.
EDITABLE_FIELDS = (
    "name",
    "issuer",
    "secret",
    "algorithm",
    "digits",
    "period",
    "icon",
    "color",
    "position",
)


# ============================================================================
#  Shared helpers (also used by sync and transfer)
# ============================================================================
def require_owner(store: VaultStore, owner_id: int) -> None:
    if not store.owner_exists(owner_id):
        raise NotFoundError("Owner not found", context={"owner_id": owner_id})


def coerce_entry_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid entry id: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid entry id: {value!r}") from None


def coerce_position(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid position: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid position: {value!r}") from None


def canonical_to_values(
    entry: CanonicalEntry, cipher: EnvelopeCipher, position: int = 0
) -> Dict[str, Any]:
    """Store columns for a new row; the plaintext seed stops here."""
    return {
        "name": entry.name,
        "issuer": entry.issuer,
        "secret_encrypted": cipher.encrypt(entry.secret),
        "algorithm": entry.algorithm,
        "digits": entry.digits,
        "period": entry.period,
        "icon": entry.icon,
        "color": entry.color,
        "position": position,
    }


def build_changes(fields: Mapping[str, Any], cipher: EnvelopeCipher) -> Dict[str, Any]:
    """Validate client-supplied edits and map them onto store columns.

    A missing or null secret keeps the stored ciphertext. Null name, algorithm,
    digits, period or position mean "unchanged"; null issuer, icon or color
    clear the value.
    """
    changes: Dict[str, Any] = {}
    if fields.get("name") is not None:
        changes["name"] = normalize_name(fields["name"])
    if "issuer" in fields:
        changes["issuer"] = optional_text(fields["issuer"])
    if fields.get("secret") not in (None, ""):
        changes["secret_encrypted"] = cipher.encrypt(normalize_secret(fields["secret"]))
    if fields.get("algorithm") is not None:
        changes["algorithm"] = normalize_algorithm(fields["algorithm"])
    if fields.get("digits") is not None:
        changes["digits"] = normalize_digits(fields["digits"])
    if fields.get("period") is not None:
        changes["period"] = normalize_period(fields["period"])
    if "icon" in fields:
        changes["icon"] = optional_text(fields["icon"])
    if "color" in fields:
        changes["color"] = optional_text(fields["color"])
    if fields.get("position") is not None:
        changes["position"] = coerce_position(fields["position"])
    return changes


# ============================================================================
#  VaultManager
# ============================================================================
class VaultManager:
    """High-level single-entry operations. Errors propagate to the caller."""

    def __init__(self, store: VaultStore, cipher: EnvelopeCipher):
        self.store = store
        self.cipher = cipher

    # ------------------------------------------------------------------
    #  Read
    # ------------------------------------------------------------------
    def list_entries(self, owner_id: int) -> List[VaultEntry]:
        require_owner(self.store, owner_id)
        return self.store.list_active(owner_id)

    def get_entry(self, owner_id: int, entry_id: int) -> VaultEntry:
        entry = self.store.get_entry(owner_id, coerce_entry_id(entry_id))
        if entry is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        return entry

    # ------------------------------------------------------------------
    #  Create
    # ------------------------------------------------------------------
    def add_entry(
        self,
        owner_id: int,
        record: Union[CanonicalEntry, Mapping[str, Any]],
        position: int = 0,
    ) -> VaultEntry:
        require_owner(self.store, owner_id)
        canonical = record if isinstance(record, CanonicalEntry) else validate_record(record)
        entry = self.store.insert_entry(
            owner_id, canonical_to_values(canonical, self.cipher, coerce_position(position))
        )
        logger.info("Entry %d created for owner %s", entry.id, owner_id)
        return entry

    def add_from_uri(self, owner_id: int, uri: str, position: int = 0) -> VaultEntry:
        return self.add_entry(owner_id, parse_uri(uri), position)

    # ------------------------------------------------------------------
    #  Update / delete
    # ------------------------------------------------------------------
    def update_entry(self, owner_id: int, entry_id: int, **fields) -> VaultEntry:
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        changes = build_changes(fields, self.cipher)
        if not changes:
            raise ValidationError("No fields to update")

        entry = self.store.update_entry(owner_id, coerce_entry_id(entry_id), changes)
        if entry is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        logger.info("Entry %d updated (%s)", entry.id, ", ".join(sorted(changes)))
        return entry

    def delete_entry(
        self, owner_id: int, entry_id: int, deleted_at: Optional[datetime] = None
    ) -> VaultEntry:
        entry_id = coerce_entry_id(entry_id)
        if self.store.get_entry(owner_id, entry_id) is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        entry = self.store.tombstone(owner_id, entry_id, deleted_at or utcnow())
        if entry is None:
            raise NotFoundError("Entry not found", context={"entry_id": entry_id})
        logger.info("Entry %d tombstoned", entry_id)
        return entry

    def delete_account(self, owner_id: int) -> int:
        """Physically remove everything an owner has; the only hard delete."""
        require_owner(self.store, owner_id)
        return self.store.purge_owner(owner_id)

    # ------------------------------------------------------------------
    #  Codes
    # ------------------------------------------------------------------
    def generate_code(
        self, owner_id: int, entry_id: int, at: Optional[float] = None
    ) -> GeneratedCode:
        entry = self.get_entry(owner_id, entry_id)
        secret = self.cipher.decrypt(entry.secret_encrypted)
        return CodeGenerator.generate(
            secret,
            algorithm=entry.algorithm,
            digits=entry.digits,
            period=entry.period,
            at=at,
        )

    def verify_code(
        self, owner_id: int, entry_id: int, code: str, at: Optional[float] = None
    ) -> bool:
        entry = self.get_entry(owner_id, entry_id)
        secret = self.cipher.decrypt(entry.secret_encrypted)
        return CodeGenerator.verify(
            code,
            secret,
            algorithm=entry.algorithm,
            digits=entry.digits,
            period=entry.period,
            at=at,
            window=Config.VERIFY_WINDOW,
        )
