"""Vault records: stored entries, interchange entries, sync bookkeeping, results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from totpvault.errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Accept aware/naive datetimes, ISO 8601 strings, or unix seconds."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Invalid timestamp: {value}") from exc
    else:
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class SyncDirection(str, Enum):
    PULL = "pull"
    PUSH = "push"


# ============================================================================
#  VaultEntry (stored row)
# ============================================================================
@dataclass(frozen=True)
class VaultEntry:
    """A stored account. Only the encrypted envelope of the seed is kept."""

    id: int
    owner_id: int
    name: str
    secret_encrypted: str
    issuer: Optional[str] = None
    algorithm: str = "sha1"
    digits: int = 6
    period: int = 30
    icon: Optional[str] = None
    color: Optional[str] = None
    position: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def with_changes(self, **changes) -> VaultEntry:
        return replace(self, **changes)

    def to_public_dict(self) -> Dict[str, Any]:
        """Listing view, never includes secret material."""
        return {
            "id": self.id,
            "name": self.name,
            "issuer": self.issuer,
            "algorithm": self.algorithm,
            "digits": self.digits,
            "period": self.period,
            "icon": self.icon,
            "color": self.color,
            "position": self.position,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


# ============================================================================
#  CanonicalEntry (interchange)
# ============================================================================
@dataclass(frozen=True)
class CanonicalEntry:
    name: str
    secret: str
    issuer: Optional[str] = None
    algorithm: str = "sha1"
    digits: int = 6
    period: int = 30
    icon: Optional[str] = None
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "issuer": self.issuer or "",
            "secret": self.secret,
            "algorithm": self.algorithm,
            "digits": self.digits,
            "period": self.period,
            "icon": self.icon,
            "color": self.color,
        }


# ============================================================================
#  Sync bookkeeping
# ============================================================================
@dataclass(frozen=True)
class SyncCursor:
    """Client-held marker of the last successful sync for one device."""

    device_id: str
    last_sync_time: Optional[datetime] = None

    def advance(self, sync_time: datetime) -> SyncCursor:
        return replace(self, last_sync_time=sync_time)


@dataclass(frozen=True)
class SyncLogRecord:
    owner_id: int
    device_id: str
    direction: SyncDirection
    timestamp: datetime = field(default_factory=utcnow)


# ============================================================================
#  Operation results
# ============================================================================
@dataclass(frozen=True)
class ItemFailure:
    identifier: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.identifier, "reason": self.reason}


@dataclass(frozen=True)
class ParseAttempt:
    """Outcome of normalizing one record of a bulk payload."""

    index: int
    entry: Optional[CanonicalEntry] = None
    failure: Optional[ItemFailure] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None


@dataclass(frozen=True)
class SyncedEntry:
    """One row of a pull response; ``secret`` is None for tombstones."""

    id: int
    name: str
    secret: Optional[str]
    issuer: Optional[str]
    algorithm: str
    digits: int
    period: int
    icon: Optional[str]
    color: Optional[str]
    position: int
    updated_at: datetime
    deleted_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "issuer": self.issuer,
            "secret": self.secret,
            "algorithm": self.algorithm,
            "digits": self.digits,
            "period": self.period,
            "icon": self.icon,
            "color": self.color,
            "position": self.position,
            "updated_at": to_iso(self.updated_at),
            "deleted_at": to_iso(self.deleted_at),
        }


@dataclass(frozen=True)
class PullResult:
    entries: List[SyncedEntry]
    sync_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "syncTime": to_iso(self.sync_time),
        }


@dataclass(frozen=True)
class PushResult:
    updated_count: int
    failed_count: int
    ids: List[int]
    failures: List[ItemFailure]
    sync_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updatedCount": self.updated_count,
            "failedCount": self.failed_count,
            "ids": list(self.ids),
            "failed": [f.to_dict() for f in self.failures],
            "syncTime": to_iso(self.sync_time),
        }


@dataclass(frozen=True)
class ImportedItem:
    id: int
    name: str
    issuer: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "issuer": self.issuer}


@dataclass(frozen=True)
class ImportResult:
    imported: List[ImportedItem]
    failed: List[ItemFailure]

    @property
    def imported_count(self) -> int:
        return len(self.imported)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported_count,
            "failed": self.failed_count,
            "details": {
                "imported": [i.to_dict() for i in self.imported],
                "failed": [f.to_dict() for f in self.failed],
            },
        }
