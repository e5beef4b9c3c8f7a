"""TOTPVault vault modules."""

from totpvault.vault.models import CanonicalEntry, SyncCursor, SyncLogRecord, VaultEntry

__all__ = ["VaultEntry", "CanonicalEntry", "SyncCursor", "SyncLogRecord"]
