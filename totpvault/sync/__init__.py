"""TOTPVault multi-device synchronization."""

from totpvault.sync.engine import SyncEngine

__all__ = ["SyncEngine"]
