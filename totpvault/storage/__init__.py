"""TOTPVault persistence backends."""

from totpvault.storage.backend import MUTABLE_FIELDS, MonotonicClock, VaultStore
from totpvault.storage.memory import MemoryVaultStore
from totpvault.storage.sqlite import SqliteVaultStore

__all__ = [
    "VaultStore",
    "MemoryVaultStore",
    "SqliteVaultStore",
    "MonotonicClock",
    "MUTABLE_FIELDS",
]
