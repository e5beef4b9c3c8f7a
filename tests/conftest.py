"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from totpvault.crypto.cipher import EnvelopeCipher
from totpvault.storage.memory import MemoryVaultStore
from totpvault.storage.sqlite import SqliteVaultStore
from totpvault.sync.engine import SyncEngine
from totpvault.transfer.orchestrator import ImportExportOrchestrator
from totpvault.vault.manager import VaultManager

TEST_KEY = b"0123456789abcdef0123456789abcdef"
OWNER_A = 1
OWNER_B = 2

# Base32 of b"Hello!\xde\xad\xbe\xef"
HELLO_SECRET = "JBSWY3DPEHPK3PXP"
OTHER_SECRET = "GEZDGNBVGY3TQOJQ"


class StepClock:
    """Deterministic wall clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def cipher():
    return EnvelopeCipher(TEST_KEY)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """A store with owners A and B registered, on each backend."""
    if request.param == "memory":
        backend = MemoryVaultStore(clock=StepClock())
    else:
        backend = SqliteVaultStore(tmp_path / "db" / "vault.db", clock=StepClock())
    backend.add_owner(OWNER_A)
    backend.add_owner(OWNER_B)
    yield backend
    backend.close()


@pytest.fixture
def manager(store, cipher):
    return VaultManager(store, cipher)


@pytest.fixture
def engine(store, cipher):
    return SyncEngine(store, cipher)


@pytest.fixture
def orchestrator(store, cipher):
    return ImportExportOrchestrator(store, cipher)


def make_record(name: str, secret: str = HELLO_SECRET, **extra) -> dict:
    record = {"name": name, "secret": secret}
    record.update(extra)
    return record
