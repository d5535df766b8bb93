import pytest
import pytest_asyncio

from stoa_vault.storage import MemoryStore
from stoa_vault.vault.session_vault import VaultSession


class FailingStore(MemoryStore):
    """Store whose reads and/or writes raise."""

    def __init__(self, fail_get: bool = False, fail_set: bool = True):
        super().__init__()
        self.fail_get = fail_get
        self.fail_set = fail_set

    def get(self, key):
        if self.fail_get:
            raise OSError("disk unavailable")
        return super().get(key)

    def set(self, key, value):
        if self.fail_set:
            raise OSError("disk full")
        super().set(key, value)


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return MemoryStore()


@pytest.fixture
def session(store):
    """Locked session over the in-memory store."""
    return VaultSession(store)


@pytest_asyncio.fixture
async def unlocked(session):
    """Session unlocked with a known passphrase."""
    await session.initialize("correct-horse")
    return session


@pytest.fixture
def failing_store():
    """Factory for stores that raise on reads and/or writes."""
    return FailingStore
