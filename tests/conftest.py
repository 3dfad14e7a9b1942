import asyncio

import pytest

from logic.logic_session import LocalAuthBackend, SessionManager
from storage import MemoryStore


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every write."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.reads = 0
        self.writes = []

    def get(self, key):
        self.reads += 1
        return super().get(key)

    def set(self, key, value):
        self.writes.append(("set", key))
        super().set(key, value)

    def remove(self, key):
        self.writes.append(("remove", key))
        super().remove(key)

    def remove_many(self, keys):
        keys = tuple(keys)
        self.writes.append(("remove_many", keys))
        super().remove_many(keys)


class GatedBackend(LocalAuthBackend):
    """Backend whose sign-in blocks until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def authenticate(self, email, credential):
        await self.gate.wait()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def manager(store):
    return SessionManager(store)
