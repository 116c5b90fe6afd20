import pytest

from auth.pkce import VerifierStore
from auth.storage import MemoryStorage


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def verifier_store(memory_storage: MemoryStorage, clock: FakeClock) -> VerifierStore:
    return VerifierStore(memory_storage, clock=clock)
