import asyncio
import json

import pytest

from auth.pkce import VERIFIER_TTL_SECONDS, VerifierStore, generate_code_challenge
from auth.storage import FileStorage, KeyValueStorage, MemoryStorage, StorageUnavailable

VERIFIER = "test-verifier-abc123-xyz789-0123456789abcdef"


class BrokenStorage(KeyValueStorage):
    async def get(self, key: str) -> str | None:
        raise StorageUnavailable("storage disabled")

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        raise StorageUnavailable("storage disabled")

    async def delete(self, key: str) -> None:
        raise StorageUnavailable("storage disabled")

    async def take(self, key: str) -> str | None:
        raise StorageUnavailable("storage disabled")


@pytest.mark.asyncio
async def test_store_then_retrieve_returns_verifier(verifier_store) -> None:
    await verifier_store.store("state-123", VERIFIER)

    assert await verifier_store.retrieve("state-123") == VERIFIER


@pytest.mark.asyncio
async def test_retrieve_is_one_time_use(verifier_store) -> None:
    await verifier_store.store("state-123", VERIFIER)

    assert await verifier_store.retrieve("state-123") == VERIFIER
    assert await verifier_store.retrieve("state-123") is None


@pytest.mark.asyncio
async def test_store_writes_namespaced_entry(verifier_store, memory_storage, clock) -> None:
    await verifier_store.store("state-123", VERIFIER)

    raw = await memory_storage.get("pkce_verifier_state-123")
    payload = json.loads(raw)

    assert await memory_storage.get("state-123") is None
    assert payload == {
        "code_verifier": VERIFIER,
        "created_at": clock.now,
        "expires_at": clock.now + 5 * 60,
    }


@pytest.mark.asyncio
async def test_store_overwrites_previous_entry(verifier_store, memory_storage) -> None:
    await verifier_store.store("state-123", "first-verifier")
    await verifier_store.store("state-123", VERIFIER)

    assert len(memory_storage) == 1
    assert await verifier_store.retrieve("state-123") == VERIFIER


@pytest.mark.asyncio
async def test_store_rejects_empty_state(verifier_store) -> None:
    with pytest.raises(ValueError):
        await verifier_store.store("", VERIFIER)


@pytest.mark.asyncio
async def test_retrieve_after_expiry_returns_none(verifier_store, memory_storage, clock) -> None:
    await verifier_store.store("state-123", VERIFIER)

    clock.advance(6 * 60)

    assert await verifier_store.retrieve("state-123") is None
    assert await memory_storage.get("pkce_verifier_state-123") is None


@pytest.mark.asyncio
async def test_retrieve_at_exact_expiry_returns_none(verifier_store, memory_storage, clock) -> None:
    await verifier_store.store("state-123", VERIFIER)

    clock.advance(VERIFIER_TTL_SECONDS)

    assert await verifier_store.retrieve("state-123") is None
    assert len(memory_storage) == 0


@pytest.mark.asyncio
async def test_retrieve_just_before_expiry_returns_verifier(verifier_store, clock) -> None:
    await verifier_store.store("state-123", VERIFIER)

    clock.advance(VERIFIER_TTL_SECONDS - 0.001)

    assert await verifier_store.retrieve("state-123") == VERIFIER


@pytest.mark.asyncio
async def test_retrieve_missing_state_returns_none(verifier_store) -> None:
    assert await verifier_store.retrieve("never-stored") is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        '{"code_verifier": "", "created_at": 1, "expires_at": 2}',
        '{"code_verifier": "v", "created_at": 1}',
        '{"code_verifier": "v", "created_at": 1, "expires_at": "later"}',
        '{"code_verifier": "v", "created_at": 1, "expires_at": NaN}',
        '{"code_verifier": "v", "created_at": 1, "expires_at": Infinity}',
        '{"code_verifier": "v", "created_at": NaN, "expires_at": 2}',
    ],
)
async def test_retrieve_corrupt_entry_returns_none(verifier_store, memory_storage, raw) -> None:
    await memory_storage.set("pkce_verifier_state-123", raw)

    assert await verifier_store.retrieve("state-123") is None
    assert len(memory_storage) == 0


@pytest.mark.asyncio
async def test_retrieve_non_string_file_entry_returns_none(tmp_path, clock) -> None:
    path = tmp_path / "verifiers.json"
    path.write_text(json.dumps({"pkce_verifier_abc": 5}), encoding="utf-8")
    store = VerifierStore(FileStorage(path), clock=clock)

    assert await store.retrieve("abc") is None

    await store.store("def", VERIFIER)

    assert set(json.loads(path.read_text(encoding="utf-8"))) == {"pkce_verifier_def"}


@pytest.mark.asyncio
async def test_retrieve_non_string_entry_returns_none(verifier_store, memory_storage) -> None:
    await memory_storage.set("pkce_verifier_state-123", 5)

    assert await verifier_store.retrieve("state-123") is None


@pytest.mark.asyncio
async def test_cleanup_removes_entry(verifier_store, memory_storage) -> None:
    await verifier_store.store("state-123", VERIFIER)

    await verifier_store.cleanup("state-123")

    assert await memory_storage.get("pkce_verifier_state-123") is None
    assert await verifier_store.retrieve("state-123") is None


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(verifier_store, memory_storage) -> None:
    await verifier_store.store("state-123", VERIFIER)

    await verifier_store.cleanup("state-123")
    await verifier_store.cleanup("state-123")
    await verifier_store.cleanup("never-stored")

    assert len(memory_storage) == 0


@pytest.mark.asyncio
async def test_store_raises_when_storage_rejects_write(clock) -> None:
    store = VerifierStore(MemoryStorage(max_entries=1), clock=clock)
    await store.store("state-1", VERIFIER)

    with pytest.raises(StorageUnavailable):
        await store.store("state-2", VERIFIER)


@pytest.mark.asyncio
async def test_store_overwrite_allowed_at_quota(clock) -> None:
    store = VerifierStore(MemoryStorage(max_entries=1), clock=clock)
    await store.store("state-1", "first-verifier")

    await store.store("state-1", VERIFIER)

    assert await store.retrieve("state-1") == VERIFIER


@pytest.mark.asyncio
async def test_broken_storage_surfaces_only_on_store(clock) -> None:
    store = VerifierStore(BrokenStorage(), clock=clock)

    with pytest.raises(StorageUnavailable):
        await store.store("state-123", VERIFIER)
    assert await store.retrieve("state-123") is None
    await store.cleanup("state-123")


@pytest.mark.asyncio
async def test_concurrent_retrieval_returns_verifier_once(verifier_store) -> None:
    await verifier_store.store("state-123", VERIFIER)

    results = await asyncio.gather(*(verifier_store.retrieve("state-123") for _ in range(5)))

    assert results.count(VERIFIER) == 1
    assert results.count(None) == 4


@pytest.mark.asyncio
async def test_login_round_trip_scenario(verifier_store) -> None:
    verifier = verifier_store.generate_verifier()
    challenge = await verifier_store.derive_challenge(verifier)
    await verifier_store.store("abc", verifier)

    returned = await verifier_store.retrieve("abc")

    assert returned == verifier
    assert generate_code_challenge(returned) == challenge
    assert await verifier_store.retrieve("abc") is None
