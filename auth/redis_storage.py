from __future__ import annotations

from typing import Any

from redis.exceptions import RedisError

from auth.storage import KeyValueStorage, StorageUnavailable


class RedisStorage(KeyValueStorage):
    """Storage shared by every worker behind the same Redis.

    ``take`` maps onto GETDEL so two callbacks racing on one state cannot
    both read the entry. Keys written with a TTL expire natively.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStorage":
        from redis.asyncio import Redis

        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as error:
            raise StorageUnavailable(f"Redis read failed: {error}") from error
        return _as_text(value)

    async def set(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as error:
            raise StorageUnavailable(f"Redis write failed: {error}") from error

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as error:
            raise StorageUnavailable(f"Redis delete failed: {error}") from error

    async def take(self, key: str) -> str | None:
        try:
            value = await self._client.getdel(key)
        except RedisError as error:
            raise StorageUnavailable(f"Redis read failed: {error}") from error
        return _as_text(value)

    async def aclose(self) -> None:
        await self._client.aclose()


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
