from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path

from nora_today.core.errors import StoreError
from nora_today.core.logging import DOMAIN_STORE, get_domain_logger
from nora_today.core.settings import Settings

logger = get_domain_logger(__name__, DOMAIN_STORE)


class KeyValueStore(ABC):
    """Durable string key-value storage shared by every component (flags, cached JSON blobs)."""

    @abstractmethod
    async def get_item(self, key: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    async def multi_remove(self, keys: list[str]) -> None:
        for key in keys:
            await self.remove_item(key)


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> str | None:
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.data[key] = str(value)

    async def remove_item(self, key: str) -> None:
        self.data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self.data if key.startswith(prefix)]


class FileKeyValueStore(KeyValueStore):
    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StoreError(f"unreadable store file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"store file {self.path} does not hold an object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            raise StoreError(f"cannot write store file {self.path}: {exc}") from exc

    async def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    async def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = str(value)
        self._write_all(data)

    async def remove_item(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

    async def keys(self, prefix: str = "") -> list[str]:
        return [key for key in self._read_all() if key.startswith(prefix)]

    async def multi_remove(self, keys: list[str]) -> None:
        data = self._read_all()
        removed = [key for key in keys if data.pop(key, None) is not None]
        if removed:
            self._write_all(data)


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, redis_url: str, key_prefix: str = ""):
        import redis.asyncio as redis

        self._errors = (redis.RedisError,)
        self._client = redis.from_url(redis_url, decode_responses=True)
        self._prefix = key_prefix

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get_item(self, key: str) -> str | None:
        try:
            return await self._client.get(self._k(key))
        except self._errors as exc:
            raise StoreError(f"redis get failed for {key}: {exc}") from exc

    async def set_item(self, key: str, value: str) -> None:
        try:
            await self._client.set(self._k(key), str(value))
        except self._errors as exc:
            raise StoreError(f"redis set failed for {key}: {exc}") from exc

    async def remove_item(self, key: str) -> None:
        try:
            await self._client.delete(self._k(key))
        except self._errors as exc:
            raise StoreError(f"redis delete failed for {key}: {exc}") from exc

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            found = [key async for key in self._client.scan_iter(match=f"{self._k(prefix)}*")]
        except self._errors as exc:
            raise StoreError(f"redis scan failed for {prefix}: {exc}") from exc
        return [key[len(self._prefix):] for key in found]

    async def multi_remove(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self._client.delete(*[self._k(key) for key in keys])
        except self._errors as exc:
            raise StoreError(f"redis multi-delete failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


def build_store(config: Settings) -> KeyValueStore:
    backend = (config.store_backend or "file").lower()
    if backend == "redis":
        logger.info("Local store backend: redis")
        return RedisKeyValueStore(config.redis_url, config.redis_key_prefix)
    if backend == "memory":
        logger.info("Local store backend: in-memory")
        return InMemoryKeyValueStore()
    logger.info("Local store backend: file %s", config.store_file_path)
    return FileKeyValueStore(Path(config.store_file_path))
