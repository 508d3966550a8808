# authcore/cache/redis_store.py
import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from authcore.core.events import EventSink, LoguruEventSink

T = TypeVar("T")

# Falhas de transporte que viram "cache miss"
_CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisStore:
    """
    Wrapper fino sobre o Redis. Nenhum método propaga erro de transporte:
    cada operação devolve o valor neutro do tipo (None, False, 0, vazio)
    e emite um evento `cache.error`.
    """

    DEFAULT_OPERATION_TIMEOUT = 0.5

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        events: Optional[EventSink] = None,
    ):
        self.client = client
        self.operation_timeout = operation_timeout
        self.events = events or LoguruEventSink("redis")

    @classmethod
    def from_url(
        cls,
        redis_url: str,
        *,
        operation_timeout: float = DEFAULT_OPERATION_TIMEOUT,
        max_connections: int = 50,
        events: Optional[EventSink] = None,
    ) -> "RedisStore":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=operation_timeout,
            socket_connect_timeout=operation_timeout,
            max_connections=max_connections,
        )
        return cls(client, operation_timeout=operation_timeout, events=events)

    async def _run(self, op: str, key: str, default: T, call: Callable[[], Awaitable[Any]]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self.operation_timeout)
        except _CACHE_ERRORS as e:
            self.events.emit("cache.error", level="ERROR", op=op, key=key, error=repr(e))
            return default

    # --- Operações básicas ---
    async def get(self, key: str) -> Optional[str]:
        return await self._run("GET", key, None, lambda: self.client.get(key))

    async def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        if ttl_seconds is not None and ttl_seconds <= 0:
            # TTL não positivo nunca vira "sem expiração"
            self.events.emit("cache.skipped_non_positive_ttl", level="WARNING", key=key, ttl=ttl_seconds)
            return False

        async def _set() -> bool:
            if ttl_seconds is not None:
                await self.client.set(key, value, ex=ttl_seconds)
            else:
                await self.client.set(key, value)
            return True

        return await self._run("SET", key, False, _set)

    async def delete(self, *keys: str) -> bool:
        if not keys:
            return True

        async def _delete() -> bool:
            await self.client.delete(*keys)
            return True

        return await self._run("DEL", ",".join(keys), False, _delete)

    async def delete_by_pattern(self, pattern: str) -> int:
        """SCAN + DEL em pipeline. Não é atômico: uso administrativo apenas."""

        async def _delete_pattern() -> int:
            keys = [key async for key in self.client.scan_iter(match=pattern, count=500)]
            if not keys:
                return 0
            async with self.client.pipeline(transaction=False) as pipe:
                for key in keys:
                    pipe.delete(key)
                await pipe.execute()
            return len(keys)

        # A varredura pode levar mais que uma operação simples
        try:
            return await asyncio.wait_for(_delete_pattern(), timeout=self.operation_timeout * 10)
        except _CACHE_ERRORS as e:
            self.events.emit("cache.error", level="ERROR", op="DEL_PATTERN", key=pattern, error=repr(e))
            return 0

    async def exists(self, key: str) -> bool:
        async def _exists() -> bool:
            return await self.client.exists(key) == 1

        return await self._run("EXISTS", key, False, _exists)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        async def _expire() -> bool:
            return bool(await self.client.expire(key, ttl_seconds))

        return await self._run("EXPIRE", key, False, _expire)

    async def ttl(self, key: str) -> int:
        return await self._run("TTL", key, -1, lambda: self.client.ttl(key))

    # --- JSON ---
    async def get_json(self, key: str) -> Optional[Any]:
        raw = await self.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            # Entrada corrompida conta como miss
            self.events.emit("cache.error", level="ERROR", op="GET_JSON", key=key, error=repr(e))
            return None

    async def set_json(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            self.events.emit("cache.error", level="ERROR", op="SET_JSON", key=key, error=repr(e))
            return False
        return await self.set(key, serialized, ttl_seconds)

    # --- Sets (famílias de token, tokens por usuário) ---
    async def sadd(self, key: str, *members: str) -> int:
        return await self._run("SADD", key, 0, lambda: self.client.sadd(key, *members))

    async def srem(self, key: str, *members: str) -> int:
        return await self._run("SREM", key, 0, lambda: self.client.srem(key, *members))

    async def sismember(self, key: str, member: str) -> bool:
        async def _sismember() -> bool:
            return bool(await self.client.sismember(key, member))

        return await self._run("SISMEMBER", key, False, _sismember)

    async def smembers(self, key: str) -> list[str]:
        async def _smembers() -> list[str]:
            return sorted(await self.client.smembers(key))

        return await self._run("SMEMBERS", key, [], _smembers)

    # --- Hashes ---
    async def hset(self, key: str, field: str, value: str) -> bool:
        async def _hset() -> bool:
            await self.client.hset(key, field, value)
            return True

        return await self._run("HSET", key, False, _hset)

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self._run("HGET", key, None, lambda: self.client.hget(key, field))

    async def hgetall(self, key: str) -> dict[str, str]:
        async def _hgetall() -> dict[str, str]:
            return dict(await self.client.hgetall(key))

        return await self._run("HGETALL", key, {}, _hgetall)

    async def hdel(self, key: str, *fields: str) -> int:
        return await self._run("HDEL", key, 0, lambda: self.client.hdel(key, *fields))

    # --- Utilitários ---
    async def ping(self) -> bool:
        async def _ping() -> bool:
            return bool(await self.client.ping())

        return await self._run("PING", "-", False, _ping)

    async def close(self) -> None:
        """Fecha o pool de conexões. Chamar no shutdown."""
        await self.client.aclose()
