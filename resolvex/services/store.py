"""Complaint persistence with Redis primary and in-memory backends.

Both backends implement :class:`ComplaintStore`: insert with a caller
supplied id, find by id, newest-first listing with an optional owner
filter, count, and delete.  The store stamps ``created_at`` and
``updated_at``; everything else is written exactly as given.

Redis layout (all keys under the configured namespace)::

    complaint:<id>          orjson document
    complaints:all          sorted set, score = created_at epoch
    complaints:owner:<uid>  sorted set, score = created_at epoch
"""

from __future__ import annotations

import itertools
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog
from redis.exceptions import WatchError

from resolvex.models.complaint import Complaint
from resolvex.services.errors import PersistenceError

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ComplaintStore(Protocol):
    """Async complaint persistence interface."""

    async def insert(self, complaint: Complaint) -> Complaint: ...

    async def get(self, complaint_id: str) -> Complaint | None: ...

    async def find(
        self,
        owner_id: str | None = None,
        *,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Complaint]: ...

    async def count(self, owner_id: str | None = None) -> int: ...

    async def delete(self, complaint_id: str) -> bool: ...


def _stamp(complaint: Complaint) -> Complaint:
    now = datetime.now(UTC)
    return complaint.model_copy(update={"created_at": now, "updated_at": now})


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryComplaintStore:
    """Process-local store for development and tests.

    Operations never await, so each one is atomic on the event loop.
    Ties on ``created_at`` are broken by insertion order.
    """

    __slots__ = ("_data", "_order", "_seq")

    def __init__(self) -> None:
        self._data: dict[str, Complaint] = {}
        self._order: dict[str, int] = {}
        self._seq = itertools.count()

    async def insert(self, complaint: Complaint) -> Complaint:
        if complaint.id in self._data:
            raise PersistenceError()
        stored = _stamp(complaint)
        self._data[stored.id] = stored
        self._order[stored.id] = next(self._seq)
        return stored

    async def get(self, complaint_id: str) -> Complaint | None:
        return self._data.get(complaint_id)

    async def find(
        self,
        owner_id: str | None = None,
        *,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Complaint]:
        matches = [
            c for c in self._data.values() if owner_id is None or c.owner_id == owner_id
        ]
        matches.sort(key=lambda c: (c.created_at, self._order[c.id]), reverse=True)
        return matches[skip : skip + limit]

    async def count(self, owner_id: str | None = None) -> int:
        if owner_id is None:
            return len(self._data)
        return sum(1 for c in self._data.values() if c.owner_id == owner_id)

    async def delete(self, complaint_id: str) -> bool:
        self._order.pop(complaint_id, None)
        return self._data.pop(complaint_id, None) is not None

    async def close(self) -> None:
        return None

    async def ping(self) -> bool:
        return True

    @property
    def size(self) -> int:
        return len(self._data)


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisComplaintStore:
    """Redis-backed store using ``redis.asyncio`` with connection pooling.

    Redis errors on writes surface as :class:`PersistenceError`; read
    errors propagate so the API can answer 500 rather than pretend the
    complaint does not exist.
    """

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "resolvex:",
        max_connections: int = 20,
        client: Any | None = None,
    ) -> None:
        self._namespace = namespace
        if client is not None:
            self._pool = None
            self._redis = client
            return

        import redis.asyncio as aioredis

        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    # -- Key helpers -----------------------------------------------------------

    def _doc_key(self, complaint_id: str) -> str:
        return f"{self._namespace}complaint:{complaint_id}"

    def _index_key(self, owner_id: str | None = None) -> str:
        if owner_id is None:
            return f"{self._namespace}complaints:all"
        return f"{self._namespace}complaints:owner:{owner_id}"

    @staticmethod
    def _encode(complaint: Complaint) -> bytes:
        return orjson.dumps(complaint.model_dump(mode="json"))

    @staticmethod
    def _decode(raw: bytes) -> Complaint:
        return Complaint.model_validate(orjson.loads(raw))

    # -- ComplaintStore interface ----------------------------------------------

    async def insert(self, complaint: Complaint) -> Complaint:
        stored = _stamp(complaint)
        score = stored.created_at.timestamp() if stored.created_at else 0.0
        doc_key = self._doc_key(stored.id)
        try:
            # Document and both indexes land in one MULTI, or none of them do.
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(doc_key)
                if await pipe.exists(doc_key):
                    logger.error("store.duplicate_id", complaint_id=stored.id)
                    raise PersistenceError()
                pipe.multi()
                pipe.set(doc_key, self._encode(stored))
                pipe.zadd(self._index_key(), {stored.id: score})
                pipe.zadd(self._index_key(stored.owner_id), {stored.id: score})
                await pipe.execute()
        except PersistenceError:
            raise
        except WatchError:
            logger.error("store.duplicate_id", complaint_id=stored.id)
            raise PersistenceError() from None
        except Exception:
            logger.error("store.insert_failed", complaint_id=stored.id, exc_info=True)
            raise PersistenceError() from None
        return stored

    async def get(self, complaint_id: str) -> Complaint | None:
        raw = await self._redis.get(self._doc_key(complaint_id))
        if raw is None:
            return None
        return self._decode(raw)

    async def find(
        self,
        owner_id: str | None = None,
        *,
        skip: int = 0,
        limit: int = 10,
    ) -> list[Complaint]:
        if limit <= 0:
            return []
        ids = await self._redis.zrevrange(self._index_key(owner_id), skip, skip + limit - 1)
        if not ids:
            return []
        keys = [self._doc_key(i.decode() if isinstance(i, bytes) else i) for i in ids]
        raws = await self._redis.mget(keys)
        return [self._decode(raw) for raw in raws if raw is not None]

    async def count(self, owner_id: str | None = None) -> int:
        return int(await self._redis.zcard(self._index_key(owner_id)))

    async def delete(self, complaint_id: str) -> bool:
        existing = await self.get(complaint_id)
        if existing is None:
            return False
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(self._doc_key(complaint_id))
                pipe.zrem(self._index_key(), complaint_id)
                pipe.zrem(self._index_key(existing.owner_id), complaint_id)
                results = await pipe.execute()
        except Exception:
            logger.error("store.delete_failed", complaint_id=complaint_id, exc_info=True)
            raise PersistenceError("Could not delete the complaint") from None
        return bool(results[0])

    # -- Lifecycle -------------------------------------------------------------

    async def close(self) -> None:
        await self._redis.aclose()
        if self._pool is not None:
            await self._pool.aclose()

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False
