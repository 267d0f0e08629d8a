"""
Background sync: a durable outbox of mutations made while offline.

Mutations are appended to a Redis list and replayed in FIFO order when the
client is back online. An item leaves the list only after the server has
answered it definitively, so every mutation is delivered at least once;
the ``Idempotency-Key`` header lets the server discard duplicates.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from redis.asyncio import Redis
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from atmos.core.metrics import record_sync_replay
from atmos.services.idempotency import IDEMPOTENCY_HEADER

logger = logging.getLogger(__name__)

SYNC_TAG = "sync-solicitudes"

# Client errors worth retrying later instead of dropping the mutation. Any
# response carrying Retry-After is retried as well.
RETRYABLE_CLIENT_ERRORS = {401, 408, 425, 429}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PendingMutation:
    method: str
    url: str
    json: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    idempotency_key: str = field(default_factory=lambda: str(uuid.uuid4()))
    attempts: int = 0
    enqueued_at: str = field(default_factory=_utcnow)

    def dumps(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def loads(cls, raw: str) -> "PendingMutation":
        return cls(**json.loads(raw))


class PendingMutationQueue:
    """FIFO outbox stored as a Redis list."""

    def __init__(self, redis: Redis, tag: str = SYNC_TAG):
        self.redis = redis
        self.tag = tag
        self.key = f"atmos:outbox:{tag}"

    async def enqueue(self, mutation: PendingMutation) -> None:
        await self.redis.rpush(self.key, mutation.dumps())
        logger.info(
            "outbox_enqueued",
            extra={"method": mutation.method, "url": mutation.url, "tag": self.tag},
        )

    async def peek(self) -> Optional[PendingMutation]:
        raw = await self.redis.lindex(self.key, 0)
        return PendingMutation.loads(raw) if raw is not None else None

    async def acknowledge(self) -> None:
        """Remove the head of the queue once it has been answered."""
        await self.redis.lpop(self.key)

    async def update_head(self, mutation: PendingMutation) -> None:
        await self.redis.lset(self.key, 0, mutation.dumps())

    async def size(self) -> int:
        return await self.redis.llen(self.key)

    async def items(self) -> List[PendingMutation]:
        return [PendingMutation.loads(raw) for raw in await self.redis.lrange(self.key, 0, -1)]


@dataclass
class SyncResult:
    replayed: int = 0
    rejected: int = 0
    remaining: int = 0


class SyncManager:
    """
    Replays an outbox against the API.

    Each mutation is tried a few times with exponential backoff; if the
    network is still down the replay stops and the rest stays queued for the
    next sync.
    """

    def __init__(
        self,
        queue: PendingMutationQueue,
        client: httpx.AsyncClient,
        attempts: int = 3,
        wait=None,
    ):
        self.queue = queue
        self.client = client
        self.attempts = attempts
        self.wait = wait if wait is not None else wait_exponential(multiplier=0.5, min=0.5, max=10)
        self._lock = asyncio.Lock()

    async def _replay(self, mutation: PendingMutation) -> httpx.Response:
        headers = dict(mutation.headers)
        headers[IDEMPOTENCY_HEADER] = mutation.idempotency_key
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=self.wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        return await retrying(
            self.client.request,
            mutation.method,
            mutation.url,
            json=mutation.json,
            headers=headers,
        )

    async def sync(self, tag: str = SYNC_TAG) -> SyncResult:
        result = SyncResult()
        if tag != self.queue.tag:
            logger.info("sync_ignored", extra={"tag": tag})
            result.remaining = await self.queue.size()
            return result

        async with self._lock:
            while True:
                mutation = await self.queue.peek()
                if mutation is None:
                    break

                mutation.attempts += 1
                try:
                    response = await self._replay(mutation)
                except httpx.TransportError as exc:
                    await self.queue.update_head(mutation)
                    record_sync_replay("deferred")
                    logger.warning(
                        "sync_deferred",
                        extra={"url": mutation.url, "attempts": mutation.attempts, "error": str(exc)},
                    )
                    break

                status_code = response.status_code
                if response.is_success:
                    await self.queue.acknowledge()
                    result.replayed += 1
                    record_sync_replay("acknowledged")
                elif (
                    400 <= status_code < 500
                    and status_code not in RETRYABLE_CLIENT_ERRORS
                    and "Retry-After" not in response.headers
                ):
                    # The server refused it for good; replaying again would not help.
                    await self.queue.acknowledge()
                    result.rejected += 1
                    record_sync_replay("rejected")
                    logger.warning(
                        "sync_rejected",
                        extra={"url": mutation.url, "status": status_code, "body": response.text},
                    )
                else:
                    await self.queue.update_head(mutation)
                    record_sync_replay("deferred")
                    logger.warning(
                        "sync_deferred",
                        extra={"url": mutation.url, "attempts": mutation.attempts, "status": status_code},
                    )
                    break

            result.remaining = await self.queue.size()

        logger.info(
            "sync_completed",
            extra={"replayed": result.replayed, "rejected": result.rejected, "remaining": result.remaining},
        )
        return result
