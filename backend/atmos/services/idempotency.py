"""
Idempotent replay of mutating requests.

Offline clients retry queued mutations until they are acknowledged, so the
same request can reach the server more than once. Each mutation carries an
``Idempotency-Key`` header; the first response for a key is stored in Redis
and returned verbatim for every retry. While the first request is still running
the key holds a short-lived reservation and duplicates are answered with 409.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional

from redis.exceptions import RedisError

from atmos.core.config import settings
from atmos.core.errors import RequestInProgress
from atmos.core.redis import CacheService

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAY_HEADER = "Idempotent-Replay"

# Stored while the first request with a key is still running.
_PENDING = {"state": "pending"}


@dataclass
class StoredResponse:
    status_code: int
    body: Any


class IdempotencyStore:
    def __init__(self, cache: CacheService):
        self.cache = cache

    @staticmethod
    def _key(user_id: str, method: str, path: str, key: str) -> str:
        digest = hashlib.sha256(f"{method}:{path}:{key}".encode()).hexdigest()[:32]
        return f"{user_id}:{digest}"

    async def lookup(
        self, user_id: str, method: str, path: str, key: Optional[str]
    ) -> Optional[StoredResponse]:
        """
        Return the stored response for ``key``, if any.

        Raises:
            RequestInProgress: the first request with this key has not finished
        """
        if not key:
            return None
        try:
            stored = await self.cache.get(self._key(user_id, method, path, key))
        except RedisError as exc:
            logger.warning("idempotency_lookup_failed", extra={"error": str(exc)})
            return None
        if stored is None:
            return None
        if stored == _PENDING:
            logger.info("idempotency_in_progress", extra={"path": path})
            raise RequestInProgress()
        logger.info("idempotency_replay", extra={"path": path})
        return StoredResponse(status_code=stored["status_code"], body=stored["body"])

    async def begin(
        self, user_id: str, method: str, path: str, key: Optional[str]
    ) -> Optional[StoredResponse]:
        """
        Replay a finished response, or reserve ``key`` for a new execution.

        Returns ``None`` when the caller should run the mutation; it must
        then call ``remember`` on success or ``release`` on failure.
        """
        stored = await self.lookup(user_id, method, path, key)
        if stored is not None or not key:
            return stored
        try:
            reserved = await self.cache.add(
                self._key(user_id, method, path, key),
                _PENDING,
                ttl=settings.IDEMPOTENCY_LOCK_TTL,
            )
        except RedisError as exc:
            logger.warning("idempotency_reserve_failed", extra={"error": str(exc)})
            return None
        if not reserved:
            # Lost the race; a concurrent request owns the key or just finished.
            stored = await self.lookup(user_id, method, path, key)
            if stored is None:
                raise RequestInProgress()
        return stored

    async def release(self, user_id: str, method: str, path: str, key: Optional[str]) -> None:
        """Drop a reservation so a failed mutation can be retried."""
        if not key:
            return
        try:
            await self.cache.delete(self._key(user_id, method, path, key))
        except RedisError as exc:
            logger.warning("idempotency_release_failed", extra={"error": str(exc)})

    async def remember(
        self,
        user_id: str,
        method: str,
        path: str,
        key: Optional[str],
        response: StoredResponse,
    ) -> None:
        if not key:
            return
        try:
            await self.cache.set(
                self._key(user_id, method, path, key),
                {"status_code": response.status_code, "body": response.body},
                ttl=settings.IDEMPOTENCY_TTL,
            )
        except RedisError as exc:
            logger.warning("idempotency_store_failed", extra={"error": str(exc)})
