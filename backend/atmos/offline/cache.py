"""
Client-side response cache for the offline layer.

A ``CacheStorage`` holds named, versioned buckets; each bucket maps request
URLs to response snapshots. Snapshots are plain bytes plus headers, so the
same entry can be turned back into a fresh ``httpx.Response`` any number of
times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import httpx

from atmos.core.metrics import record_cache_operation

logger = logging.getLogger(__name__)

# Marks responses served from a bucket instead of the network.
CACHE_EXTENSION = "atmos_cache"


def cache_key(request: httpx.Request) -> str:
    """Requests are matched on their URL without fragment."""
    return str(request.url.copy_with(fragment=None))


@dataclass
class CachedResponse:
    status_code: int
    headers: List[Tuple[str, str]]
    content: bytes
    url: str
    stored_at: float = 0.0

    @classmethod
    def from_response(
        cls, request: httpx.Request, response: httpx.Response, stored_at: float = 0.0
    ) -> "CachedResponse":
        """Snapshot a response whose body has already been read."""
        return cls(
            status_code=response.status_code,
            headers=[
                (name, value)
                for name, value in response.headers.multi_items()
                # The body is stored decoded.
                if name.lower() not in ("content-encoding", "content-length", "transfer-encoding")
            ],
            content=response.content,
            url=cache_key(request),
            stored_at=stored_at,
        )

    def to_response(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
            extensions={CACHE_EXTENSION: "hit"},
        )


@dataclass
class CacheBucket:
    """A named set of cached responses. Only GET requests can be stored."""

    name: str
    entries: Dict[str, CachedResponse] = field(default_factory=dict)

    def match(self, request: httpx.Request) -> Optional[CachedResponse]:
        if request.method != "GET":
            return None
        return self.entries.get(cache_key(request))

    def put(self, request: httpx.Request, snapshot: CachedResponse) -> None:
        if request.method != "GET":
            raise ValueError(f"Only GET responses can be cached, got {request.method}")
        self.entries[cache_key(request)] = snapshot
        record_cache_operation("set", cache="offline")

    def delete(self, request: httpx.Request) -> bool:
        return self.entries.pop(cache_key(request), None) is not None

    def keys(self) -> List[str]:
        return list(self.entries)


class CacheStorage:
    """All buckets known to a client, addressed by name."""

    def __init__(self):
        self._buckets: Dict[str, CacheBucket] = {}

    def open(self, name: str) -> CacheBucket:
        bucket = self._buckets.get(name)
        if bucket is None:
            bucket = self._buckets[name] = CacheBucket(name)
        return bucket

    def has(self, name: str) -> bool:
        return name in self._buckets

    def keys(self) -> List[str]:
        return list(self._buckets)

    def delete(self, name: str) -> bool:
        deleted = self._buckets.pop(name, None) is not None
        if deleted:
            logger.info("offline_bucket_deleted", extra={"bucket": name})
        return deleted

    def commit(self, staged: CacheBucket) -> None:
        """Merge a staged bucket into the live one of the same name in one step."""
        self.open(staged.name).entries.update(staged.entries)

    def match(self, request: httpx.Request) -> Optional[CachedResponse]:
        """Search every bucket, oldest first."""
        for bucket in self._buckets.values():
            snapshot = bucket.match(request)
            if snapshot is not None:
                record_cache_operation("hit", cache="offline")
                return snapshot
        record_cache_operation("miss", cache="offline")
        return None
