from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from celine.access.api.manifest.client import ManifestClient
from celine.access.api.manifest.models import TableManifest
from celine.access.core.config import settings
from celine.access.security.models import AuthorizationContext

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheKey:
    endpoint: str
    credential_id: str
    schema: str
    table: str

    @classmethod
    def for_context(
        cls, context: AuthorizationContext, schema: str, table: str
    ) -> "CacheKey":
        return cls(
            endpoint=context.endpoint,
            credential_id=context.credential_id,
            schema=schema,
            table=table,
        )


class ManifestCache:
    """In-memory manifest cache keyed by endpoint, credential and table.

    An entry is served while ``now + safety_margin < expires_at``; otherwise
    it is evicted and fetched again. The lock only guards map operations:
    the remote call runs unlocked, so concurrent misses on one key may
    fetch twice and the last store wins. Stored manifests are immutable and
    replaced as a whole.
    """

    def __init__(
        self,
        client: ManifestClient,
        *,
        safety_margin: Optional[timedelta] = None,
        maxsize: Optional[int] = None,
        clock: Clock = utcnow,
    ):
        self._client = client
        self._safety_margin = (
            safety_margin
            if safety_margin is not None
            else timedelta(seconds=settings.manifest_cache_safety_margin_seconds)
        )
        self._maxsize = maxsize if maxsize is not None else settings.manifest_cache_maxsize
        if self._maxsize < 1:
            raise ValueError(f"maxsize must be at least 1, got {self._maxsize}")
        self._clock = clock
        self._lock = threading.Lock()
        self._store: dict[CacheKey, TableManifest] = {}

    @property
    def client(self) -> ManifestClient:
        return self._client

    @property
    def safety_margin(self) -> timedelta:
        return self._safety_margin

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def _lookup(self, key: CacheKey, now: datetime) -> Optional[TableManifest]:
        with self._lock:
            manifest = self._store.get(key)
            if manifest is None:
                return None
            if manifest.is_fresh(now, self._safety_margin):
                return manifest
            # stale or about to expire: drop before refetching
            self._store.pop(key, None)
            return None

    def _store_manifest(self, key: CacheKey, manifest: TableManifest, now: datetime) -> None:
        with self._lock:
            if key not in self._store and len(self._store) >= self._maxsize:
                for k in [
                    k
                    for k, m in self._store.items()
                    if not m.is_fresh(now, self._safety_margin)
                ]:
                    self._store.pop(k, None)
                if len(self._store) >= self._maxsize:
                    self._store.pop(next(iter(self._store.keys())), None)
            self._store[key] = manifest

    def get_or_fetch(
        self, context: AuthorizationContext, schema: str, table: str
    ) -> TableManifest:
        """Return a fresh manifest, fetching it on a miss.

        Fetch and parse errors propagate as ``ManifestError``; nothing is
        cached for them.
        """
        key = CacheKey.for_context(context, schema, table)
        now = self._clock()

        cached = self._lookup(key, now)
        if cached is not None:
            logger.debug("Manifest cache hit for %s.%s", schema, table)
            return cached

        manifest = self._client.fetch(context, schema, table, now=now)
        self._store_manifest(key, manifest, now)
        return manifest

    def invalidate(
        self,
        schema: str,
        table: str,
        context: Optional[AuthorizationContext] = None,
    ) -> int:
        """Drop cached manifests for ``schema.table``.

        All tenants are dropped unless ``context`` narrows it to one.
        Returns the number of entries removed.
        """
        with self._lock:
            if context is not None:
                key = CacheKey.for_context(context, schema, table)
                removed = 0 if self._store.pop(key, None) is None else 1
            else:
                keys = [k for k in self._store if k.schema == schema and k.table == table]
                for k in keys:
                    del self._store[k]
                removed = len(keys)
        if removed:
            logger.debug("Invalidated %d manifest(s) for %s.%s", removed, schema, table)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
