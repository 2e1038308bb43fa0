"""
Tag-scoped cache used by every aggregate read of the reorder engine.

Entries are stored under a descriptive key (store, query shape, parameters)
together with a set of tags. Invalidation works on tags only, so clearing a
store never needs to know which keys were written for it.
"""
import json
import logging
import threading
import time

import redis

from utils.exceptions import CacheBackendError

logger = logging.getLogger(__name__)

_MISS = object()

REORDER_TAG = "reorder"


def store_tag(store_id) -> str:
    return f"store:{store_id}"


def supplier_tag(supplier_id) -> str:
    return f"supplier:{supplier_id}"


def cache_key(*parts) -> str:
    """cache_key("list", "store", 3) -> "list:store:3" """
    return ":".join(str(p) for p in parts)


def store_tags(store_id, *extra) -> list:
    return [REORDER_TAG, store_tag(store_id), *extra]


def supplier_tags(supplier_id, *extra) -> list:
    return [REORDER_TAG, supplier_tag(supplier_id), *extra]


class MemoryCacheBackend:
    """Process-local backend: dict of entries plus a tag -> keys index."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries = {}
        self._tag_index = {}
        self._lock = threading.Lock()

    def _drop(self, key) -> bool:
        # Caller holds the lock; the key leaves every tag set it was added to
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        for tag in entry[2]:
            keys = self._tag_index.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tag_index[tag]
        return True

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISS
            value, expires_at, _ = entry
            if expires_at <= self._clock():
                self._drop(key)
                return _MISS
            return value

    def set(self, key, value, ttl: int, tags=()):
        with self._lock:
            self._drop(key)
            tags = frozenset(tags)
            self._entries[key] = (value, self._clock() + ttl, tags)
            for tag in tags:
                self._tag_index.setdefault(tag, set()).add(key)

    def delete(self, key):
        with self._lock:
            self._drop(key)

    def invalidate_tags(self, tags) -> int:
        with self._lock:
            keys = set()
            for tag in tags:
                keys |= self._tag_index.get(tag, set())
            return sum(1 for key in keys if self._drop(key))

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._tag_index.clear()

    def __len__(self):
        return len(self._entries)


class RedisCacheBackend:
    """
    Redis backend. Values are JSON strings written with SETEX; each tag is a
    Redis set of the keys carrying it.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", tag_ttl: int = 7200, client=None):
        self.redis_url = redis_url
        self.redis_client = client or redis.from_url(redis_url, decode_responses=True)
        self.tag_ttl = tag_ttl

    @staticmethod
    def _tag_key(tag: str) -> str:
        return f"tag:{tag}"

    def get(self, key):
        try:
            raw = self.redis_client.get(key)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e
        if raw is None:
            return _MISS
        return json.loads(raw)

    def set(self, key, value, ttl: int, tags=()):
        try:
            pipe = self.redis_client.pipeline()
            pipe.setex(key, ttl, json.dumps(value, default=str))
            for tag in tags:
                pipe.sadd(self._tag_key(tag), key)
                # Stale members are harmless; a tag set only has to outlive its entries
                pipe.expire(self._tag_key(tag), max(ttl, self.tag_ttl))
            pipe.execute()
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def delete(self, key):
        try:
            self.redis_client.delete(key)
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e

    def invalidate_tags(self, tags) -> int:
        try:
            tag_keys = [self._tag_key(t) for t in tags]
            keys = set()
            for tag_key in tag_keys:
                keys |= set(self.redis_client.smembers(tag_key))
            removed = self.redis_client.delete(*keys) if keys else 0
            self.redis_client.delete(*tag_keys)
            return removed
        except redis.RedisError as e:
            raise CacheBackendError(str(e)) from e


class CacheLayer:
    def __init__(self, backend, prefix: str = "reorder:"):
        self.backend = backend
        self.prefix = prefix

    def get(self, key, default=None):
        try:
            value = self.backend.get(self.prefix + key)
        except CacheBackendError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return default
        return default if value is _MISS else value

    def set(self, key, value, ttl: int, tags=()):
        try:
            self.backend.set(self.prefix + key, value, ttl, list(tags))
        except CacheBackendError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    def remember(self, key: str, ttl: int, tags, compute, cache_if=None):
        """
        Return the cached value for key, computing and storing it on a miss.
        A failing backend never fails the read; the value is recomputed.
        When cache_if is given, a computed value it rejects is returned
        without being stored.
        """
        full_key = self.prefix + key
        try:
            cached = self.backend.get(full_key)
        except CacheBackendError as e:
            logger.warning(f"Cache unavailable, recomputing {key}: {e}")
            return compute()
        if cached is not _MISS:
            return cached

        value = compute()
        if cache_if is not None and not cache_if(value):
            logger.info(f"Not caching {key}: result is incomplete")
            return value
        try:
            self.backend.set(full_key, value, ttl, list(tags))
        except CacheBackendError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return value

    def invalidate_tags(self, tags) -> int:
        try:
            return self.backend.invalidate_tags(list(tags))
        except CacheBackendError as e:
            logger.warning(f"Cache invalidation failed for tags {list(tags)}: {e}")
            return 0

    def invalidate_store(self, store_id) -> int:
        removed = self.invalidate_tags([store_tag(store_id)])
        logger.info(f"Cleared reorder cache for store {store_id} ({removed} entries)")
        return removed

    def invalidate_supplier(self, supplier_id) -> int:
        removed = self.invalidate_tags([supplier_tag(supplier_id)])
        logger.info(f"Cleared reorder cache for supplier {supplier_id} ({removed} entries)")
        return removed

    def invalidate_all(self) -> int:
        removed = self.invalidate_tags([REORDER_TAG])
        logger.info(f"Cleared all reorder cache ({removed} entries)")
        return removed


def build_cache(cfg) -> CacheLayer:
    if cfg.CACHE_BACKEND == "redis":
        backend = RedisCacheBackend(cfg.REDIS_URL)
    else:
        backend = MemoryCacheBackend()
    return CacheLayer(backend, prefix=cfg.CACHE_PREFIX)
