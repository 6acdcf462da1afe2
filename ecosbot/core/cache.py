"""
Retrieval cache

Caches the passages returned by the vector index for a given question so that
repeated questions (very common across a cohort working on the same course)
do not pay for an embedding call and an index query each time.

Backends:
- Redis when ``REDIS_URL`` is set and reachable (shared between workers)
- In-process LRU with TTL otherwise
"""
import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional

import redis

from . import metrics
from .constants import DEFAULT_CACHE_MAX_SIZE, DEFAULT_CACHE_TTL_SECONDS
from .logging_setup import sanitize_for_logs

logger = logging.getLogger(__name__)


class LRUCache:
    """
    Thread-safe LRU cache whose entries expire after ``ttl_seconds``.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_MAX_SIZE, ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.cache: OrderedDict = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, stored_at = entry
            if time.monotonic() - stored_at > self.ttl_seconds:
                del self.cache[key]
                self._misses += 1
                return None

            self.cache.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self.cache:
                self.cache.move_to_end(key)
            elif len(self.cache) >= self.max_size:
                oldest_key = next(iter(self.cache))
                del self.cache[oldest_key]
                logger.debug(f"LRU cache evicted oldest entry: {oldest_key[:16]}...")

            self.cache[key] = (value, time.monotonic())

    def clear(self) -> None:
        with self._lock:
            self.cache.clear()
            self._hits = 0
            self._misses = 0

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                "hits": self._hits,
                "misses": self._misses,
                "total_requests": total,
                "hit_rate_percent": round(hit_rate, 2),
                "current_size": len(self.cache),
                "max_size": self.max_size,
            }


class RetrievalCache:
    """
    Question -> retrieved passages cache.

    Keys are a SHA-256 of the normalized question and the index name, so the
    question text itself never lands in Redis.
    """

    KEY_PREFIX = "retrieval:"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        max_entries: int = DEFAULT_CACHE_MAX_SIZE,
    ):
        self.ttl_seconds = ttl_seconds
        self._memory = LRUCache(max_size=max_entries, ttl_seconds=ttl_seconds)
        self._redis = None

        if redis_url:
            try:
                client = redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self._redis = client
                logger.info("Redis connected for retrieval cache")
            except Exception as e:
                logger.warning(f"Redis unavailable, using in-memory retrieval cache: {e}")
                self._redis = None

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    def _key(self, question: str, index_name: str) -> str:
        normalized = " ".join(question.lower().split())
        digest = hashlib.sha256(f"{index_name}|{normalized}".encode("utf-8")).hexdigest()
        return f"{self.KEY_PREFIX}{digest}"

    def get(self, question: str, index_name: str) -> Optional[List[Dict[str, Any]]]:
        key = self._key(question, index_name)
        value = None

        if self._redis is not None:
            try:
                raw = self._redis.get(key)
                value = json.loads(raw) if raw else None
            except Exception as e:
                logger.error(f"Error reading retrieval cache from Redis: {e}")
                value = self._memory.get(key)
        else:
            value = self._memory.get(key)

        if value is None:
            metrics.cache_misses.inc()
            return None

        metrics.cache_hits.inc()
        logger.debug(f"Retrieval cache HIT for {sanitize_for_logs(question)}")
        return value

    def set(self, question: str, index_name: str, passages: List[Dict[str, Any]]) -> None:
        key = self._key(question, index_name)

        if self._redis is not None:
            try:
                self._redis.setex(key, self.ttl_seconds, json.dumps(passages))
                return
            except Exception as e:
                logger.error(f"Error writing retrieval cache to Redis: {e}")

        self._memory.set(key, passages)

    def clear(self) -> None:
        self._memory.clear()
        if self._redis is not None:
            try:
                for key in self._redis.scan_iter(f"{self.KEY_PREFIX}*"):
                    self._redis.delete(key)
            except Exception as e:
                logger.error(f"Error clearing retrieval cache in Redis: {e}")
