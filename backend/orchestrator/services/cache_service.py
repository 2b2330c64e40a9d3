# /orchestrator/services/cache_service.py

import json
import logging
from typing import Any, Optional
import redis.asyncio as redis

from orchestrator.config.settings import settings
from orchestrator.utils.circuit_breaker import CircuitBreaker
from orchestrator.utils.metrics import cache_operations

# Thin wrapper around Redis used for short-lived lookups (business profiles),
# the shared circuit-breaker state and operator broadcasts (pub/sub).

logger = logging.getLogger(__name__)


class CacheService:
    def __init__(self, redis_url: str):
        try:
            self.redis_pool = redis.ConnectionPool.from_url(redis_url, max_connections=20)
            self.redis = redis.Redis(connection_pool=self.redis_pool)
            self.circuit_breaker = CircuitBreaker("redis")
        except Exception as e:
            logger.critical(f"Failed to connect to Redis at {redis_url}: {e}")
            self.redis = None

    async def get(self, key: str) -> Optional[str]:
        if not self.redis: return None
        try:
            result = await self.circuit_breaker.call(self.redis.get, key)
            cache_operations.labels(operation="get", status="hit" if result else "miss").inc()
            return result.decode('utf-8') if result else None
        except Exception as e:
            cache_operations.labels(operation="get", status="error").inc()
            logger.warning(f"Cache get failed for key {key}: {e}")
            return None

    async def set(self, key: str, value: str, ttl: int = 300):
        if not self.redis: return
        try:
            await self.circuit_breaker.call(self.redis.setex, key, ttl, value)
            cache_operations.labels(operation="set", status="success").inc()
        except Exception as e:
            cache_operations.labels(operation="set", status="error").inc()
            logger.warning(f"Cache set failed for key {key}: {e}")

    async def get_or_set(self, key: str, fetch_func, ttl: int = 300) -> Any:
        """Returns the cached JSON value for `key`, fetching and caching it on a miss.

        Empty fetch results are not cached so a transient miss upstream is retried
        on the next call.
        """
        cached_value = await self.get(key)
        if cached_value is not None:
            try: return json.loads(cached_value)
            except json.JSONDecodeError: return cached_value

        try:
            fetched_value = await fetch_func()
        except Exception as e:
            logger.error(f"Cache get_or_set fetch failed for key {key}: {e}")
            return None
        if fetched_value:
            await self.set(key, json.dumps(fetched_value, default=str), ttl)
        return fetched_value

    async def publish(self, channel: str, payload: dict) -> bool:
        if not self.redis: return False
        try:
            await self.circuit_breaker.call(self.redis.publish, channel, json.dumps(payload, default=str))
            cache_operations.labels(operation="publish", status="success").inc()
            return True
        except Exception as e:
            cache_operations.labels(operation="publish", status="error").inc()
            logger.warning(f"Cache publish failed for channel {channel}: {e}")
            return False

# Globally accessible instance
cache_service = CacheService(settings.redis_url)
