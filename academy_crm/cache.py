"""
Redis cache for slow-changing provider data (holiday calendars)
A Redis outage degrades every lookup to a miss
"""
import json
import logging
from typing import Any, Optional

import redis

from .rate_limiter import get_redis_client

logger = logging.getLogger(__name__)


class ProviderCache:
    """JSON values under "<prefix>:<key>" with one TTL per provider"""

    def __init__(self, prefix: str, ttl: int):
        self.prefix = prefix
        self.ttl = ttl

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _client(self) -> Optional[redis.Redis]:
        try:
            return get_redis_client()
        except Exception as e:
            logger.warning(f"⚠️ Redis cache unavailable for {self.prefix}: {e}")
            return None

    def get(self, key: str) -> Optional[Any]:
        client = self._client()
        if not client:
            return None

        try:
            value = client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"❌ Cache get error for {self._key(key)}: {e}")
            return None

        if value is None:
            logger.debug(f"❌ Cache MISS: {self._key(key)}")
            return None
        logger.debug(f"✅ Cache HIT: {self._key(key)}")
        return json.loads(value)

    def set(self, key: str, value: Any) -> bool:
        client = self._client()
        if not client:
            return False

        try:
            client.setex(self._key(key), self.ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.error(f"❌ Cache set error for {self._key(key)}: {e}")
            return False
        logger.debug(f"✅ Cache SET: {self._key(key)} (TTL: {self.ttl}s)")
        return True
