"""
Redis-backed rate limiting utilities
Counters live in Redis so every API replica shares the same window
"""

import logging
import os
import time
from typing import Optional

import redis
from fastapi import Request

from .config import RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from .errors import ApiError, RateLimitError

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# Allow requests through when Redis is unreachable
RATE_LIMIT_FAIL_OPEN = os.getenv("RATE_LIMIT_FAIL_OPEN", "true").lower() == "true"


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual host settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection...")
        redis_url = os.getenv("REDIS_URL")

        try:
            if redis_url:
                redis_client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
            else:
                redis_client = redis.Redis(
                    host=os.getenv("REDIS_HOST", "localhost"),
                    port=int(os.getenv("REDIS_PORT", "6379")),
                    password=os.getenv("REDIS_PASSWORD"),
                    db=int(os.getenv("REDIS_DB", "0")),
                    ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                )
            redis_client.ping()
            logger.info("✅ Redis connected successfully")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {str(e)}")
            redis_client = None
            raise

    return redis_client


def check_rate_limit(
    key: str, limit: int, window_seconds: int, client: redis.Redis
) -> tuple[bool, int, int]:
    """Fixed-window counter: INCR the key, start the window on the first hit

    Args:
        key: Redis key for this identity and window
        limit: Maximum number of requests allowed
        window_seconds: Time window in seconds
        client: Redis client instance

    Returns:
        Tuple of (is_allowed, current_count, ttl_seconds)
    """
    pipe = client.pipeline()
    pipe.incr(key)
    pipe.ttl(key)
    count, ttl = pipe.execute()
    count = int(count)

    # A key without expiry means this request opened the window
    if ttl is None or int(ttl) < 0:
        client.expire(key, window_seconds)
        ttl = window_seconds

    return count <= limit, count, int(ttl)


def _identity(request: Request) -> str:
    """User id from the bearer token when present, otherwise the client IP"""
    from .auth import verify_access_token

    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        payload = verify_access_token(auth_header[7:])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"

    client_ip = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return f"ip:{client_ip}"


async def rate_limit_dependency(
    request: Request,
    limit: int,
    window_seconds: int,
    key_prefix: str = "rate_limit",
):
    """
    FastAPI dependency for rate limiting

    Args:
        request: FastAPI request object
        limit: Maximum requests allowed
        window_seconds: Time window in seconds
        key_prefix: Prefix for Redis key
    """
    key = f"{key_prefix}:{_identity(request)}"
    try:
        client = get_redis_client()
        is_allowed, current_count, ttl = check_rate_limit(key, limit, window_seconds, client)
    except ApiError:
        raise
    except Exception as e:
        if RATE_LIMIT_FAIL_OPEN:
            logger.warning(f"⚠️ Rate limiting unavailable, allowing request: {e}")
            return
        logger.error(f"❌ Rate limiting error: {str(e)}")
        raise ApiError("Rate limiting service temporarily unavailable", status_code=503, code="SERVICE_UNAVAILABLE") from e

    if not is_allowed:
        logger.warning(f"🚫 Rate limit EXCEEDED for {key} - {current_count}/{limit} requests used")
        raise RateLimitError(retry_after=ttl)

    request.state.rate_limit_remaining = max(0, limit - current_count)
    request.state.rate_limit_limit = limit
    request.state.rate_limit_reset = int(time.time()) + ttl


def create_rate_limiter(limit: int, window_seconds: int, key_prefix: str = "rate_limit"):
    """
    Create a rate limiter dependency with specific parameters

    Example usage:
        bulk_limit = create_rate_limiter(limit=10, window_seconds=60, key_prefix="bulk")

        @router.post("/bulk-recalculate", dependencies=[Depends(bulk_limit)])
        async def bulk_recalculate(...):
            ...
    """

    async def rate_limiter(request: Request):
        return await rate_limit_dependency(request, limit, window_seconds, key_prefix)

    return rate_limiter


api_rate_limiter = create_rate_limiter(RATE_LIMIT_REQUESTS, RATE_LIMIT_WINDOW_SECONDS, key_prefix="api")
