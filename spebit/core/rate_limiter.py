from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, HTTPException
from spebit.core.auth import decode_token
import os
from redis import Redis
from typing import Optional, Any
import json

# Singleton Redis client
redis_client = None

# Load cache TTL from environment with default
CACHE_TTL_SHORT = int(
    os.getenv("REDIS_CACHE_TTL_SHORT", "300")
)  # 5 min for catalog lists


def get_redis_client() -> Redis:
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(
            os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            decode_responses=True,
        )
    return redis_client


# Custom key function for rate limiting
def get_rate_limit_key(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = decode_token(auth_header.split("Bearer ")[1])
        if payload:
            return f"user:{payload['sub']}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=os.getenv(
        "RATE_LIMIT_STORAGE_URI", os.getenv("REDIS_URL", "redis://localhost:6379/0")
    ),
    default_limits=["100/hour"],
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
)


async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    key = get_rate_limit_key(request)
    redis = get_redis_client()
    ttl = redis.ttl(f"{key}:rate_limit")
    if not ttl or ttl < 0:
        ttl = 60
    raise HTTPException(
        status_code=429,
        detail={
            "success": False,
            "message": "Too many requests. Please try again later.",
            "data": {"retry_after": ttl},
        },
        headers={"Retry-After": str(ttl)},
    )


# Caching Utilities
def get_cache_key(
    request: Request, endpoint: str, user_id: Optional[str] = None, params: dict = None
) -> str:
    """Generate a unique cache key based on endpoint, user, and query params."""
    base = f"{endpoint}"
    if user_id:
        base += f":user:{user_id}"
    if params:
        param_str = ":".join(
            f"{k}={v}" for k, v in sorted(params.items()) if v is not None
        )
        base += f":{param_str}"
    return base


def get_from_cache(key: str) -> Optional[Any]:
    """Retrieve data from Redis cache."""
    redis = get_redis_client()
    cached = redis.get(key)
    return json.loads(cached) if cached else None


def set_to_cache(key: str, value: Any, ttl: int) -> None:
    """Store data in Redis cache with specified TTL."""
    redis = get_redis_client()
    redis.setex(key, ttl, json.dumps(value))


def invalidate_cache(pattern: str) -> None:
    """Invalidate cache keys matching a pattern (e.g., 'cryptocurrencies:*')."""
    redis = get_redis_client()
    keys = redis.keys(f"{pattern}*")
    if keys:
        redis.delete(*keys)


# Revoked refresh tokens (sign-out)
def revoke_token(jti: str, ttl: int) -> None:
    get_redis_client().setex(f"revoked_token:{jti}", max(ttl, 1), "1")


def is_token_revoked(jti: str) -> bool:
    return get_redis_client().exists(f"revoked_token:{jti}") > 0
