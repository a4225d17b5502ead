"""Redis connection and key naming for post likes."""

import redis

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def likes_key(post_id: str) -> str:
    """Return the key of the set of users who liked a post."""
    return f"post:{post_id}:likes"


def init_redis(url: str = DEFAULT_REDIS_URL) -> redis.Redis:
    """Connect to Redis at ``url``; raises if it does not answer."""
    client = redis.Redis.from_url(url, decode_responses=True)
    client.ping()
    return client