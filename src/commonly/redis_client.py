"""Optional Redis client for realtime fan-out and rate limiting.

The API runs without Redis: every caller goes through
``get_redis_or_none`` and skips its Redis work when it returns None.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_client: redis.Redis | None = None


def init_redis(url: str | None) -> redis.Redis | None:
    """Create the shared client for ``url``. An empty url leaves Redis disabled."""
    global _client  # noqa: PLW0603
    if not url:
        logger.warning("redis_disabled", detail="realtime push and rate limiting are off")
        _client = None
        return None
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis_or_none() -> redis.Redis | None:
    return _client
