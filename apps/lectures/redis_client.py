import redis.asyncio as redis
from apps.lectures.config import get_lectures_settings, LecturesSettings
import logging

logger = logging.getLogger(__name__)

settings = get_lectures_settings()


def build_redis_client(config: LecturesSettings) -> redis.Redis:
    """Create a Redis client from settings.

    Responses stay as bytes: the same client carries raw document bytes for
    object storage and JSON task payloads for the durable dispatcher.
    """
    return redis.Redis(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        password=config.REDIS_PASSWORD,
        db=config.REDIS_DB,
        socket_timeout=config.REDIS_TIMEOUT / 1000,  # Convert ms to seconds
        socket_connect_timeout=config.REDIS_TIMEOUT / 1000,
        retry_on_timeout=True,
        health_check_interval=30,
        decode_responses=False
    )


# Connections are opened lazily on first command
redis_client = build_redis_client(settings)


async def init_redis_connection() -> bool:
    """Check Redis connectivity at startup"""
    try:
        pong = await redis_client.ping()
        logger.info(f"Redis connection successful: {pong}")
        return True
    except (redis.RedisError, OSError) as e:
        logger.error(f"Redis connection failed: {e}")
        return False


async def close_redis_connection():
    """Close Redis connection"""
    try:
        await redis_client.aclose()
        logger.info("Redis connection closed")
    except redis.RedisError as e:
        logger.error(f"Error closing Redis connection: {e}")


async def redis_health_check(client: redis.Redis = None) -> bool:
    """Check if Redis is healthy and responding"""
    try:
        return bool(await (client or redis_client).ping())
    except (redis.RedisError, OSError) as e:
        logger.error(f"Redis health check failed: {e}")
        return False
