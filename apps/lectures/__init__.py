# Import Redis client for easy access
from .redis_client import (
    redis_client,
    init_redis_connection,
    close_redis_connection,
    redis_health_check
)

__all__ = [
    'redis_client',
    'init_redis_connection',
    'close_redis_connection',
    'redis_health_check'
]
