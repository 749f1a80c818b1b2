"""Redis 客户端封装。"""

from hotboard.core.infrastructure.redis.client import RedisClient
from hotboard.core.infrastructure.redis.keys import RedisKeys

__all__ = [
    "RedisClient",
    "RedisKeys",
]
