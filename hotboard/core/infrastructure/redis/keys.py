"""Redis Key 命名规范。

Redis 用于：
- Hot Cache: 每个数据源一份热榜快照（持久层缓存）
"""


class RedisKeys:
    """Redis Key 命名空间管理。"""

    # 热榜快照
    # hotcache:{source_id}
    HOT_CACHE_PREFIX = "hotcache"

    @classmethod
    def hot_cache(cls, source_id: str) -> str:
        """生成热榜快照 key。

        Args:
            source_id: 数据源 ID

        Returns:
            格式化的 Redis key
        """
        return f"{cls.HOT_CACHE_PREFIX}:{source_id}"

    @classmethod
    def hot_cache_pattern(cls) -> str:
        """用于 SCAN 的热榜快照匹配模式。"""
        return f"{cls.HOT_CACHE_PREFIX}:*"

    @classmethod
    def source_id_from_hot_cache(cls, key: str) -> str:
        """从快照 key 中还原 source_id。"""
        return key.removeprefix(f"{cls.HOT_CACHE_PREFIX}:")
