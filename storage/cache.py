"""
Cache
内存缓存模块 - LRU + TTL
"""
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

from utils.clock import utcnow


logger = logging.getLogger(__name__)


class BaseCache(ABC):
    """
    缓存抽象基类
    """

    def __init__(self, ttl: Optional[int] = None):
        """
        初始化缓存

        Args:
            ttl: 缓存过期时间 (秒), None = 永不过期
        """
        self.ttl = ttl

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """获取缓存值"""
        pass

    @abstractmethod
    def get_entry(self, key: str) -> Optional[Dict[str, Any]]:
        """获取缓存条目 (value + inserted_at)"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """设置缓存值"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """删除缓存"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """清空缓存"""
        pass

    def exists(self, key: str) -> bool:
        """检查键是否存在"""
        return self.get_entry(key) is not None


class MemoryCache(BaseCache):
    """
    内存缓存
    容量满时淘汰最久未使用的条目，超过 TTL 的条目在读取时淘汰
    """

    def __init__(
        self,
        ttl: Optional[int] = None,
        max_size: int = 32,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        初始化内存缓存

        Args:
            ttl: 绝对过期时间 (秒), 从写入时刻起算
            max_size: 最大缓存条目数
            clock: 时钟 (测试可注入)
        """
        super().__init__(ttl)
        self.max_size = max(1, int(max_size))
        self._clock = clock
        self._cache: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()

    def _is_expired(self, entry: Dict[str, Any]) -> bool:
        """检查是否过期"""
        if not self.ttl:
            return False
        return self._clock() - entry["inserted_at"] > timedelta(seconds=self.ttl)

    def get_entry(self, key: str) -> Optional[Dict[str, Any]]:
        """获取缓存条目，命中时移到最近使用位置"""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if self._is_expired(entry):
            del self._cache[key]
            logger.debug("[Cache] expired %s", key)
            return None

        self._cache.move_to_end(key)
        return entry

    def get(self, key: str) -> Optional[Any]:
        """获取缓存值"""
        entry = self.get_entry(key)
        return entry["value"] if entry else None

    def set(self, key: str, value: Any) -> None:
        """设置缓存值，超出容量时淘汰最旧条目"""
        self._cache[key] = {"value": value, "inserted_at": self._clock()}
        self._cache.move_to_end(key)
        while len(self._cache) > self.max_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("[Cache] evicted %s (capacity %d)", evicted, self.max_size)

    def delete(self, key: str) -> None:
        """删除缓存"""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """清空缓存"""
        self._cache.clear()

    def keys(self) -> List[str]:
        """按最近使用顺序返回键 (最旧在前)"""
        return list(self._cache.keys())

    def size(self) -> int:
        """返回缓存大小"""
        return len(self._cache)
