"""
Base Source Adapter
所有数据源适配器的抽象基类
"""
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, TypeVar
import asyncio
import logging

import httpx

from config import get_settings
from core import Record


logger = logging.getLogger(__name__)

R = TypeVar("R")


async def _http_get_text(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 15.0,
) -> str:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return str(response.text or "")


class BaseSourceAdapter(ABC):
    """
    数据源适配器抽象基类
    所有具体适配器都需要继承此类并实现 fetch()，输出统一的 Record 列表。
    传输层失败直接抛出 (由重试执行器处理)，单条记录解析失败则跳过并记录日志。
    """

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    @property
    @abstractmethod
    def name(self) -> str:
        """返回数据源名称"""
        pass

    @property
    def category(self) -> str:
        """返回数据源分组"""
        return ""

    @abstractmethod
    async def fetch(self) -> List[Record]:
        """
        抓取并规范化该数据源的最新条目

        Returns:
            按源内顺序排列的记录列表
        """
        pass

    def is_configured(self) -> bool:
        """
        检查是否已正确配置
        子类可以覆盖此方法来检查必要的地址等
        """
        return True

    async def _get_text(self, url: str) -> str:
        """抓取原始页面/文档 (有超时上限)"""
        headers = {
            "User-Agent": self.settings.general.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        }
        return await _http_get_text(url, headers=headers, timeout=self.settings.fetch.request_timeout)

    async def _run_blocking(self, func: Callable[..., R], *args, **kwargs) -> R:
        """在线程池中执行阻塞函数"""
        return await asyncio.to_thread(func, *args, **kwargs)

    def _log_fetch(self, count: int):
        """记录抓取日志"""
        logger.info(f"[{self.name}] fetched {count} records")

    def _log_skip(self, reason: str, detail: str = ""):
        """记录跳过的条目"""
        logger.debug(f"[{self.name}] skipped entry ({reason}) {detail}".rstrip())

    def _log_error(self, message: str, error: Exception):
        """记录错误日志"""
        logger.error(f"[{self.name}] {message}: {error}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
