"""
Storage Module
存储模块 - 内容存储、产物缓存与归档
"""
from .database import Database
from .cache import BaseCache, MemoryCache
from .content_store import ContentStore
from .artifact_store import ArtifactStore
from .artifact_log import ArtifactLog

__all__ = [
    "Database",
    "BaseCache",
    "MemoryCache",
    "ContentStore",
    "ArtifactStore",
    "ArtifactLog",
]
