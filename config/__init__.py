"""
Configuration Management Module
统一配置管理
"""
from .settings import (
    Settings,
    GeneralSettings,
    FetchSettings,
    StorageSettings,
    CacheSettings,
    DigestSettings,
    LLMSettings,
    EmailSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "GeneralSettings",
    "FetchSettings",
    "StorageSettings",
    "CacheSettings",
    "DigestSettings",
    "LLMSettings",
    "EmailSettings",
    "get_settings",
]
