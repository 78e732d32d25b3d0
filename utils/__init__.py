"""
Utils Module
通用工具函数
"""
from .logger import setup_logger
from .exceptions import (
    SignalError,
    ConfigurationError,
    SourceFetchError,
    StorageError,
    ArchiveError,
    SummarizationError,
    DeliveryError,
)
from .retry import RetryPolicy, run_with_retry
from .concurrency import ConcurrencyLimiter, Settled

__all__ = [
    "setup_logger",
    "SignalError",
    "ConfigurationError",
    "SourceFetchError",
    "StorageError",
    "ArchiveError",
    "SummarizationError",
    "DeliveryError",
    "RetryPolicy",
    "run_with_retry",
    "ConcurrencyLimiter",
    "Settled",
]
