"""
Custom Exceptions
Signal 管道自定义异常
"""


class SignalError(Exception):
    """Signal 管道基础异常类"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(SignalError):
    """配置缺失或无效"""
    pass


class SourceFetchError(SignalError):
    """单个数据源抓取失败"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class StorageError(SignalError):
    """存储错误"""
    pass


class ArchiveError(StorageError):
    """产物归档错误"""
    pass


class SummarizationError(SignalError):
    """摘要生成错误"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class DeliveryError(SignalError):
    """投递错误"""

    def __init__(self, message: str, channel: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.channel = channel
