"""
Logger Configuration
统一日志配置: 控制台用 Rich，文件用纯文本，级别和文件来自 GeneralSettings
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler


console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

# 这些库在 INFO 级别逐请求/逐语句刷屏
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "feedparser")

_HANDLER_TAG = "_signal_handler"


def resolve_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """"debug" / "WARNING" / 10 -> logging 常量; 无法识别时用 default"""
    if isinstance(level, int):
        return level
    name = str(level or "").strip().upper()
    value = logging.getLevelName(name) if name else default
    return value if isinstance(value, int) else default


def resolve_log_path(log_file: Optional[str], log_dir: Union[str, Path] = "logs") -> Optional[Path]:
    if not log_file:
        return None
    path = Path(log_file)
    return path if path.is_absolute() else Path(log_dir) / path


def _tagged(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, True)
    return handler


def setup_logger(
    level: Union[int, str, None] = None,
    log_file: Optional[str] = None,
    *,
    settings=None,
    name: Optional[str] = None,
    use_rich: bool = True,
) -> logging.Logger:
    """
    配置日志 (默认根记录器，所有模块的 getLogger(__name__) 都汇总到这里)

    显式参数优先，其次是 settings.general 里的 log_level / log_file / log_dir。
    重复调用只替换本模块装上的 handler，不会叠加输出。

    Args:
        level: 日志级别 (名称或数值)
        log_file: 日志文件 (相对路径落在 log_dir 下)
        settings: 全局 Settings，可选
        name: 记录器名称
        use_rich: 控制台是否使用 Rich
    """
    general = getattr(settings, "general", None)
    level_value = resolve_level(level if level is not None else getattr(general, "log_level", None))
    file_path = resolve_log_path(
        log_file if log_file is not None else getattr(general, "log_file", None),
        getattr(general, "log_dir", "logs"),
    )

    logger = logging.getLogger(name)
    logger.setLevel(level_value)
    for handler in [h for h in logger.handlers if getattr(h, _HANDLER_TAG, False)]:
        logger.removeHandler(handler)
        handler.close()

    if use_rich:
        console_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler.setLevel(level_value)
    logger.addHandler(_tagged(console_handler))

    if file_path is not None:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level_value)
        logger.addHandler(_tagged(file_handler))

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(level_value, logging.WARNING))

    return logger
