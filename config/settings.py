"""
Settings Configuration
使用 Pydantic 进行配置验证和管理
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


CONFIG_DIR = Path(__file__).parent


class GeneralSettings(BaseSettings):
    """通用设置"""
    timezone: str = Field(default="America/New_York", description="锚定时区 (所有按天比较都在该时区进行)")
    user_agent: str = Field(default="Mozilla/5.0 (compatible; SignalDigestBot/1.0)", description="抓取 User-Agent")
    log_level: str = Field(default="INFO", description="日志级别")
    log_file: Optional[str] = Field(default=None, description="日志文件 (相对路径落在 log_dir 下)")
    log_dir: str = Field(default="./logs", description="日志目录")

    class Config:
        env_prefix = "GENERAL_"


class FetchSettings(BaseSettings):
    """抓取配置"""
    concurrency: int = Field(default=5, description="同时抓取的数据源数量上限")
    max_attempts: int = Field(default=3, description="单个数据源最大尝试次数")
    retry_base_delay: float = Field(default=1.0, description="重试基础延迟(秒)，按 2^n 增长")
    max_items_per_feed: int = Field(default=10, description="每个 feed 取最近条目数")
    max_items_per_page: int = Field(default=10, description="每个新闻页抓取条目数")
    request_timeout: float = Field(default=15.0, description="单次请求超时(秒)")
    sources_file: str = Field(default=str(CONFIG_DIR / "sources.json"), description="数据源目录文件")

    class Config:
        env_prefix = "FETCH_"


class StorageSettings(BaseSettings):
    """存储配置"""
    db_path: str = Field(default="./data/signal.db", description="SQLite 数据库路径")
    artifact_log_path: str = Field(default="./data/signal-archive.jsonl", description="追加式产物日志")
    retention_days: int = Field(default=90, description="文章保留天数")
    query_limit: int = Field(default=100, description="单次查询返回上限")

    class Config:
        env_prefix = "STORAGE_"


class CacheSettings(BaseSettings):
    """产物缓存配置"""
    max_entries: int = Field(default=32, description="内存缓存容量")
    ttl_seconds: int = Field(default=6 * 3600, description="内存缓存过期时间(秒)")
    fresh_days: int = Field(default=7, description="长新鲜窗口(天)，用于一般缓存命中")
    same_day_window: bool = Field(default=True, description="重跑时是否使用“当天”短窗口避免重复生成")
    collision_days: int = Field(default=3, description="同类别归档合并窗口(自然日)")
    digest_collision_days: int = Field(default=1, description="每日摘要类别的合并窗口(自然日)，每天一行")
    aggregate_category: str = Field(default="all", description="聚合伪类别，不归档")

    class Config:
        env_prefix = "CACHE_"


class DigestSettings(BaseSettings):
    """每日摘要运行配置"""
    category: str = Field(default="digest", description="每日摘要的归档类别")
    run_at: str = Field(default="08:00", description="每日运行时间 (锚定时区)")
    window_hours: int = Field(default=24, description="摘要取最近多少小时的文章")
    rollup_weekday: int = Field(default=4, description="周汇总在星期几 (0=周一, 4=周五)")
    rollup_count: int = Field(default=5, description="周汇总使用最近多少份摘要")
    sweep_weekday: int = Field(default=6, description="清理旧文章在星期几 (6=周日)")
    cron_secret: Optional[str] = Field(default=None, description="触发接口共享密钥")
    heartbeat_url: Optional[str] = Field(default=None, description="运行期间自我心跳地址 (不填则不心跳)")
    heartbeat_interval: float = Field(default=240.0, description="心跳间隔(秒)")
    scheduler_enabled: bool = Field(default=True, description="是否启用内置调度")

    class Config:
        env_prefix = "DIGEST_"


class LLMSettings(BaseSettings):
    """摘要 LLM 配置"""
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API Key")
    model_name: str = Field(default="claude-sonnet-4-5-20250929", description="模型名称")
    temperature: float = Field(default=0.25, description="生成温度")
    max_tokens: int = Field(default=8000, description="最大生成token数")
    timeout: float = Field(default=180.0, description="单次生成超时(秒)")
    rollup_timeout: float = Field(default=60.0, description="周汇总超时(秒)")
    audience: str = Field(
        default="a product manager who owns a digital mortgage experience",
        description="摘要读者画像，写入提示词",
    )

    class Config:
        env_prefix = "LLM_"


class EmailSettings(BaseSettings):
    """邮件投递配置 (Resend)"""
    resend_api_key: Optional[str] = Field(default=None, description="Resend API Key")
    to: Optional[str] = Field(default=None, description="收件人")
    from_address: str = Field(default="onboarding@resend.dev", description="发件人")
    api_url: str = Field(default="https://api.resend.com/emails", description="Resend 接口")
    max_attempts: int = Field(default=2, description="最大发送次数")
    retry_delay: float = Field(default=60.0, description="重试延迟(秒)")

    class Config:
        env_prefix = "EMAIL_"


class Settings(BaseSettings):
    """主配置类 - 聚合所有子配置"""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    digest: DigestSettings = Field(default_factory=DigestSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """从指定的 .env 文件加载配置"""
        if env_path is None:
            # 默认查找 config/.env
            env_path = CONFIG_DIR / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            general=GeneralSettings(),
            fetch=FetchSettings(),
            storage=StorageSettings(),
            cache=CacheSettings(),
            digest=DigestSettings(),
            llm=LLMSettings(),
            email=EmailSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """获取全局配置单例"""
    return Settings.load_from_env_file()
