"""统一配置管理模块。

提供默认值和显式配置对象。配置在进程启动时从环境变量构建一次，
之后按引用传递给中继组件，不存在模块级的全局配置实例。
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


class ConfigurationError(ValueError):
    """配置缺失或取值非法"""


@dataclass(frozen=True)
class CompressionDefaults:
    """压缩相关的默认配置"""

    # 目标体积（字节）
    TARGET_BYTES: int = 200 * 1024

    # 并发设置，实际值还会受 CPU 核数限制
    MAX_WORKERS: int = 8
    FALLBACK_WORKERS: int = 6

    # 单次编码超时（秒）
    ATTEMPT_TIMEOUT: float = 10.0
    FALLBACK_TIMEOUT: float = 9.0

    # 提交前的最少照片数
    MIN_PHOTOS: int = 20


@dataclass(frozen=True)
class RelayDefaults:
    """中继相关的默认配置"""

    API_BASE: str = "https://api.telegram.org"

    # 服务端每组发送成功后的节流等待
    GROUP_DELAY_MS: int = 1500
    # 客户端每组之间的节流等待
    CLIENT_PACING_MS: int = 600

    # 限流重试
    MAX_ATTEMPTS: int = 5
    RETRY_MULTIPLIER: float = 1.2
    FALLBACK_RETRY_AFTER: float = 5.0

    REQUEST_TIMEOUT: float = 60.0

    HOST: str = "0.0.0.0"
    PORT: int = 8000


@dataclass(frozen=True)
class LoggingDefaults:
    """日志相关的默认配置"""

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} 必须是整数，当前值: {raw!r}") from e


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} 必须是数字，当前值: {raw!r}") from e


@dataclass(frozen=True)
class RelayConfig:
    """消息中继配置

    构建一次后按引用传入 Relay、TelegramClient 和 HTTP 入口。
    """

    bot_token: str = field(repr=False)
    chat_id: str
    thread_id: int | None = None
    group_delay_ms: int = RelayDefaults.GROUP_DELAY_MS
    max_attempts: int = RelayDefaults.MAX_ATTEMPTS
    retry_multiplier: float = RelayDefaults.RETRY_MULTIPLIER
    fallback_retry_after: float = RelayDefaults.FALLBACK_RETRY_AFTER
    api_base: str = RelayDefaults.API_BASE
    request_timeout: float = RelayDefaults.REQUEST_TIMEOUT

    def __post_init__(self) -> None:
        if not self.bot_token:
            raise ConfigurationError("缺少 TELEGRAM_BOT_TOKEN")
        if not self.chat_id:
            raise ConfigurationError("缺少 TELEGRAM_CHAT_ID")
        if self.group_delay_ms < 0:
            raise ConfigurationError(
                f"节流等待不能为负数，当前值: {self.group_delay_ms}"
            )
        if self.max_attempts < 1:
            raise ConfigurationError(
                f"最大尝试次数必须至少为 1，当前值: {self.max_attempts}"
            )
        if self.retry_multiplier < 1.0:
            raise ConfigurationError(
                f"退避系数不能小于 1.0，当前值: {self.retry_multiplier}"
            )
        if self.fallback_retry_after <= 0:
            raise ConfigurationError(
                f"默认等待时间必须大于 0，当前值: {self.fallback_retry_after}"
            )

    @property
    def api_url(self) -> str:
        """机器人 API 的根地址（包含凭据，不要写入日志）"""
        return f"{self.api_base.rstrip('/')}/bot{self.bot_token}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "RelayConfig":
        """从环境变量构建配置"""
        env = os.environ if environ is None else environ

        thread_raw = env.get("TELEGRAM_THREAD_ID")
        thread_id = None
        if thread_raw:
            thread_id = _env_int(env, "TELEGRAM_THREAD_ID", 0)

        return cls(
            bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            chat_id=env.get("TELEGRAM_CHAT_ID", ""),
            thread_id=thread_id,
            group_delay_ms=_env_int(
                env, "GROUP_DELAY_MS", RelayDefaults.GROUP_DELAY_MS
            ),
            max_attempts=_env_int(env, "PTI_MAX_ATTEMPTS", RelayDefaults.MAX_ATTEMPTS),
            retry_multiplier=_env_float(
                env, "PTI_RETRY_MULTIPLIER", RelayDefaults.RETRY_MULTIPLIER
            ),
            fallback_retry_after=_env_float(
                env, "PTI_FALLBACK_RETRY_AFTER", RelayDefaults.FALLBACK_RETRY_AFTER
            ),
            api_base=env.get("TELEGRAM_API_BASE") or RelayDefaults.API_BASE,
        )


@dataclass(frozen=True)
class ClientConfig:
    """表单客户端（压缩与提交编排）配置"""

    target_bytes: int = CompressionDefaults.TARGET_BYTES
    max_workers: int = CompressionDefaults.MAX_WORKERS
    min_photos: int = CompressionDefaults.MIN_PHOTOS
    pacing_delay_ms: int = RelayDefaults.CLIENT_PACING_MS
    relay_url: str | None = None

    def __post_init__(self) -> None:
        if self.target_bytes <= 0:
            raise ConfigurationError(f"目标体积必须大于 0，当前值: {self.target_bytes}")
        if self.max_workers <= 0:
            raise ConfigurationError(f"并发数必须大于 0，当前值: {self.max_workers}")
        if self.pacing_delay_ms < 0:
            raise ConfigurationError(
                f"节流等待不能为负数，当前值: {self.pacing_delay_ms}"
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ClientConfig":
        env = os.environ if environ is None else environ
        return cls(
            target_bytes=_env_int(
                env, "PTI_TARGET_KB", CompressionDefaults.TARGET_BYTES // 1024
            )
            * 1024,
            max_workers=_env_int(
                env, "PTI_MAX_WORKERS", CompressionDefaults.MAX_WORKERS
            ),
            min_photos=_env_int(env, "PTI_MIN_PHOTOS", CompressionDefaults.MIN_PHOTOS),
            pacing_delay_ms=_env_int(
                env, "PTI_CLIENT_PACING_MS", RelayDefaults.CLIENT_PACING_MS
            ),
            relay_url=env.get("PTI_RELAY_URL") or None,
        )


@dataclass(frozen=True)
class ServerConfig:
    """中继 HTTP 服务监听配置"""

    host: str = RelayDefaults.HOST
    port: int = RelayDefaults.PORT
    log_level: str = LoggingDefaults.LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("PTI_HOST") or RelayDefaults.HOST,
            port=_env_int(env, "PTI_PORT", RelayDefaults.PORT),
            log_level=(env.get("PTI_LOG_LEVEL") or LoggingDefaults.LOG_LEVEL).upper(),
        )


def default_worker_count(limit: int = CompressionDefaults.MAX_WORKERS) -> int:
    """压缩池大小：min(limit, CPU 核数)"""
    cpus = os.cpu_count() or CompressionDefaults.FALLBACK_WORKERS
    return max(1, min(limit, cpus))
