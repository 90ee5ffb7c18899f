"""消息中继模块。

限流识别、消息 API 客户端、带重试的中继，以及对外的 HTTP 入口。
"""

from .http_client import RelayHttpClient
from .rate_limit import (
    Delivered,
    RateLimited,
    Rejected,
    backoff_delay_ms,
    classify_response,
    extract_retry_after,
)
from .relay import BatchDelivery, DeliveryState, Relay, build_media_group
from .server import create_app
from .summary_text import build_summary_message, escape_markdown
from .telegram import ApiResponse, MediaAttachment, TelegramClient


__all__ = [
    "ApiResponse",
    "BatchDelivery",
    "Delivered",
    "DeliveryState",
    "MediaAttachment",
    "RateLimited",
    "Rejected",
    "Relay",
    "RelayHttpClient",
    "TelegramClient",
    "backoff_delay_ms",
    "build_media_group",
    "build_summary_message",
    "classify_response",
    "create_app",
    "escape_markdown",
    "extract_retry_after",
]
