"""限流识别模块。

消息 API 用两种方式表示限流：专用状态码 429 加数字 retry_after，
或者在错误体的文字/parameters 中嵌入 retry_after。这里把响应统一
归一化为 Delivered / RateLimited / Rejected 三种结果，重试循环只看结果类型。
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any

from ..config import RelayDefaults


TOO_MANY_REQUESTS = 429

_RATE_LIMIT_TEXT = re.compile(r"too many requests|retry_after", re.IGNORECASE)
_RETRY_AFTER_TEXT = re.compile(r"retry_after\D*?(\d+(?:\.\d+)?)", re.IGNORECASE)
_RETRY_AFTER_PHRASE = re.compile(r"retry after (\d+(?:\.\d+)?)", re.IGNORECASE)


@dataclass(frozen=True)
class Delivered:
    """API 层面的成功"""

    result: Any


@dataclass(frozen=True)
class RateLimited:
    """被限流，需要等待后重试"""

    retry_after: float


@dataclass(frozen=True)
class Rejected:
    """其他失败，不可重试"""

    status_code: int
    description: str


ApiOutcome = Delivered | RateLimited | Rejected


def parse_body(raw: str) -> Any:
    """解析 JSON 响应体，非 JSON 返回 None"""
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _as_seconds(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if value >= 0 else None
    if isinstance(value, str):
        try:
            seconds = float(value.strip())
        except ValueError:
            return None
        return seconds if seconds >= 0 else None
    return None


def extract_retry_after(payload: Any, raw: str = "") -> float | None:
    """从结构化字段或错误文字中提取建议等待秒数"""
    if isinstance(payload, dict):
        parameters = payload.get("parameters")
        if isinstance(parameters, dict):
            seconds = _as_seconds(parameters.get("retry_after"))
            if seconds is not None:
                return seconds
        seconds = _as_seconds(payload.get("retry_after"))
        if seconds is not None:
            return seconds

    for pattern in (_RETRY_AFTER_TEXT, _RETRY_AFTER_PHRASE):
        match = pattern.search(raw)
        if match:
            return float(match.group(1))
    return None


def classify_response(
    status_code: int,
    raw: str,
    fallback_retry_after: float = RelayDefaults.FALLBACK_RETRY_AFTER,
) -> ApiOutcome:
    """把一次 HTTP 响应归一化为三种结果之一

    Args:
        status_code: HTTP 状态码
        raw: 原始响应文本
        fallback_retry_after: 没有给出等待时间时使用的秒数

    Returns:
        ApiOutcome: Delivered、RateLimited 或 Rejected
    """
    payload = parse_body(raw)

    api_ok = not (isinstance(payload, dict) and payload.get("ok") is False)
    if 200 <= status_code < 300 and api_ok:
        if isinstance(payload, dict) and "result" in payload:
            return Delivered(payload["result"])
        return Delivered(payload)

    error_code = payload.get("error_code") if isinstance(payload, dict) else None
    if (
        status_code == TOO_MANY_REQUESTS
        or error_code == TOO_MANY_REQUESTS
        or _RATE_LIMIT_TEXT.search(raw)
    ):
        retry_after = extract_retry_after(payload, raw)
        return RateLimited(
            retry_after if retry_after is not None else fallback_retry_after
        )

    description = raw
    if isinstance(payload, dict) and payload.get("description"):
        description = str(payload["description"])
    return Rejected(status_code, description or f"HTTP {status_code}")


def backoff_delay_ms(retry_after: float, multiplier: float) -> int:
    """限流等待毫秒数：ceil(秒 * 1000 * 安全系数)"""
    return math.ceil(retry_after * 1000 * multiplier)
