"""消息中继模块。

摘要只尝试发送一次；每组照片在限流时按服务端建议的时间等待后整组重发，
其他失败立即终止。组内同一时间只有一个请求在途。
"""

import time
from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx

from ..config import RelayConfig
from ..exceptions import (
    BatchDeliveryFailed,
    RetriesExhausted,
    SummaryDeliveryFailed,
)
from ..models.compression_result import DeliveryResult
from ..models.submission import Batch, SubmissionSummary
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter
from .rate_limit import (
    Delivered,
    RateLimited,
    Rejected,
    backoff_delay_ms,
    classify_response,
)
from .summary_text import build_summary_message
from .telegram import MediaAttachment, TelegramClient


logger = get_logger()


class DeliveryState(str, Enum):
    """单组照片的投递状态"""

    PENDING = "pending"
    WAITING = "waiting"
    SENT = "sent"
    FAILED = "failed"


_TRANSITIONS: dict[DeliveryState, set[DeliveryState]] = {
    DeliveryState.PENDING: {
        DeliveryState.SENT,
        DeliveryState.WAITING,
        DeliveryState.FAILED,
    },
    DeliveryState.WAITING: {DeliveryState.PENDING},
    DeliveryState.SENT: set(),
    DeliveryState.FAILED: set(),
}


class BatchDelivery:
    """单组照片投递的状态机"""

    def __init__(self, batch_index: int):
        self.batch_index = batch_index
        self.state = DeliveryState.PENDING
        self.attempts = 0
        self.waited_ms: list[int] = []

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, new_state: DeliveryState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"第 {self.batch_index} 组非法状态转换: "
                f"{self.state.value} -> {new_state.value}"
            )
        self.state = new_state


def build_media_group(
    batch: Batch,
) -> tuple[list[MediaAttachment], list[dict[str, Any]]]:
    """构建二进制分片和引用它们的 manifest"""
    attachments: list[MediaAttachment] = []
    manifest: list[dict[str, Any]] = []

    for position, photo in enumerate(batch.photos, start=1):
        name = f"file{position}"
        attachments.append(
            MediaAttachment(
                name=name,
                filename=photo.filename or name,
                content=photo.to_bytes(),
                mime=photo.mime,
            )
        )
        manifest.append(
            {
                "type": "photo",
                "media": f"attach://{name}",
                "caption": batch.caption(position),
            }
        )

    return attachments, manifest


class Relay:
    """向单个消息目的地投递摘要和照片分组"""

    def __init__(
        self,
        config: RelayConfig,
        client: TelegramClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """初始化中继

        Args:
            config: 中继配置（按引用持有）
            client: 消息 API 客户端，None 时按配置创建
            sleep: 等待函数（秒），测试时可替换
        """
        self.config = config
        self._owns_client = client is None
        self.client = client or TelegramClient(config)
        self._sleep = sleep

    def __enter__(self) -> "Relay":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def send_summary(self, summary: SubmissionSummary) -> Any:
        """发送摘要，只尝试一次

        Raises:
            SummaryDeliveryFailed: 任何非成功响应或传输失败
        """
        text = build_summary_message(summary)
        try:
            response = self.client.send_message(text)
        except httpx.HTTPError as e:
            logger.error(MessageFormatter.operation_failed("发送摘要", summary.unit.label, e))
            raise SummaryDeliveryFailed(str(e)) from e

        outcome = classify_response(
            response.status_code, response.text, self.config.fallback_retry_after
        )
        if isinstance(outcome, Delivered):
            logger.info(f"摘要已发送: {summary.unit.label}")
            return outcome.result

        logger.error(f"摘要发送失败: HTTP {response.status_code}")
        raise SummaryDeliveryFailed(response.text, response.status_code)

    def send_batch(self, batch: Batch, max_attempts: int | None = None) -> DeliveryResult:
        """发送一组照片，限流时等待后整组重发

        Args:
            batch: 照片分组
            max_attempts: 限流重试上限，None 使用配置值

        Returns:
            DeliveryResult: 投递结果

        Raises:
            BatchDeliveryFailed: 非限流错误
            RetriesExhausted: 连续限流达到上限
        """
        if max_attempts is None:
            max_attempts = self.config.max_attempts
        if max_attempts < 1:
            raise ValueError(f"最大尝试次数必须至少为 1，当前值: {max_attempts}")
        label = MessageFormatter.batch_label(batch.index, batch.total)
        delivery = BatchDelivery(batch.index)
        attachments, manifest = build_media_group(batch)

        while delivery.attempts < max_attempts:
            delivery.attempts += 1
            outcome = self._attempt(delivery, attachments, manifest)

            match outcome:
                case Delivered(result=result):
                    delivery.transition(DeliveryState.SENT)
                    logger.info(
                        f"{label}已发送 ({len(batch.photos)} 张, 尝试 {delivery.attempts} 次)"
                    )
                    return DeliveryResult(
                        batch_index=batch.index,
                        attempts=delivery.attempts,
                        waited_ms=delivery.waited_ms,
                        result=result,
                    )
                case RateLimited(retry_after=retry_after):
                    if delivery.attempts >= max_attempts:
                        break
                    delay_ms = backoff_delay_ms(
                        retry_after, self.config.retry_multiplier
                    )
                    delivery.transition(DeliveryState.WAITING)
                    logger.warning(
                        f"{label}被限流，retry_after={retry_after:g}s，等待 {delay_ms}ms"
                    )
                    self._sleep(delay_ms / 1000)
                    delivery.waited_ms.append(delay_ms)
                    delivery.transition(DeliveryState.PENDING)
                case Rejected(status_code=status_code, description=description):
                    delivery.transition(DeliveryState.FAILED)
                    logger.error(f"{label}发送失败: HTTP {status_code} {description}")
                    raise BatchDeliveryFailed(batch.index, description, status_code)

        delivery.transition(DeliveryState.FAILED)
        logger.error(f"{label}限流重试 {delivery.attempts} 次后放弃")
        raise RetriesExhausted(batch.index, delivery.attempts)

    def _attempt(
        self,
        delivery: BatchDelivery,
        attachments: list[MediaAttachment],
        manifest: list[dict[str, Any]],
    ):
        try:
            response = self.client.send_media_group(attachments, manifest)
        except httpx.HTTPError as e:
            delivery.transition(DeliveryState.FAILED)
            logger.error(
                MessageFormatter.operation_failed(
                    "发送照片组", f"第 {delivery.batch_index} 组", e
                )
            )
            raise BatchDeliveryFailed(delivery.batch_index, str(e)) from e

        return classify_response(
            response.status_code, response.text, self.config.fallback_retry_after
        )
