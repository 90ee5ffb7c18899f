"""提交编排模块。

一次提交：先发送摘要，再把照片按完成顺序切成每组 10 张，
严格按组序号逐组发送；每组成功后等待节流时间，任何一组失败即停止。
"""

import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol, TypeVar

from .config import CompressionDefaults, RelayDefaults
from .engine.pool import CompressionPool
from .exceptions import NotEnoughPhotos, RelayError
from .models.compression_result import PoolResult, SubmissionReport
from .models.constants import MAX_BATCH_PHOTOS
from .models.photo import EncodedPhoto, RawImage
from .models.submission import Batch, SubmissionSummary
from .utils.logging_helpers import get_logger
from .utils.message_formatter import MessageFormatter


logger = get_logger()
T = TypeVar("T")


class RelayTransport(Protocol):
    """进程内 Relay 和 RelayHttpClient 共同的发送接口"""

    def send_summary(self, summary: SubmissionSummary) -> Any: ...

    def send_batch(self, batch: Batch) -> Any: ...


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """按固定大小切分，保持顺序；最后一段可能更短"""
    if size < 1:
        raise ValueError(f"分组大小必须至少为 1，当前值: {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def build_batches(
    unit_id: str, photos: Sequence[EncodedPhoto], size: int = MAX_BATCH_PHOTOS
) -> list[Batch]:
    """把照片切成组，组序号为连续的 1..total"""
    groups = chunk(photos, size)
    total = len(groups)
    return [
        Batch(unit_id=unit_id, index=index, total=total, photos=tuple(group))
        for index, group in enumerate(groups, start=1)
    ]


def ensure_minimum_photos(
    photos: Sequence[EncodedPhoto], minimum: int = CompressionDefaults.MIN_PHOTOS
) -> None:
    """照片数量不足时拒绝提交

    Raises:
        NotEnoughPhotos: 数量少于 minimum
    """
    if len(photos) < minimum:
        raise NotEnoughPhotos(len(photos), minimum)


def prepare_photos(
    pool: CompressionPool,
    images: Sequence[RawImage],
    minimum: int = CompressionDefaults.MIN_PHOTOS,
) -> PoolResult:
    """压缩全部照片，并按压缩成功的数量重新检查最少照片数

    Raises:
        NotEnoughPhotos: 原始数量或压缩成功数量少于 minimum
    """
    if len(images) < minimum:
        raise NotEnoughPhotos(len(images), minimum)

    result = pool.run(images)
    if result.failures:
        logger.warning(
            f"{result.get_failure_count()} 张照片压缩失败: "
            f"{', '.join(f'#{p}' for p in result.get_failed_positions())}"
        )
    ensure_minimum_photos(result.photos, minimum)
    return result


class SubmissionRunner:
    """逐组提交照片的编排器"""

    def __init__(
        self,
        transport: RelayTransport,
        pacing_delay_ms: int = RelayDefaults.CLIENT_PACING_MS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if pacing_delay_ms < 0:
            raise ValueError(f"节流等待不能为负数，当前值: {pacing_delay_ms}")
        self.transport = transport
        self.pacing_delay_ms = pacing_delay_ms
        self._sleep = sleep
        self.last_error: RelayError | None = None

    def submit(
        self, summary: SubmissionSummary, photos: Sequence[EncodedPhoto]
    ) -> SubmissionReport:
        """发送摘要和全部照片分组

        Returns:
            SubmissionReport: 失败时记录已发送的组和失败的组
        """
        self.last_error = None
        if summary.photo_count is None:
            summary = summary.model_copy(update={"photo_count": len(photos)})
        batches = build_batches(summary.unit.label, photos)
        report = SubmissionReport(success=False, total_batches=len(batches))

        try:
            self.transport.send_summary(summary)
        except RelayError as e:
            return self._abort(report, e)
        report.summary_sent = True

        for batch in batches:
            try:
                self.transport.send_batch(batch)
            except RelayError as e:
                report.failed_batch = batch.index
                return self._abort(report, e)

            report.sent_batches.append(batch.index)
            logger.info(f"{MessageFormatter.batch_label(batch.index, batch.total)}提交完成")
            if self.pacing_delay_ms:
                self._sleep(self.pacing_delay_ms / 1000)

        report.success = True
        logger.info(report.get_summary())
        return report

    def _abort(self, report: SubmissionReport, error: RelayError) -> SubmissionReport:
        self.last_error = error
        report.error = error.message
        logger.error(f"提交中止: {report.get_summary()}")
        return report

    def raise_for_error(self) -> None:
        """重新抛出最近一次提交的中继错误"""
        if self.last_error is not None:
            raise self.last_error
