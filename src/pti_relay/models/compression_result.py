"""压缩与投递结果模型。"""

from typing import Any

from humanize import naturalsize
from pydantic import BaseModel, Field

from .photo import EncodedPhoto


class BaseResult(BaseModel):
    """结果基类，包含通用字段和方法"""

    success: bool = Field(description="是否成功")
    error: str | None = Field(None, description="错误信息")

    @staticmethod
    def format_size(size_bytes: int) -> str:
        """格式化文件大小为人类可读格式"""
        return naturalsize(size_bytes, binary=True)


class CompressionFailure(BaseModel):
    """单张照片的最终失败记录"""

    source_index: int = Field(ge=0, description="0 起始的输入序号")
    error: str = Field(description="错误信息")
    attempts: int = Field(0, ge=0, description="已进行的尝试次数")

    @property
    def position(self) -> int:
        """1 起始的序号"""
        return self.source_index + 1


class PoolResult(BaseResult):
    """一次并发压缩的结果，照片按完成顺序排列"""

    total: int = Field(ge=0, description="输入图片数")
    photos: list[EncodedPhoto] = Field(default_factory=list, description="成功结果")
    failures: list[CompressionFailure] = Field(
        default_factory=list, description="失败记录"
    )

    def get_success_count(self) -> int:
        return len(self.photos)

    def get_failure_count(self) -> int:
        return len(self.failures)

    def get_failed_positions(self) -> list[int]:
        """失败照片的 1 起始序号（升序）"""
        return sorted(f.position for f in self.failures)

    def get_total_size(self) -> int:
        return sum(p.byte_size for p in self.photos)

    def get_summary(self) -> str:
        """压缩摘要"""
        summary = (
            f"压缩 {self.get_success_count()}/{self.total} 张，"
            f"共 {self.format_size(self.get_total_size())}"
        )
        if self.failures:
            positions = ", ".join(f"#{p}" for p in self.get_failed_positions())
            summary += f"，失败: {positions}"
        return summary


class DeliveryResult(BaseModel):
    """单组照片成功投递的结果"""

    batch_index: int = Field(ge=1)
    attempts: int = Field(ge=1, description="实际发起的请求次数")
    waited_ms: list[int] = Field(default_factory=list, description="每次限流等待")
    result: Any = Field(None, description="消息 API 返回的 result")


class SubmissionReport(BaseResult):
    """一次提交的结果，可能是部分投递"""

    summary_sent: bool = Field(False, description="摘要是否已发送")
    total_batches: int = Field(ge=0)
    sent_batches: list[int] = Field(default_factory=list, description="已发送的组序号")
    failed_batch: int | None = Field(None, description="失败的组序号")

    @property
    def is_partial(self) -> bool:
        """部分组已发送后失败"""
        return not self.success and bool(self.sent_batches)

    def get_summary(self) -> str:
        if self.success:
            return f"已发送摘要和 {len(self.sent_batches)}/{self.total_batches} 组照片"
        if not self.summary_sent:
            return f"摘要发送失败: {self.error}"
        return (
            f"已发送 {len(self.sent_batches)}/{self.total_batches} 组，"
            f"第 {self.failed_batch} 组失败: {self.error}"
        )
