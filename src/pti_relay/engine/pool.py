"""批量压缩模块。

把一次选择的全部原始图像交给有界工作池压缩，汇总成功结果和失败记录。
"""

from collections.abc import Callable, Sequence
from pathlib import Path

from ..config import CompressionDefaults
from ..core.attempt_runner import EncodeFunction
from ..core.compressor import PhotoCompressor
from ..core.compression_engine import encode_attempt
from ..models.compression_result import CompressionFailure, PoolResult
from ..models.photo import EncodedPhoto, RawImage
from ..models.preset import DEFAULT_LADDER, PresetLadder
from ..utils import find_image_files, load_raw_images
from ..utils.logging_helpers import get_logger
from .concurrent_executor import ConcurrentExecutor


logger = get_logger()


class CompressionPool:
    """批量照片压缩器

    工作池大小为 min(8, CPU 核数)，每张照片由一个工作线程按预设阶梯串行尝试。
    """

    def __init__(
        self,
        max_workers: int | None = None,
        force_executor_type: str | None = None,
        ladder: PresetLadder = DEFAULT_LADDER,
        target_budget: int = CompressionDefaults.TARGET_BYTES,
        attempt_timeout: float = CompressionDefaults.ATTEMPT_TIMEOUT,
        fallback_timeout: float = CompressionDefaults.FALLBACK_TIMEOUT,
        encode_fn: EncodeFunction = encode_attempt,
    ):
        """初始化批量压缩器

        Args:
            max_workers: 最大并发数
            force_executor_type: 强制指定编码尝试执行器类型 ('thread'/'process'/None为自动选择)
            ladder: 预设阶梯
            target_budget: 目标字节上限
            attempt_timeout: 常规预设单次尝试超时（秒）
            fallback_timeout: 兜底预设尝试超时（秒）
            encode_fn: 单次编码函数，使用进程池时必须可序列化
        """
        self.concurrent_executor = ConcurrentExecutor(max_workers, force_executor_type)
        self.ladder = ladder
        self.target_budget = target_budget
        self.attempt_timeout = attempt_timeout
        self.fallback_timeout = fallback_timeout
        self.encode_fn = encode_fn

    @property
    def max_workers(self) -> int:
        return self.concurrent_executor.max_workers

    def run(
        self,
        images: Sequence[RawImage],
        on_result: Callable[[EncodedPhoto], None] | None = None,
    ) -> PoolResult:
        """压缩全部图像，所有图像都尝试过后返回

        Args:
            images: 原始图像列表
            on_result: 每完成一张照片时的回调

        Returns:
            PoolResult: 照片按完成顺序排列，失败单独记录
        """
        if not images:
            return PoolResult(success=True, total=0, error="没有需要压缩的照片")

        runner = self.concurrent_executor.create_attempt_runner(images)
        compressor = PhotoCompressor(
            ladder=self.ladder,
            target_budget=self.target_budget,
            attempt_timeout=self.attempt_timeout,
            fallback_timeout=self.fallback_timeout,
            runner=runner,
            encode_fn=self.encode_fn,
        )
        try:
            photos, failures = self.concurrent_executor.execute_tasks(
                images, compressor.compress, on_result
            )
        finally:
            runner.close()

        return self._create_pool_result(len(images), photos, failures)

    def run_directory(
        self, input_dir: str | Path, recursive: bool = False
    ) -> PoolResult:
        """压缩目录中的全部图像文件"""
        input_dir = Path(input_dir)
        image_files = list(find_image_files(input_dir, recursive=recursive))
        return self.run(load_raw_images(image_files))

    def _create_pool_result(
        self,
        total: int,
        photos: list[EncodedPhoto],
        failures: list[CompressionFailure],
    ) -> PoolResult:
        success = bool(photos)
        result = PoolResult(
            success=success,
            error=None if success else "所有照片压缩都失败",
            total=total,
            photos=photos,
            failures=failures,
        )

        if failures:
            logger.warning(result.get_summary())
        else:
            logger.info(result.get_summary())
        return result


def compress_images(
    images: Sequence[RawImage],
    target_budget: int = CompressionDefaults.TARGET_BYTES,
    max_workers: int | None = None,
) -> PoolResult:
    """便捷的批量压缩函数"""
    pool = CompressionPool(max_workers=max_workers, target_budget=target_budget)
    return pool.run(images)
