"""并发执行器模块。

有界工作池：每张照片同一时间只交给一个工作线程，完成一张立即领取下一张，
结果按完成顺序收集；单张照片失败只记录，不中断其他照片。
并发上限只由工作池决定，编码尝试不另设排队名额。
"""

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

from ..config import default_worker_count
from ..core.attempt_runner import (
    AttemptRunner,
    ProcessAttemptRunner,
    ThreadAttemptRunner,
)
from ..exceptions import ErrorHandler
from ..models.compression_result import CompressionFailure
from ..models.photo import EncodedPhoto, RawImage
from ..utils.logging_helpers import get_logger


logger = get_logger()

PhotoTask = Callable[[RawImage, int], EncodedPhoto]


class ConcurrentExecutor:
    """通用并发执行器

    统一的任务执行接口，以及编码尝试执行器类型的选择。
    """

    # 平均超过 5MB 或数量超过 20 张时使用进程编码
    PROCESS_SIZE_THRESHOLD = 5 * 1024 * 1024
    PROCESS_COUNT_THRESHOLD = 20

    def __init__(
        self, max_workers: int | None = None, force_executor_type: str | None = None
    ):
        """初始化并发执行器

        Args:
            max_workers: 最大并发数，None 为 min(8, CPU 核数)
            force_executor_type: 强制指定编码尝试执行器类型 ('thread'/'process'/None为自动选择)
        """
        if max_workers is not None and max_workers <= 0:
            raise ValueError(f"max_workers 必须大于 0，当前值: {max_workers}")
        if force_executor_type not in {None, "thread", "process"}:
            raise ValueError("force_executor_type 必须是 'thread', 'process' 或 None")

        self.max_workers = max_workers or default_worker_count()
        self.force_executor_type = force_executor_type

    def execute_tasks(
        self,
        images: Sequence[RawImage],
        task_function: PhotoTask,
        on_result: Callable[[EncodedPhoto], None] | None = None,
    ) -> tuple[list[EncodedPhoto], list[CompressionFailure]]:
        """执行并发任务，全部尝试完成后返回

        Args:
            images: 原始图像列表
            task_function: 处理单张照片的函数 (image, index) -> EncodedPhoto
            on_result: 每完成一张照片时的回调

        Returns:
            tuple: (按完成顺序排列的照片, 失败记录)
        """
        photos: list[EncodedPhoto] = []
        failures: list[CompressionFailure] = []
        if not images:
            return photos, failures

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="pti-compress"
        ) as executor:
            future_to_index = {
                executor.submit(task_function, image, index): index
                for index, image in enumerate(images)
            }

            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    photo = future.result()
                except Exception as e:
                    failure = ErrorHandler.handle_compression_error(
                        e, index, "并发压缩", getattr(e, "attempts", 0)
                    )
                    failures.append(failure)
                    continue

                photos.append(photo)
                logger.debug(f"处理成功: #{index + 1} -> {photo.filename}")
                if on_result is not None:
                    on_result(photo)

        return photos, failures

    def create_attempt_runner(self, images: Sequence[RawImage]) -> AttemptRunner:
        """创建编码尝试执行器，进程数与工作池一致"""
        if self._choose_runner_type(images) == "process":
            return ProcessAttemptRunner(self.max_workers)
        return ThreadAttemptRunner()

    def _choose_runner_type(self, images: Sequence[RawImage]) -> str:
        """根据任务特征选择编码方式

        Args:
            images: 原始图像列表

        Returns:
            "thread" 或 "process"
        """
        if self.force_executor_type is not None:
            return self.force_executor_type

        task_count = len(images)
        avg_size = (
            sum(image.byte_length for image in images) / task_count if task_count else 0
        )

        if (
            avg_size > self.PROCESS_SIZE_THRESHOLD
            or task_count > self.PROCESS_COUNT_THRESHOLD
        ):
            logger.debug(
                f"使用进程编码: 任务数={task_count}, 平均大小={avg_size / 1024 / 1024:.1f}MB"
            )
            return "process"

        logger.debug(
            f"使用线程编码: 任务数={task_count}, 平均大小={avg_size / 1024 / 1024:.1f}MB"
        )
        return "thread"
