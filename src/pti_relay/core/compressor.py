"""自适应照片压缩器。

按预设阶梯逐级尝试，直到编码结果落在目标体积内；常规预设都超出时，
无条件返回兜底预设的结果，保证搜索一定终止。
"""

from concurrent.futures import TimeoutError as FuturesTimeoutError

from ..config import CompressionDefaults
from ..exceptions import AttemptTimeout, CompressionFailed
from ..models.photo import CompressionJob, EncodedPhoto, RawImage
from ..models.preset import DEFAULT_LADDER, CompressionPreset, PresetLadder
from ..utils.logging_helpers import get_logger
from ..utils.message_formatter import MessageFormatter
from ..utils.naming_helpers import PhotoNaming
from .attempt_runner import AttemptRunner, EncodeFunction, ThreadAttemptRunner
from .compression_engine import EncodeOutcome, encode_attempt


logger = get_logger()


class PhotoCompressor:
    """自适应照片压缩器

    每次尝试交给尝试执行器限时运行；同一张照片的尝试严格串行。
    """

    def __init__(
        self,
        ladder: PresetLadder = DEFAULT_LADDER,
        target_budget: int = CompressionDefaults.TARGET_BYTES,
        attempt_timeout: float = CompressionDefaults.ATTEMPT_TIMEOUT,
        fallback_timeout: float = CompressionDefaults.FALLBACK_TIMEOUT,
        runner: AttemptRunner | None = None,
        encode_fn: EncodeFunction = encode_attempt,
        naming: PhotoNaming | None = None,
    ):
        """初始化压缩器

        Args:
            ladder: 预设阶梯
            target_budget: 默认目标字节上限
            attempt_timeout: 常规预设单次尝试超时（秒）
            fallback_timeout: 兜底预设尝试超时（秒）
            runner: 尝试执行器，None 时使用自有的线程执行器
            encode_fn: 单次编码函数
            naming: 文件命名策略
        """
        if target_budget <= 0:
            raise ValueError(f"目标体积必须大于 0，当前值: {target_budget}")
        if attempt_timeout <= 0 or fallback_timeout <= 0:
            raise ValueError("尝试超时必须大于 0")

        self.ladder = ladder
        self.target_budget = target_budget
        self.attempt_timeout = attempt_timeout
        self.fallback_timeout = fallback_timeout
        self.encode_fn = encode_fn
        self.naming = naming or PhotoNaming()
        self.runner = runner or ThreadAttemptRunner()
        self._owns_runner = runner is None

    def __enter__(self) -> "PhotoCompressor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """关闭自有的尝试执行器"""
        if self._owns_runner:
            self.runner.close()

    def compress(
        self, image: RawImage, index: int, target_budget: int | None = None
    ) -> EncodedPhoto:
        """把一张原始图像压缩为 EncodedPhoto

        Args:
            image: 原始图像
            index: 0 起始的输入序号
            target_budget: 目标字节上限，None 使用默认值

        Returns:
            EncodedPhoto: 压缩结果

        Raises:
            ValueError: 目标体积不大于 0
            CompressionFailed: 兜底预设的尝试也失败
        """
        if target_budget is None:
            target_budget = self.target_budget
        if target_budget <= 0:
            raise ValueError(f"目标体积必须大于 0，当前值: {target_budget}")

        job = CompressionJob(source_index=index, target_byte_budget=target_budget)

        for preset_index, preset in enumerate(self.ladder.presets):
            outcome = self._run_attempt(job, image, preset_index, preset)
            if outcome is None:
                continue
            if job.within_budget(outcome.byte_size):
                return self._build_photo(job, outcome)

        fallback_index = len(self.ladder.presets)
        outcome = self._run_attempt(
            job, image, fallback_index, self.ladder.fallback, self.fallback_timeout
        )
        if outcome is None:
            raise CompressionFailed(index, job.last_error, job.attempts_made)

        if not job.within_budget(outcome.byte_size):
            logger.warning(
                f"{MessageFormatter.photo_label(index)} 兜底结果 "
                f"{outcome.byte_size} 字节超出目标 {job.target_byte_budget} 字节，仍然采用"
            )
        return self._build_photo(job, outcome)

    def _run_attempt(
        self,
        job: CompressionJob,
        image: RawImage,
        preset_index: int,
        preset: CompressionPreset,
        timeout: float | None = None,
    ) -> EncodeOutcome | None:
        """执行一次限时尝试，失败或超时返回 None"""
        attempt = job.start_attempt(preset_index)
        if timeout is None:
            timeout = self.attempt_timeout

        try:
            outcome = self.runner.run(self.encode_fn, image.data, preset, timeout)
        except FuturesTimeoutError:
            error = AttemptTimeout(f"编码超过 {timeout:g} 秒", job.source_index)
            self._record_failure(job, attempt, preset, error)
            return None
        except Exception as e:
            self._record_failure(job, attempt, preset, e)
            return None

        logger.debug(
            MessageFormatter.attempt_result(
                job.source_index,
                attempt,
                preset.quality,
                preset.max_side,
                outcome.byte_size,
                outcome.elapsed,
            )
        )
        return outcome

    def _record_failure(
        self,
        job: CompressionJob,
        attempt: int,
        preset: CompressionPreset,
        error: Exception,
    ) -> None:
        job.last_error = getattr(error, "message", None) or str(error)
        logger.warning(
            f"{MessageFormatter.photo_label(job.source_index)} 第 {attempt} 次尝试 "
            f"(q={preset.quality:.2f}, {preset.max_side}px) 失败: {job.last_error}"
        )

    def _build_photo(self, job: CompressionJob, outcome: EncodeOutcome) -> EncodedPhoto:
        return EncodedPhoto.from_bytes(
            filename=self.naming.generate(job.source_index),
            payload=outcome.payload,
            width=outcome.width,
            height=outcome.height,
        )
