"""核心功能测试。

测试单次编码、预设阶梯压缩器和批量压缩池。
"""

import threading
import time
from concurrent.futures import TimeoutError as FuturesTimeoutError
from io import BytesIO

import pytest
from PIL import Image

from pti_relay.core.attempt_runner import ProcessAttemptRunner, ThreadAttemptRunner
from pti_relay.core.compression_engine import EncodeOutcome, encode_attempt
from pti_relay.core.compressor import PhotoCompressor
from pti_relay.engine.pool import CompressionPool
from pti_relay.exceptions import (
    CompressionFailed,
    ProcessingError,
    UnsupportedFormatError,
)
from pti_relay.models.photo import RawImage
from pti_relay.models.preset import DEFAULT_LADDER, CompressionPreset, PresetLadder
from pti_relay.utils.naming_helpers import PhotoNaming
from tests.conftest import (
    drawn_image,
    encode_image,
    failing_on_bad_data,
    fixed_outcome,
    slow_on_marker,
)


class ScriptedEncoder:
    """按质量返回指定大小的编码函数，记录调用顺序"""

    def __init__(self, sizes: dict[float, int], delays: dict[float, float] | None = None):
        self.sizes = sizes
        self.delays = delays or {}
        self.calls: list[float] = []
        self._lock = threading.Lock()

    def __call__(self, data: bytes, preset: CompressionPreset) -> EncodeOutcome:
        with self._lock:
            self.calls.append(preset.quality)
        delay = self.delays.get(preset.quality)
        if delay:
            time.sleep(delay)
        size = self.sizes.get(preset.quality)
        if size is None:
            raise ProcessingError(f"编码失败 q={preset.quality}")
        return fixed_outcome(size)


class TestCompressionEngine:
    """单次编码测试"""

    def test_encode_downscales_to_preset(self, jpeg_bytes: bytes):
        """测试按预设等比缩小"""
        preset = CompressionPreset(quality=0.6, max_width=1200, max_height=1200)
        outcome = encode_attempt(jpeg_bytes, preset)

        assert (outcome.width, outcome.height) == (1200, 900)
        assert outcome.original_dimensions == (1600, 1200)
        assert outcome.was_resized

        with Image.open(BytesIO(outcome.payload)) as img:
            assert img.format == "WEBP"
            assert img.size == (1200, 900)

    def test_encode_never_upscales(self):
        """测试小图不放大"""
        data = encode_image(drawn_image(300, 200), "PNG")
        preset = CompressionPreset(quality=0.6, max_width=1200, max_height=1200)
        outcome = encode_attempt(data, preset)

        assert (outcome.width, outcome.height) == (300, 200)
        assert not outcome.was_resized

    def test_encode_applies_exif_orientation(self):
        """测试 EXIF 方向为 6 时宽高互换"""
        img = drawn_image(1600, 1200)
        exif = Image.Exif()
        exif[0x0112] = 6
        data = encode_image(img, "JPEG", quality=90, exif=exif.tobytes())

        preset = CompressionPreset(quality=0.6, max_width=1200, max_height=1200)
        outcome = encode_attempt(data, preset)

        assert outcome.original_dimensions == (1200, 1600)
        assert (outcome.width, outcome.height) == (900, 1200)

    def test_encode_transparent_image(self):
        """测试透明图片保持 RGBA 编码"""
        img = Image.new("RGBA", (400, 400), color=(0, 0, 0, 0))
        data = encode_image(img, "PNG")
        preset = CompressionPreset(quality=0.5, max_width=200, max_height=200)

        outcome = encode_attempt(data, preset)

        assert (outcome.width, outcome.height) == (200, 200)

    def test_encode_rejects_garbage(self):
        """测试无法识别的数据"""
        preset = CompressionPreset(quality=0.6, max_width=1200, max_height=1200)
        with pytest.raises(UnsupportedFormatError):
            encode_attempt(b"definitely not an image", preset)


class TestPhotoCompressor:
    """预设阶梯压缩器测试"""

    def test_real_photo_within_budget(self, jpeg_bytes: bytes):
        """测试真实图片压缩到预算内"""
        image = RawImage(data=jpeg_bytes, mime="image/jpeg")
        with PhotoCompressor() as compressor:
            photo = compressor.compress(image, 4)

        assert photo.mime == "image/webp"
        assert photo.byte_size <= 200 * 1024
        assert photo.byte_size == len(photo.to_bytes())
        assert max(photo.width, photo.height) <= 1200
        assert photo.filename.startswith("photo_")
        assert photo.filename.endswith("_5.webp")

    def test_noise_photo_falls_back(self, noise_bytes: bytes):
        """测试所有常规预设超预算时返回兜底结果"""
        image = RawImage(data=noise_bytes, mime="image/png")
        with PhotoCompressor(target_budget=1024) as compressor:
            photo = compressor.compress(image, 0)

        assert photo.byte_size > 1024
        assert max(photo.width, photo.height) == 900

    def test_stops_at_first_preset_within_budget(self):
        """测试命中预算后不再尝试后续预设"""
        encoder = ScriptedEncoder({0.6: 300_000, 0.52: 250_000, 0.46: 150_000})
        with PhotoCompressor(encode_fn=encoder) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 0)

        assert encoder.calls == [0.6, 0.52, 0.46]
        assert photo.byte_size == 150_000

    def test_fallback_returned_over_budget(self):
        """测试兜底结果即使超预算也返回"""
        sizes = {p.quality: 999_999 for p in DEFAULT_LADDER.all_presets}
        encoder = ScriptedEncoder(sizes)
        with PhotoCompressor(encode_fn=encoder) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 0)

        assert encoder.calls == [0.6, 0.52, 0.46, 0.42, 0.4]
        assert photo.byte_size == 999_999

    def test_timeout_moves_to_next_preset(self):
        """测试超时的尝试视为失败并进入下一预设"""
        encoder = ScriptedEncoder({0.6: 1000, 0.52: 1000}, delays={0.6: 0.5})
        with PhotoCompressor(
            encode_fn=encoder, attempt_timeout=0.2, fallback_timeout=0.2
        ) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 0)

        assert encoder.calls == [0.6, 0.52]
        assert photo.byte_size == 1000

    def test_encoder_error_moves_to_next_preset(self):
        """测试编码错误视为失败并进入下一预设"""
        encoder = ScriptedEncoder({0.46: 1000})
        with PhotoCompressor(encode_fn=encoder) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 0)

        assert encoder.calls == [0.6, 0.52, 0.46]
        assert photo.byte_size == 1000

    def test_fallback_failure_raises(self):
        """测试兜底尝试也失败时抛出 CompressionFailed"""
        encoder = ScriptedEncoder({})
        with PhotoCompressor(encode_fn=encoder) as compressor:
            with pytest.raises(CompressionFailed) as exc_info:
                compressor.compress(RawImage(data=b"raw"), 6)

        error = exc_info.value
        assert error.index == 6
        assert error.position == 7
        assert error.attempts == 5
        assert "#7" in error.message

    def test_fallback_timeout_raises(self):
        """测试兜底尝试超时时抛出 CompressionFailed"""
        delays = {p.quality: 0.3 for p in DEFAULT_LADDER.all_presets}
        sizes = {p.quality: 999_999 for p in DEFAULT_LADDER.all_presets}
        encoder = ScriptedEncoder(sizes, delays)
        with PhotoCompressor(
            encode_fn=encoder, attempt_timeout=0.02, fallback_timeout=0.02
        ) as compressor:
            with pytest.raises(CompressionFailed):
                compressor.compress(RawImage(data=b"raw"), 0)

    def test_filename_uses_naming_strategy(self):
        """测试文件名由时间戳和 1 起始序号组成"""
        encoder = ScriptedEncoder({0.6: 10})
        naming = PhotoNaming(clock=lambda: 1_700_000_000.5)
        with PhotoCompressor(encode_fn=encoder, naming=naming) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 2)

        assert photo.filename == "photo_1700000000500_3.webp"

    def test_invalid_arguments(self):
        """测试参数验证"""
        with pytest.raises(ValueError):
            PhotoCompressor(target_budget=0)
        with pytest.raises(ValueError):
            PhotoCompressor(attempt_timeout=0)

    @pytest.mark.parametrize("budget", [0, -1])
    def test_invalid_budget_per_call(self, budget):
        """测试单次调用传入的目标体积同样需要大于 0"""
        encoder = ScriptedEncoder({0.6: 10})
        with PhotoCompressor(encode_fn=encoder) as compressor:
            with pytest.raises(ValueError):
                compressor.compress(RawImage(data=b"raw"), 0, target_budget=budget)

        assert encoder.calls == []

    def test_explicit_budget_overrides_default(self):
        encoder = ScriptedEncoder({0.6: 5000, 0.52: 900})
        with PhotoCompressor(encode_fn=encoder, target_budget=10_000) as compressor:
            photo = compressor.compress(RawImage(data=b"raw"), 0, target_budget=1000)

        assert encoder.calls == [0.6, 0.52]
        assert photo.byte_size == 900


class ConcurrencyTracker:
    """记录同时运行的编码数"""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, data: bytes, preset: CompressionPreset) -> EncodeOutcome:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        try:
            time.sleep(0.02)
            return fixed_outcome(1000)
        finally:
            with self._lock:
                self.active -= 1


class TestCompressionPool:
    """批量压缩池测试"""

    def test_single_failure_does_not_abort_pool(self):
        """测试单张失败只记录，其他照片继续"""
        images = [
            RawImage(data=b"bad" if i == 6 else f"img-{i}".encode()) for i in range(20)
        ]
        pool = CompressionPool(
            max_workers=4, force_executor_type="thread", encode_fn=failing_on_bad_data
        )

        result = pool.run(images)

        assert result.success
        assert result.total == 20
        assert result.get_success_count() == 19
        assert result.get_failure_count() == 1
        assert result.get_failed_positions() == [7]
        assert result.failures[0].attempts == 5
        assert "#7" in result.get_summary()

    def test_every_image_yields_one_photo(self):
        """测试每张成功的图片恰好产生一张照片"""
        images = [RawImage(data=f"img-{i}".encode()) for i in range(12)]
        pool = CompressionPool(
            max_workers=3, force_executor_type="thread", encode_fn=failing_on_bad_data
        )

        result = pool.run(images)

        suffixes = sorted(
            int(p.filename.rsplit("_", 1)[-1].removesuffix(".webp"))
            for p in result.photos
        )
        assert suffixes == list(range(1, 13))

    def test_concurrency_is_bounded(self):
        """测试同时运行的编码数不超过工作池大小"""
        tracker = ConcurrencyTracker()
        images = [RawImage(data=f"img-{i}".encode()) for i in range(16)]
        pool = CompressionPool(
            max_workers=3, force_executor_type="thread", encode_fn=tracker
        )

        result = pool.run(images)

        assert result.get_success_count() == 16
        assert 1 <= tracker.peak <= 3

    def test_on_result_callback(self):
        """测试每完成一张照片回调一次"""
        seen = []
        images = [RawImage(data=f"img-{i}".encode()) for i in range(5)]
        pool = CompressionPool(
            max_workers=2, force_executor_type="thread", encode_fn=failing_on_bad_data
        )

        pool.run(images, on_result=seen.append)

        assert len(seen) == 5

    def test_empty_input(self):
        """测试空输入"""
        result = CompressionPool(max_workers=2).run([])
        assert result.success
        assert result.total == 0
        assert result.photos == []

    def test_all_failures(self):
        """测试全部失败"""
        images = [RawImage(data=b"bad") for _ in range(3)]
        pool = CompressionPool(
            max_workers=2, force_executor_type="thread", encode_fn=failing_on_bad_data
        )

        result = pool.run(images)

        assert not result.success
        assert result.get_failed_positions() == [1, 2, 3]

    def test_run_directory(self, photo_dir):
        """测试目录批量压缩（真实编码）"""
        result = CompressionPool(max_workers=2).run_directory(photo_dir)

        assert result.total == 3
        assert result.get_success_count() == 3
        assert all(p.byte_size <= 200 * 1024 for p in result.photos)

    def test_invalid_executor_type(self):
        """测试无效的执行器类型"""
        with pytest.raises(ValueError):
            CompressionPool(force_executor_type="gpu")

    def test_slow_images_do_not_fail_siblings(self):
        """测试慢图片超时不会拖累同批其他图片"""
        images = [
            RawImage(data=b"slow:3" if i < 4 else f"img-{i}".encode())
            for i in range(20)
        ]
        pool = CompressionPool(
            max_workers=4,
            force_executor_type="thread",
            attempt_timeout=0.3,
            fallback_timeout=0.3,
            encode_fn=slow_on_marker,
        )

        result = pool.run(images)

        assert result.get_failed_positions() == [1, 2, 3, 4]
        assert result.get_success_count() == 16
        assert all(f.attempts == 5 for f in result.failures)


SHORT_LADDER = PresetLadder(
    presets=(CompressionPreset(quality=0.6, max_width=1200, max_height=1200),),
    fallback=CompressionPreset(quality=0.4, max_width=900, max_height=900),
)


class TestAttemptRunners:
    """编码尝试执行器测试"""

    PRESET = CompressionPreset(quality=0.6, max_width=1200, max_height=1200)

    def test_thread_runner_times_out(self):
        runner = ThreadAttemptRunner()
        started = time.perf_counter()

        with pytest.raises(FuturesTimeoutError):
            runner.run(slow_on_marker, b"slow:1", self.PRESET, 0.1)

        assert time.perf_counter() - started < 0.9

    def test_thread_runner_propagates_errors(self):
        with pytest.raises(ProcessingError):
            ThreadAttemptRunner().run(failing_on_bad_data, b"bad", self.PRESET, 1.0)

    def test_process_runner_encodes(self, jpeg_bytes: bytes):
        """测试编码进程执行真实编码"""
        runner = ProcessAttemptRunner(1)
        try:
            outcome = runner.run(encode_attempt, jpeg_bytes, self.PRESET, 30.0)
        finally:
            runner.close()

        assert (outcome.width, outcome.height) == (1200, 900)
        with Image.open(BytesIO(outcome.payload)) as img:
            assert img.format == "WEBP"

    def test_process_runner_returns_encoder_errors(self):
        """测试编码进程中的异常原样回到调用方"""
        runner = ProcessAttemptRunner(1)
        try:
            with pytest.raises(UnsupportedFormatError) as exc_info:
                runner.run(encode_attempt, b"definitely not an image", self.PRESET, 30.0)
            with pytest.raises(ProcessingError, match="损坏的图像"):
                runner.run(failing_on_bad_data, b"bad", self.PRESET, 30.0)
        finally:
            runner.close()

        assert "不支持的图像格式" in exc_info.value.message

    def test_process_runner_terminates_on_timeout(self):
        """测试超时的编码进程被终止，名额立即可用"""
        runner = ProcessAttemptRunner(1)
        started = time.perf_counter()
        try:
            with pytest.raises(FuturesTimeoutError):
                runner.run(slow_on_marker, b"slow:60", self.PRESET, 1.0)
            outcome = runner.run(slow_on_marker, b"fast", self.PRESET, 10.0)
        finally:
            runner.close()

        assert outcome.byte_size == 1000
        assert time.perf_counter() - started < 30

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            ProcessAttemptRunner(0)


class TestProcessEncoding:
    """进程编码路径测试"""

    def test_many_photos_use_process_encoding(self):
        """测试超过 20 张时自动选择进程编码并完成真实压缩"""
        data = encode_image(drawn_image(800, 600), "JPEG", quality=90)
        images = [RawImage(data=data, mime="image/jpeg") for _ in range(23)]
        pool = CompressionPool(max_workers=4)

        assert pool.concurrent_executor._choose_runner_type(images) == "process"
        result = pool.run(images)

        assert result.get_success_count() == 23
        assert result.get_failure_count() == 0
        assert all(p.mime == "image/webp" for p in result.photos)

    def test_per_image_failure_in_process(self):
        """测试进程编码时单张失败只记录，错误信息完整回传"""
        data = encode_image(drawn_image(800, 600), "JPEG", quality=90)
        images = [RawImage(data=data, mime="image/jpeg") for _ in range(4)]
        images.insert(2, RawImage(data=b"definitely not an image"))
        pool = CompressionPool(max_workers=2, force_executor_type="process")

        result = pool.run(images)

        assert result.get_success_count() == 4
        assert result.get_failed_positions() == [3]
        assert result.failures[0].attempts == 5
        assert "不支持的图像格式" in result.failures[0].error

    def test_slow_images_are_terminated(self):
        """测试慢图片的编码进程被终止，其他图片照常完成"""
        images = [
            RawImage(data=b"slow:60" if i < 2 else f"img-{i}".encode())
            for i in range(6)
        ]
        pool = CompressionPool(
            max_workers=2,
            force_executor_type="process",
            ladder=SHORT_LADDER,
            attempt_timeout=2.0,
            fallback_timeout=2.0,
            encode_fn=slow_on_marker,
        )
        started = time.perf_counter()

        result = pool.run(images)

        assert result.get_failed_positions() == [1, 2]
        assert result.get_success_count() == 4
        assert time.perf_counter() - started < 30
