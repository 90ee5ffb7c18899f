"""压缩引擎模块。

单次编码尝试：解码、按 EXIF 纠正方向、按预设等比缩小、编码为 WebP。
函数保持无状态且可序列化，线程池和进程池都可以直接提交。
"""

import time
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps

from ..exceptions import handle_image_errors
from ..models.constants import WEBP_FORMAT
from ..models.preset import CompressionPreset
from ..utils.logging_helpers import get_logger


logger = get_logger()

# EXIF 方向值 5-8 表示宽高互换
_TRANSPOSED_ORIENTATIONS = {5, 6, 7, 8}
_EXIF_ORIENTATION = 0x0112


@dataclass(frozen=True)
class EncodeOutcome:
    """一次编码尝试的产物"""

    payload: bytes
    width: int
    height: int
    original_dimensions: tuple[int, int]
    elapsed: float

    @property
    def byte_size(self) -> int:
        return len(self.payload)

    @property
    def was_resized(self) -> bool:
        return (self.width, self.height) != self.original_dimensions


@handle_image_errors("WebP 编码")
def encode_attempt(data: bytes, preset: CompressionPreset) -> EncodeOutcome:
    """按单个预设编码一次

    Args:
        data: 原始图像字节
        preset: 压缩预设

    Returns:
        EncodeOutcome: 编码结果
    """
    started = time.perf_counter()

    with Image.open(BytesIO(data)) as img:
        original_dimensions = _oriented_size(img)

        # JPEG 草稿模式按 2 的幂缩小解码，结果仍不小于请求尺寸
        side = preset.max_side
        img.draft("RGB", (side, side))

        img = ImageOps.exif_transpose(img)
        target_size = preset.scaled_size(*img.size)
        if target_size != img.size:
            img = img.resize(target_size, Image.Resampling.LANCZOS)

        img = _prepare_for_webp(img)

        buffer = BytesIO()
        img.save(
            buffer,
            format=WEBP_FORMAT,
            quality=preset.encoder_quality,
            method=4,
        )
        width, height = img.size

    return EncodeOutcome(
        payload=buffer.getvalue(),
        width=width,
        height=height,
        original_dimensions=original_dimensions,
        elapsed=time.perf_counter() - started,
    )


def _oriented_size(img: Image.Image) -> tuple[int, int]:
    """考虑 EXIF 方向后的原始尺寸"""
    width, height = img.size
    try:
        orientation = img.getexif().get(_EXIF_ORIENTATION)
    except Exception as e:
        logger.debug(f"读取 EXIF 方向失败: {e}")
        orientation = None

    if orientation in _TRANSPOSED_ORIENTATIONS:
        return height, width
    return width, height


def _prepare_for_webp(img: Image.Image) -> Image.Image:
    """WebP 只接受 RGB/RGBA，其他模式先转换"""
    match img.mode:
        case "RGB" | "RGBA":
            return img
        case "P" if "transparency" in img.info:
            return img.convert("RGBA")
        case "LA" | "PA":
            return img.convert("RGBA")
        case _:
            return img.convert("RGB")
