"""压缩预设模型。

预设是一次压缩尝试使用的 (质量, 最大宽度, 最大高度) 组合；
预设阶梯按顺序逐级降低质量和尺寸，最后一级为兜底预设。
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CompressionPreset(BaseModel):
    """单个压缩预设"""

    model_config = ConfigDict(frozen=True)

    quality: float = Field(gt=0, le=1, description="有损编码质量 (0, 1]")
    max_width: int = Field(gt=0, description="最大宽度")
    max_height: int = Field(gt=0, description="最大高度")

    @property
    def encoder_quality(self) -> int:
        """Pillow 使用的 1-100 质量值"""
        return max(1, min(100, round(self.quality * 100)))

    @property
    def max_side(self) -> int:
        return max(self.max_width, self.max_height)

    def scaled_size(self, width: int, height: int) -> tuple[int, int]:
        """等比缩放后的尺寸，缩放比不超过 1.0（不放大）"""
        if width <= 0 or height <= 0:
            raise ValueError(f"无效的图像尺寸: {width}x{height}")

        ratio = min(self.max_width / width, self.max_height / height, 1.0)
        if ratio >= 1.0:
            return width, height

        return max(1, round(width * ratio)), max(1, round(height * ratio))


class PresetLadder(BaseModel):
    """预设阶梯：常规预设 + 兜底预设"""

    model_config = ConfigDict(frozen=True)

    presets: tuple[CompressionPreset, ...] = Field(min_length=1)
    fallback: CompressionPreset

    @model_validator(mode="after")
    def validate_monotonic(self) -> "PresetLadder":
        ladder = self.all_presets
        for previous, current in zip(ladder, ladder[1:]):
            if current.quality >= previous.quality:
                raise ValueError(
                    f"预设质量必须严格递减: {previous.quality} -> {current.quality}"
                )
            if (
                current.max_width > previous.max_width
                or current.max_height > previous.max_height
            ):
                raise ValueError(
                    "预设尺寸不能递增: "
                    f"{previous.max_width}x{previous.max_height} -> "
                    f"{current.max_width}x{current.max_height}"
                )
        return self

    @property
    def all_presets(self) -> tuple[CompressionPreset, ...]:
        return (*self.presets, self.fallback)

    def __len__(self) -> int:
        return len(self.presets) + 1


DEFAULT_LADDER = PresetLadder(
    presets=(
        CompressionPreset(quality=0.6, max_width=1200, max_height=1200),
        CompressionPreset(quality=0.52, max_width=1200, max_height=1200),
        CompressionPreset(quality=0.46, max_width=1024, max_height=1024),
        CompressionPreset(quality=0.42, max_width=960, max_height=960),
    ),
    fallback=CompressionPreset(quality=0.4, max_width=900, max_height=900),
)
