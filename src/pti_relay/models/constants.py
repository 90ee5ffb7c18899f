"""图像处理与中继相关常量定义。"""

from typing import Final


WEBP_FORMAT: Final[str] = "WEBP"
WEBP_MIME: Final[str] = "image/webp"
WEBP_EXTENSION: Final[str] = ".webp"

# 每次 sendMediaGroup 允许的最大媒体数
MAX_BATCH_PHOTOS: Final[int] = 10


class ImageFormats:
    """格式名到 MIME 类型的映射"""

    ALIASES: Final[dict[str, str]] = {
        "JPG": "JPEG",
    }

    SPECIAL_MIME_TYPES: Final[dict[str, str]] = {
        "ICO": "image/x-icon",
        "HEIF": "image/heif",
        "MPO": "image/jpeg",
    }

    @classmethod
    def get_mime_type(cls, format_name: str) -> str:
        format_upper = format_name.upper()
        format_upper = cls.ALIASES.get(format_upper, format_upper)

        if format_upper in cls.SPECIAL_MIME_TYPES:
            return cls.SPECIAL_MIME_TYPES[format_upper]

        return f"image/{format_upper.lower()}"


def get_mime_type(format_str: str) -> str:
    """获取格式的MIME类型"""
    return ImageFormats.get_mime_type(format_str)
