"""文件命名工具模块。

为压缩后的照片生成确定性的文件名。
"""

import time
from collections.abc import Callable

from ..models.constants import WEBP_EXTENSION


class PhotoNaming:
    """照片命名策略：photo_<毫秒时间戳>_<1 起始序号>.webp"""

    PREFIX = "photo"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def stamp(self) -> int:
        """当前毫秒时间戳"""
        return int(self._clock() * 1000)

    @classmethod
    def build(cls, index: int, stamp: int) -> str:
        """生成文件名

        Args:
            index: 0 起始的输入序号
            stamp: 毫秒时间戳

        Returns:
            str: 生成的文件名（不含路径）
        """
        if index < 0:
            raise ValueError(f"序号不能为负数: {index}")
        return f"{cls.PREFIX}_{stamp}_{index + 1}{WEBP_EXTENSION}"

    def generate(self, index: int) -> str:
        return self.build(index, self.stamp())
