"""工具函数模块。

提供照片文件发现和原始图像加载的实用工具函数。
"""

from collections.abc import Iterable, Iterator
from pathlib import Path

from PIL import Image

from ..models.constants import get_mime_type
from ..models.photo import RawImage
from .logging_helpers import get_logger
from .message_formatter import MessageFormatter


logger = get_logger()


def find_image_files(
    directory: str | Path,
    recursive: bool = False,
    exclude_dirs: list[str] | None = None,
) -> Iterator[Path]:
    """查找目录中的图像文件。

    结果按路径排序，保证输入序号稳定。

    Args:
        directory: 搜索目录
        recursive: 是否递归搜索子目录
        exclude_dirs: 要排除的目录名列表

    Yields:
        Path: 图像文件路径
    """
    directory = Path(directory)
    exclude_dirs = exclude_dirs or []

    if not directory.exists():
        logger.warning(MessageFormatter.directory_not_found(directory))
        return

    if not directory.is_dir():
        logger.warning(MessageFormatter.path_not_directory(directory))
        return

    pattern = "**/*" if recursive else "*"
    supported_extensions = set(Image.registered_extensions().keys())

    try:
        candidates = sorted(directory.glob(pattern))
    except PermissionError as e:
        logger.error(MessageFormatter.operation_failed("访问目录", directory, e))
        return

    for file_path in candidates:
        if (
            file_path.is_file()
            and file_path.suffix.lower() in supported_extensions
            and not any(exclude_dir in file_path.parts for exclude_dir in exclude_dirs)
        ):
            yield file_path


def get_image_mime_type(file_path: str | Path) -> str | None:
    """获取图片文件的 MIME 类型

    Args:
        file_path: 图片文件路径

    Returns:
        str | None: MIME 类型，如 'image/jpeg'，失败时返回 None
    """
    try:
        with Image.open(file_path) as img:
            if img.format:
                return get_mime_type(img.format)
            return None
    except Exception as e:
        logger.debug(MessageFormatter.operation_failed("获取 MIME 类型", file_path, e))
        return None


def load_raw_image(file_path: str | Path) -> RawImage:
    """读取单个文件为 RawImage"""
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(MessageFormatter.file_not_found(file_path))

    return RawImage(
        data=file_path.read_bytes(),
        mime=get_image_mime_type(file_path) or "application/octet-stream",
        name=file_path.name,
    )


def load_raw_images(paths: Iterable[str | Path]) -> list[RawImage]:
    """按顺序读取多个文件"""
    return [load_raw_image(path) for path in paths]
