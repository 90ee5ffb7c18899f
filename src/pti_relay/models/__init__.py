"""数据模型包。

定义照片压缩与中继相关的数据结构和模型。
"""

from .compression_result import (
    BaseResult,
    CompressionFailure,
    DeliveryResult,
    PoolResult,
    SubmissionReport,
)
from .constants import (
    MAX_BATCH_PHOTOS,
    WEBP_EXTENSION,
    WEBP_FORMAT,
    WEBP_MIME,
    ImageFormats,
    get_mime_type,
)
from .photo import CompressionJob, EncodedPhoto, RawImage
from .preset import DEFAULT_LADDER, CompressionPreset, PresetLadder
from .submission import (
    AcquisitionMethod,
    Batch,
    Driver,
    Location,
    SubmissionSummary,
    TimeInfo,
    Unit,
)


__all__ = [
    "DEFAULT_LADDER",
    "MAX_BATCH_PHOTOS",
    "WEBP_EXTENSION",
    "WEBP_FORMAT",
    "WEBP_MIME",
    "AcquisitionMethod",
    "BaseResult",
    "Batch",
    "CompressionFailure",
    "CompressionJob",
    "CompressionPreset",
    "DeliveryResult",
    "Driver",
    "EncodedPhoto",
    "ImageFormats",
    "Location",
    "PoolResult",
    "PresetLadder",
    "RawImage",
    "SubmissionReport",
    "SubmissionSummary",
    "TimeInfo",
    "Unit",
    "get_mime_type",
]
