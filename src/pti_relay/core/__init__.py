"""核心压缩模块。

单次编码尝试与自适应预设阶梯。
"""

from .attempt_runner import AttemptRunner, ProcessAttemptRunner, ThreadAttemptRunner
from .compression_engine import EncodeOutcome, encode_attempt
from .compressor import PhotoCompressor


__all__ = [
    "AttemptRunner",
    "EncodeOutcome",
    "PhotoCompressor",
    "ProcessAttemptRunner",
    "ThreadAttemptRunner",
    "encode_attempt",
]
