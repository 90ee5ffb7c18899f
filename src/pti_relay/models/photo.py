"""照片数据模型。

RawImage 是待压缩的原始二进制；EncodedPhoto 是压缩后的不可变照片描述；
CompressionJob 是单张照片在预设阶梯上的瞬时状态。
"""

import base64
import binascii

from humanize import naturalsize
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .constants import WEBP_MIME


class RawImage(BaseModel):
    """原始图像：二进制数据 + 声明的 MIME 类型"""

    data: bytes = Field(repr=False, description="原始图像字节")
    mime: str = Field("application/octet-stream", description="声明的 MIME 类型")
    name: str | None = Field(None, description="来源文件名")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def byte_length(self) -> int:
        """字节长度"""
        return len(self.data)


class EncodedPhoto(BaseModel):
    """压缩后的照片，创建后不可变"""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    filename: str = Field(min_length=1, description="文件名")
    mime: str = Field(WEBP_MIME, description="固定为 image/webp")
    data: str = Field(repr=False, description="base64 编码的图像字节")
    width: int = Field(gt=0, description="宽度")
    height: int = Field(gt=0, description="高度")
    byte_size: int = Field(ge=0, description="编码后字节数")

    @field_validator("mime")
    @classmethod
    def validate_mime(cls, v: str) -> str:
        if v != WEBP_MIME:
            raise ValueError(f"仅支持 {WEBP_MIME}，当前值: {v}")
        return v

    @field_validator("data")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"data 不是合法的 base64: {e}") from e
        return v

    @classmethod
    def from_bytes(
        cls, filename: str, payload: bytes, width: int, height: int
    ) -> "EncodedPhoto":
        return cls(
            filename=filename,
            data=base64.b64encode(payload).decode("ascii"),
            width=width,
            height=height,
            byte_size=len(payload),
        )

    def to_bytes(self) -> bytes:
        """解码为原始字节"""
        return base64.b64decode(self.data)

    def get_size_human(self) -> str:
        return naturalsize(self.byte_size, binary=True)


class CompressionJob(BaseModel):
    """单张照片的压缩状态，逐个预设推进"""

    source_index: int = Field(ge=0, description="0 起始的输入序号")
    target_byte_budget: int = Field(gt=0, description="目标字节上限")
    attempts_made: int = Field(0, ge=0, description="已进行的尝试次数")
    preset_index: int = Field(0, ge=0, description="当前预设序号")
    last_error: str | None = Field(None, description="最近一次失败原因")

    @property
    def position(self) -> int:
        """1 起始的序号"""
        return self.source_index + 1

    def start_attempt(self, preset_index: int) -> int:
        """进入指定预设并记一次尝试，返回当前尝试序号"""
        if preset_index < self.preset_index:
            raise ValueError("预设只能向后推进")
        self.preset_index = preset_index
        self.attempts_made += 1
        return self.attempts_made

    def within_budget(self, size: int) -> bool:
        return size <= self.target_byte_budget
