"""提交数据模型。

定义检查摘要和照片分组的数据结构，字段在网络上使用 camelCase。
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .constants import MAX_BATCH_PHOTOS
from .photo import EncodedPhoto


class WireModel(BaseModel):
    """网络传输模型基类：camelCase 别名，同时接受字段名"""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )


class AcquisitionMethod(str, Enum):
    """位置获取方式"""

    GEOLOCATION = "geolocation"
    MANUAL = "manual"
    NONE = "none"


class Driver(WireModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)


class Unit(WireModel):
    truck: str = Field(min_length=1)
    trailer: str = Field(min_length=1)

    @property
    def label(self) -> str:
        """分组标题中使用的单元标识"""
        return f"{self.truck}/{self.trailer}"


class TimeInfo(WireModel):
    human: str
    iso: str
    timezone: str


class Location(WireModel):
    """坐标或自由文本位置"""

    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)
    accuracy_meters: float | None = Field(None, ge=0)
    text: str | None = None

    @model_validator(mode="after")
    def validate_coordinates(self) -> "Location":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat 和 lon 必须同时提供")
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None


class SubmissionSummary(WireModel):
    """一次提交的文字摘要，只发送一次"""

    driver: Driver
    unit: Unit
    comment: str | None = None
    time: TimeInfo
    location: Location | None = None
    acquisition_method: AcquisitionMethod = AcquisitionMethod.NONE
    photo_count: int | None = Field(None, ge=0, description="照片总数（可选）")


class Batch(WireModel):
    """一组不超过 10 张的照片，整体发送一次"""

    unit_id: str = Field(min_length=1)
    index: int = Field(ge=1, description="1 起始的组序号")
    total: int = Field(ge=1, description="组总数")
    photos: tuple[EncodedPhoto, ...] = Field(
        min_length=1, max_length=MAX_BATCH_PHOTOS
    )

    @model_validator(mode="after")
    def validate_index(self) -> "Batch":
        if self.index > self.total:
            raise ValueError(f"组序号 {self.index} 超出总数 {self.total}")
        return self

    def caption_prefix(self) -> str:
        return f"({self.index}/{self.total}) {self.unit_id}"

    def caption(self, position: int) -> str:
        """第 position 张照片（1 起始）的标题"""
        return f"{self.caption_prefix()} #{position}"
