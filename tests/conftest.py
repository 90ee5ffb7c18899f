"""测试配置文件。

提供测试所需的fixtures：合成图片、原始图像工厂、可记录的等待函数，
以及模拟消息 API 的脚本化传输层。
"""

import json
import os
import tempfile
import time
from io import BytesIO
from pathlib import Path

import httpx
import pytest
from PIL import Image, ImageDraw

from pti_relay.config import RelayConfig
from pti_relay.core.compression_engine import EncodeOutcome
from pti_relay.exceptions import ProcessingError
from pti_relay.models.photo import EncodedPhoto, RawImage
from pti_relay.models.preset import CompressionPreset
from pti_relay.models.submission import Driver, SubmissionSummary, TimeInfo, Unit


def encode_image(img: Image.Image, fmt: str = "JPEG", **save_kwargs) -> bytes:
    buffer = BytesIO()
    img.save(buffer, fmt, **save_kwargs)
    return buffer.getvalue()


def drawn_image(width: int = 1600, height: int = 1200) -> Image.Image:
    """色块图片，压缩率高"""
    img = Image.new("RGB", (width, height), color="white")
    draw = ImageDraw.Draw(img)
    for i in range(40):
        x, y = (i * 37) % width, (i * 29) % height
        color = (i * 5 % 256, i * 7 % 256, i * 11 % 256)
        draw.rectangle([x, y, x + width // 8, y + height // 8], fill=color)
    return img


def noise_image(width: int = 1600, height: int = 1200) -> Image.Image:
    """随机噪点图片，几乎无法压缩"""
    return Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))


def make_photo(index: int, payload: bytes | None = None) -> EncodedPhoto:
    """构造一张不需要真实编码的照片"""
    return EncodedPhoto.from_bytes(
        filename=f"photo_1700000000000_{index + 1}.webp",
        payload=payload or f"webp-{index}".encode(),
        width=1200,
        height=900,
    )


def fixed_outcome(size: int, width: int = 1200, height: int = 900) -> EncodeOutcome:
    return EncodeOutcome(
        payload=b"x" * size,
        width=width,
        height=height,
        original_dimensions=(4000, 3000),
        elapsed=0.0,
    )


def failing_on_bad_data(data: bytes, preset: CompressionPreset) -> EncodeOutcome:
    """数据为 b"bad" 时编码失败，其他返回 1000 字节"""
    if data == b"bad":
        raise ProcessingError("损坏的图像")
    return fixed_outcome(1000)


def slow_on_marker(data: bytes, preset: CompressionPreset) -> EncodeOutcome:
    """数据形如 b"slow:<秒>" 时按指定时长阻塞，其他 0.05 秒后返回 1000 字节

    模块级函数，可以提交给编码进程。
    """
    if data.startswith(b"slow:"):
        time.sleep(float(data[5:]))
    else:
        time.sleep(0.05)
    return fixed_outcome(1000)


def make_summary(**overrides) -> SubmissionSummary:
    fields = {
        "driver": Driver(first_name="Alex", last_name="Doe"),
        "unit": Unit(truck="T-101", trailer="TR-202"),
        "time": TimeInfo(
            human="2024-01-15 12:00:00 America/Chicago",
            iso="2024-01-15T18:00:00.000Z",
            timezone="America/Chicago",
        ),
    }
    fields.update(overrides)
    return SubmissionSummary(**fields)


class RecordingSleep:
    """记录等待时长而不真正等待"""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ScriptedApi:
    """按顺序返回预设响应的消息 API 模拟，记录每个请求"""

    def __init__(self, *responses: httpx.Response | Exception):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(200, json={"ok": True, "result": []})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def paths(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests]


def ok_response(result=None) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result or []})


def rate_limited_response(retry_after: int) -> httpx.Response:
    return httpx.Response(
        429,
        json={
            "ok": False,
            "error_code": 429,
            "description": f"Too Many Requests: retry after {retry_after}",
            "parameters": {"retry_after": retry_after},
        },
    )


def batch_json(batch) -> str:
    return json.dumps(batch.model_dump(mode="json", by_alias=True))


@pytest.fixture
def temp_dir():
    """临时目录fixture"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """1600x1200 的色块 JPEG"""
    return encode_image(drawn_image(), "JPEG", quality=90)


@pytest.fixture
def noise_bytes() -> bytes:
    """1600x1200 的噪点 PNG"""
    return encode_image(noise_image(), "PNG")


@pytest.fixture
def raw_image_factory():
    """原始图像工厂"""

    def factory(data: bytes, mime: str = "image/jpeg", name: str | None = None):
        return RawImage(data=data, mime=mime, name=name)

    return factory


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def relay_config() -> RelayConfig:
    return RelayConfig(
        bot_token="123456:TEST-TOKEN",
        chat_id="-1001234567890",
        thread_id=42,
        group_delay_ms=1500,
        api_base="https://api.telegram.test",
    )


@pytest.fixture
def photo_dir(temp_dir: Path) -> Path:
    """包含若干 JPEG 照片的目录"""
    for i in range(3):
        img = drawn_image(800 + i * 10, 600)
        img.save(temp_dir / f"img_{i:02d}.jpg", "JPEG", quality=85)
    return temp_dir
