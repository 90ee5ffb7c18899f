"""消息 API 客户端模块。

封装 sendMessage 与 sendMediaGroup 两个调用，只负责发请求并返回原始响应，
结果判定交给 rate_limit.classify_response。
"""

import json
from dataclasses import dataclass
from typing import Any

import httpx

from ..config import RelayConfig
from ..utils.logging_helpers import get_logger


logger = get_logger()


@dataclass(frozen=True)
class ApiResponse:
    """一次 API 调用的原始响应"""

    status_code: int
    text: str


@dataclass(frozen=True)
class MediaAttachment:
    """媒体组中的一个二进制分片"""

    name: str
    filename: str
    content: bytes
    mime: str


class TelegramClient:
    """消息 API 的同步 HTTP 客户端

    凭据只出现在请求 URL 中，不会被写入日志。
    """

    def __init__(
        self,
        config: RelayConfig,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """初始化客户端

        Args:
            config: 中继配置
            client: 外部提供的 httpx.Client（调用方负责关闭）
            transport: 自定义传输层，主要用于测试
        """
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=config.request_timeout, transport=transport
        )

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _url(self, method: str) -> str:
        return f"{self.config.api_url}/{method}"

    def _destination(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"chat_id": self.config.chat_id}
        if self.config.thread_id is not None:
            fields["message_thread_id"] = self.config.thread_id
        return fields

    def send_message(self, text: str, parse_mode: str | None = "Markdown") -> ApiResponse:
        """发送文字消息

        Raises:
            httpx.HTTPError: 传输层失败
        """
        body = {**self._destination(), "text": text}
        if parse_mode:
            body["parse_mode"] = parse_mode

        response = self._client.post(self._url("sendMessage"), json=body)
        logger.debug(f"sendMessage -> HTTP {response.status_code}")
        return ApiResponse(response.status_code, response.text)

    def send_media_group(
        self, attachments: list[MediaAttachment], manifest: list[dict[str, Any]]
    ) -> ApiResponse:
        """发送媒体组

        Args:
            attachments: 二进制分片，按名称被 manifest 引用
            manifest: 每张照片的描述（type/media/caption）

        Raises:
            httpx.HTTPError: 传输层失败
        """
        data = {
            key: str(value) for key, value in self._destination().items()
        }
        data["media"] = json.dumps(manifest, ensure_ascii=False)
        files = [
            (item.name, (item.filename, item.content, item.mime))
            for item in attachments
        ]

        response = self._client.post(
            self._url("sendMediaGroup"), data=data, files=files
        )
        logger.debug(
            f"sendMediaGroup ({len(attachments)} 张) -> HTTP {response.status_code}"
        )
        return ApiResponse(response.status_code, response.text)
