"""中继 HTTP 入口的客户端。

表单客户端通过它调用 /relay/summary 和 /relay/group，
把错误响应还原为对应的中继异常。
"""

from typing import Any

import httpx

from ..config import RelayDefaults
from ..exceptions import (
    BatchDeliveryFailed,
    RelayError,
    RetriesExhausted,
    SummaryDeliveryFailed,
)
from ..models.submission import Batch, SubmissionSummary
from ..utils.logging_helpers import get_logger
from .rate_limit import parse_body


logger = get_logger()


class RelayHttpClient:
    """通过 HTTP 调用中继入口"""

    def __init__(
        self,
        base_url: str,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = RelayDefaults.REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout, transport=transport)

    def __enter__(self) -> "RelayHttpClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def send_summary(self, summary: SubmissionSummary) -> None:
        try:
            response = self._client.post(
                f"{self.base_url}/relay/summary",
                json=summary.model_dump(mode="json", by_alias=True),
            )
        except httpx.HTTPError as e:
            raise SummaryDeliveryFailed(str(e)) from e

        if response.status_code != 200:
            raise self._to_error(response, batch_index=None)

    def send_batch(self, batch: Batch) -> Any:
        """发送一组照片，返回中继转发的 result"""
        try:
            response = self._client.post(
                f"{self.base_url}/relay/group",
                json=batch.model_dump(mode="json", by_alias=True),
            )
        except httpx.HTTPError as e:
            raise BatchDeliveryFailed(batch.index, str(e)) from e

        if response.status_code != 200:
            raise self._to_error(response, batch_index=batch.index)

        payload = parse_body(response.text)
        logger.debug(f"第 {batch.index}/{batch.total} 组已由中继转发")
        return payload.get("result") if isinstance(payload, dict) else None

    @staticmethod
    def _to_error(response: httpx.Response, batch_index: int | None) -> RelayError:
        payload = parse_body(response.text)
        if not isinstance(payload, dict):
            payload = {}
        cause = str(
            payload.get("cause")
            or payload.get("error")
            or response.text
            or f"HTTP {response.status_code}"
        )
        batch_index = payload.get("batchIndex", batch_index)

        if batch_index is None:
            return SummaryDeliveryFailed(cause, response.status_code)
        if payload.get("kind") == RetriesExhausted.kind:
            return RetriesExhausted(batch_index, payload.get("attempts", 0))
        return BatchDeliveryFailed(batch_index, cause, response.status_code)
