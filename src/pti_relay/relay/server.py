"""中继 HTTP 入口。

把表单客户端的请求转发给 Relay：摘要一次，分组带限流重试，
每组成功后等待 group_delay_ms 再响应。CORS 全放开。
"""

import time
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import RelayConfig
from ..exceptions import RelayError, RetriesExhausted
from ..models.submission import Batch, SubmissionSummary
from ..utils.logging_helpers import get_logger
from .relay import Relay


logger = get_logger()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def relay_error_status(error: RelayError) -> int:
    """把中继错误映射为 HTTP 状态码

    限流用尽返回 503；上游给出 4xx/5xx 时原样透传，否则 502。
    """
    if isinstance(error, RetriesExhausted):
        return 503
    if error.status_code is not None and 400 <= error.status_code < 600:
        return error.status_code
    return 502


def relay_error_body(error: RelayError) -> dict:
    body: dict = {"error": error.message, "kind": error.kind}
    for attr, key in (
        ("batch_index", "batchIndex"),
        ("cause", "cause"),
        ("attempts", "attempts"),
    ):
        value = getattr(error, attr, None)
        if value is not None:
            body[key] = value
    return body


def create_app(
    config: RelayConfig,
    relay: Relay | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> FastAPI:
    """创建中继应用

    Args:
        config: 中继配置
        relay: 外部提供的 Relay（调用方负责关闭），None 时按配置创建
        sleep: 节流等待函数（秒）
    """
    owns_relay = relay is None
    relay = relay or Relay(config, sleep=sleep)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.relay = relay
        logger.info(
            f"中继已启动: chat={config.chat_id}, "
            f"thread={config.thread_id}, group_delay={config.group_delay_ms}ms"
        )
        try:
            yield
        finally:
            if owns_relay:
                relay.close()

    app = FastAPI(title="PTI Relay", lifespan=lifespan)

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.warning(f"请求体验证失败: {request.url.path}")
        return JSONResponse(
            status_code=400,
            content={"error": "invalid request body", "kind": "validation_error"},
        )

    @app.exception_handler(RelayError)
    async def relay_exception_handler(request: Request, exc: RelayError):
        return JSONResponse(
            status_code=relay_error_status(exc), content=relay_error_body(exc)
        )

    @app.post("/relay/summary")
    def relay_summary(summary: SubmissionSummary):
        relay.send_summary(summary)
        return PlainTextResponse("ok")

    @app.post("/relay/group")
    def relay_group(batch: Batch):
        delivery = relay.send_batch(batch)
        # 节流，避免下一组紧接着触发限流
        if config.group_delay_ms:
            sleep(config.group_delay_ms / 1000)
        return {"ok": True, "result": delivery.result}

    return app
