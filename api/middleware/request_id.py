"""
Request ID 中间件

生成或透传追踪ID，通过 structlog contextvars 绑定到本次请求的所有日志。
支付回调请求额外绑定 ``webhook_provider``，便于按服务商检索回调日志。
"""
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


WEBHOOK_PATH_MARKER = "/payments/webhooks/"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """从 ``X-Request-ID`` 读取或生成 request_id，并在响应头中回传"""

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = client_ip_from(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )
        provider = webhook_provider_of(request.url.path)
        if provider:
            structlog.contextvars.bind_contextvars(webhook_provider=provider)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def client_ip_from(request: Request) -> str:
    """代理场景优先取 X-Forwarded-For 的第一个地址，其次 X-Real-IP"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def webhook_provider_of(path: str) -> Optional[str]:
    idx = path.find(WEBHOOK_PATH_MARKER)
    if idx < 0:
        return None
    tail = path[idx + len(WEBHOOK_PATH_MARKER):].strip("/")
    return tail.split("/")[0].lower() or None

