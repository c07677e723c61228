"""
Request ID 中间件
为每个请求（包括 Stripe 的 Webhook 投递）分配追踪ID，并绑定到 structlog 上下文
"""
import re
import uuid
from typing import Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware


# 上游传入的ID只接受安全字符，避免日志注入
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _resolve_request_id(incoming: Optional[str]) -> str:
    if incoming and _SAFE_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = _resolve_request_id(request.headers.get(self.HEADER_NAME))
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=request.client.host if request.client else "unknown",
        )
        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

