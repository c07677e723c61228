"""
全局异常处理器：业务码 -> HTTP 状态码映射，统一错误响应
"""
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import traceback
import uuid
from starlette import status as http_status

from .response import error_response
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException


_CODE_TO_HTTP_STATUS = {
    BusinessCode.PARAM_VALIDATION_ERROR: http_status.HTTP_422_UNPROCESSABLE_ENTITY,

    BusinessCode.USER_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.TOUR_NOT_FOUND: http_status.HTTP_404_NOT_FOUND,
    BusinessCode.TICKETS_SOLD_OUT: http_status.HTTP_409_CONFLICT,

    BusinessCode.UNAUTHORIZED: http_status.HTTP_401_UNAUTHORIZED,
    BusinessCode.FORBIDDEN: http_status.HTTP_403_FORBIDDEN,

    BusinessCode.SYSTEM_ERROR: http_status.HTTP_500_INTERNAL_SERVER_ERROR,
    BusinessCode.SERVICE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    BusinessCode.NOTIFICATION_UNDELIVERABLE: http_status.HTTP_502_BAD_GATEWAY,
    BusinessCode.TOO_MANY_REQUESTS: http_status.HTTP_429_TOO_MANY_REQUESTS,

    # Webhook: 400 tells Stripe not to retry, 503 asks it to redeliver later
    PaymentCode.SIGNATURE_ERROR: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.PAYLOAD_INVALID: http_status.HTTP_400_BAD_REQUEST,
    PaymentCode.RECONCILIATION_IN_PROGRESS: http_status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentCode.STORE_UNAVAILABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,

    # Checkout creation
    PaymentCode.PROVIDER_ERROR: http_status.HTTP_502_BAD_GATEWAY,
    PaymentCode.PROVIDER_RECOVERABLE: http_status.HTTP_503_SERVICE_UNAVAILABLE,
}

# HTTPException 状态码 -> 业务码
_HTTP_STATUS_TO_CODE = {
    http_status.HTTP_401_UNAUTHORIZED: BusinessCode.UNAUTHORIZED,
    http_status.HTTP_403_FORBIDDEN: BusinessCode.FORBIDDEN,
    http_status.HTTP_404_NOT_FOUND: BusinessCode.NOT_FOUND,
    http_status.HTTP_405_METHOD_NOT_ALLOWED: BusinessCode.NOT_FOUND,
    http_status.HTTP_429_TOO_MANY_REQUESTS: BusinessCode.TOO_MANY_REQUESTS,
    http_status.HTTP_503_SERVICE_UNAVAILABLE: BusinessCode.SERVICE_UNAVAILABLE,
}


def business_code_to_http_status(code: int) -> int:
    """根据业务码映射HTTP状态码（默认400）。"""
    # BusinessCode 与 PaymentCode 数值不重叠，IntEnum 按值比较即可查表
    return _CODE_TO_HTTP_STATUS.get(int(code), http_status.HTTP_400_BAD_REQUEST)


def _request_id(request: Request) -> str:
    return getattr(getattr(request, "state", object()), "request_id", None) or str(uuid.uuid4())


def _render(response, status_code: int, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"), headers=headers)


def register_exception_handlers(app: FastAPI):
    """
    注册全局异常处理器

    Args:
        app: FastAPI应用实例
    """
    logger = get_logger(__name__)

    @app.exception_handler(BusinessException)
    async def business_exception_handler(request: Request, exc: BusinessException):
        """处理业务异常"""
        request_id = _request_id(request)
        response = error_response(
            code=exc.code,
            message=exc.message,
            error_type=exc.error_type,
            details=exc.details,
            field=exc.field,
            request_id=request_id,
        )
        status_code = business_code_to_http_status(exc.code)
        headers = None
        if status_code == http_status.HTTP_503_SERVICE_UNAVAILABLE:
            # 告知回调方稍后重投
            headers = {"Retry-After": "5"}
        return _render(response, status_code, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理参数验证异常"""
        request_id = _request_id(request)
        errors = jsonable_encoder(exc.errors())

        first_error = errors[0] if errors else {}
        field = ".".join(str(loc) for loc in first_error.get("loc", [])[1:])

        response = error_response(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=f"Validation failed: {first_error.get('msg', 'unknown')}",
            error_type="ValidationError",
            details={"errors": errors},
            field=field,
            request_id=request_id,
        )
        return _render(response, http_status.HTTP_422_UNPROCESSABLE_ENTITY)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """处理HTTP异常"""
        request_id = _request_id(request)

        code = _HTTP_STATUS_TO_CODE.get(exc.status_code, BusinessCode.SYSTEM_ERROR)

        response = error_response(
            code=code,
            message=str(exc.detail),
            error_type="HTTPError",
            details={"status_code": exc.status_code},
            request_id=request_id,
        )
        return _render(response, exc.status_code, getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """处理所有未捕获的异常"""
        request_id = _request_id(request)

        # DEBUG 下附带堆栈，生产只返回 request_id 供排查
        details = {"exception": repr(exc), "traceback": traceback.format_exc()} if app.debug else None

        response = error_response(
            code=BusinessCode.SYSTEM_ERROR,
            message="Internal server error",
            error_type="SystemError",
            details=details,
            request_id=request_id,
        )

        logger.error(
            "unhandled_exception",
            request_id=request_id,
            error=str(exc),
            exc_info=True,
        )

        return _render(response, http_status.HTTP_500_INTERNAL_SERVER_ERROR)
