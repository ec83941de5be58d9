"""
统一响应格式

客户端接口统一返回 ``{code, message, data, error}``；提供商回调接口
不使用该信封，直接返回提供商约定的确认体。
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode


T = TypeVar("T")


def _utc_z(ts: datetime) -> str:
    ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


class ErrorDetail(BaseModel):
    """错误详情"""
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        return _utc_z(timestamp)


class Response(BaseModel, Generic[T]):
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


class PaginatedData(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    size: int
    pages: int


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS
) -> Response:
    """创建成功响应；支付接口把面向用户的法语提示放在 message"""
    return Response(code=code, message=message, data=data, error=None)


def paginated_response(
    items: list,
    total: int,
    page: int,
    size: int,
    message: str = "Success",
) -> Response:
    """创建分页响应"""
    pages = (total + size - 1) // size if size > 0 else 0
    return success_response(
        data=PaginatedData(items=items, total=total, page=page, size=size, pages=pages),
        message=message,
    )


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码（BusinessCode / PaymentCode）
        message: 错误消息
        error_type: 错误类型（如 PaymentNotFound、OrderAccessDenied）
        details: 错误详情（如 payment_id、provider）
        field: 校验失败的字段
        request_id: 请求ID，便于与日志关联
    """
    return Response(
        code=code,
        message=message,
        data=None,
        error=ErrorDetail(type=error_type, details=details, field=field, request_id=request_id),
    )
