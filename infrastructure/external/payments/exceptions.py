"""
支付提供商异常

全部继承 BusinessException，由全局异常处理器按 PaymentCode 映射 HTTP 状态。
可恢复错误（网络不可达、超时）允许调用方稍后重试；其余视为提供商明确拒绝。
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class _ProviderException(BusinessException):
    code: PaymentCode = PaymentCode.PROVIDER_ERROR
    error_type: str = "PaymentProviderError"

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.provider = provider
        self.provider_code = provider_code
        super().__init__(
            code=type(self).code,
            message=message,
            error_type=type(self).error_type,
            details={"provider": provider, "provider_code": provider_code, **(details or {})},
        )


class PaymentProviderError(_ProviderException):
    """提供商返回错误状态或拒绝请求"""


class PaymentRecoverableError(_ProviderException):
    """网络层失败，可重试"""

    code = PaymentCode.PROVIDER_RECOVERABLE
    error_type = "PaymentRecoverableError"


class UnsupportedPaymentProviderError(BusinessException):
    def __init__(self, provider: str):
        super().__init__(
            code=PaymentCode.UNSUPPORTED_PROVIDER,
            message=f"Unsupported payment provider: {provider}",
            error_type="UnsupportedPaymentProvider",
            details={"provider": provider},
        )
