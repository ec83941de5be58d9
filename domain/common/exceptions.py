"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PaymentNotFoundException(BusinessException):
    """支付记录不存在"""

    def __init__(self, identifier: Optional[str] = None):
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_FOUND,
            message="Paiement introuvable",
            error_type="PaymentNotFound",
            details={"identifier": identifier} if identifier else None,
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Commande non trouvée",
            error_type="OrderNotFound",
            details={"order_id": order_id} if order_id else None,
        )


class OrderAccessDeniedException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_ACCESS_DENIED,
            message="Accès non autorisé à cette commande",
            error_type="OrderAccessDenied",
            details={"order_id": order_id},
        )


class NotificationNotFoundException(BusinessException):
    def __init__(self, notification_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.NOTIFICATION_NOT_FOUND,
            message="Notification introuvable",
            error_type="NotificationNotFound",
            details={"notification_id": notification_id} if notification_id else None,
        )


class PaymentUpdateConflictException(BusinessException):
    """条件更新多次竞争失败，本次状态未写入"""

    def __init__(self, payment_id: str, reported: str, attempts: int):
        super().__init__(
            code=BusinessCode.PAYMENT_UPDATE_CONFLICT,
            message="Mise à jour du paiement en conflit, réessayez",
            error_type="PaymentUpdateConflict",
            details={"payment_id": payment_id, "reported": reported, "attempts": attempts},
        )
