"""
业务状态码（领域层、核心层与 API 层共用）

通用码在 ``BusinessCode``；支付提供商相关的码与状态词表在
``shared.codes.payment_codes``。
"""
from enum import IntEnum


class BusinessCode(IntEnum):

    SUCCESS = 0

    # 参数错误 (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # 业务错误 (2xxxx)：支付 201xx，订单 211xx，通知 212xx
    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006
    PAYMENT_NOT_FOUND = 20101
    PAYMENT_UPDATE_CONFLICT = 20102
    ORDER_NOT_FOUND = 21101
    NOTIFICATION_NOT_FOUND = 21201

    # 权限错误 (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002
    ORDER_ACCESS_DENIED = 30101

    # 系统错误 (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # 限流 (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
