"""
API依赖项 - 认证、授权与服务获取
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.services.notification_service import NotificationQueryService
from application.services.payment_service import PaymentApplicationService
from application.services.webhook_service import WebhookReconciler
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.bootstrap import PaymentStack
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    is_admin: bool = False
    email: Optional[str] = None


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从 Bearer token 中提取 token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="未提供认证凭据",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """校验认证服务签发的 JWT（HS256 共享密钥），返回 claims"""
    audience = settings.auth.audience
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=audience,
            leeway=settings.auth.leeway_seconds,
            options={"require": ["sub", "exp"], "verify_aud": bool(audience)},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.InvalidTokenError:
        raise UnauthorizedException("Invalid token")
    if not claims.get("sub"):
        raise UnauthorizedException("Invalid token")
    return claims


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return SQLAlchemyUnitOfWork


async def resolve_user(token: str, uow_factory: Callable[..., AbstractUnitOfWork]) -> CurrentUser:
    claims = decode_access_token(token)
    user_id = str(claims["sub"])
    async with uow_factory(readonly=True) as uow:
        is_admin = await uow.user_role_repository.has_role(user_id, settings.auth.admin_role)
    structlog.contextvars.bind_contextvars(user_id=user_id)
    return CurrentUser(id=user_id, is_admin=is_admin, email=claims.get("email"))


async def get_current_user(
    token: str = Depends(get_token),
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
) -> CurrentUser:
    """获取当前登录用户"""
    return await resolve_user(token, uow_factory)


async def get_current_admin(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """获取当前管理员用户"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="需要管理员权限",
        )
    return current_user


def get_payment_stack(request: Request) -> PaymentStack:
    stack = getattr(request.app.state, "payment_stack", None)
    if stack is None:
        raise RuntimeError("Payment stack not initialized. Ensure lifespan sets app.state.payment_stack.")
    return stack


def get_payment_service(stack: PaymentStack = Depends(get_payment_stack)) -> PaymentApplicationService:
    return stack.payments


def get_webhook_reconciler(stack: PaymentStack = Depends(get_payment_stack)) -> WebhookReconciler:
    return stack.webhooks


def get_notification_queries(stack: PaymentStack = Depends(get_payment_stack)) -> NotificationQueryService:
    return stack.notification_queries
