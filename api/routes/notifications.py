"""
通知 API：列表、已读标记与 Web Push 订阅注册
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import CurrentUser, get_current_user, get_notification_queries
from application.dtos.notifications import PushSubscriptionRequest
from application.services.notification_service import NotificationQueryService
from core.config import settings
from core.response import paginated_response, success_response


router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", summary="List my notifications")
async def list_notifications(
    page: int = Query(1, ge=1),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    unread_only: bool = Query(False),
    current_user: CurrentUser = Depends(get_current_user),
    queries: NotificationQueryService = Depends(get_notification_queries),
):
    items, total = await queries.list_for_user(current_user.id, page=page, size=size, unread_only=unread_only)
    return paginated_response(
        items=[n.model_dump(mode="json") for n in items],
        total=total,
        page=page,
        size=size,
    )


@router.post("/read-all", summary="Mark all notifications as read")
async def mark_all_read(
    current_user: CurrentUser = Depends(get_current_user),
    queries: NotificationQueryService = Depends(get_notification_queries),
):
    count = await queries.mark_all_read(current_user.id)
    return success_response(data={"updated": count})


@router.post("/push-subscriptions", summary="Register a web push subscription")
async def register_push_subscription(
    payload: PushSubscriptionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    queries: NotificationQueryService = Depends(get_notification_queries),
):
    await queries.register_push_subscription(current_user.id, payload)
    return success_response(data={"endpoint": payload.endpoint})


@router.post("/{notification_id}/read", summary="Mark one notification as read")
async def mark_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    queries: NotificationQueryService = Depends(get_notification_queries),
):
    changed = await queries.mark_read(current_user.id, notification_id)
    return success_response(data={"id": notification_id, "changed": changed})
