"""
通知与推送订阅仓储实现
"""
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func

from domain.notification.entity import Notification, PushSubscription
from domain.notification.repository import NotificationRepository, PushSubscriptionRepository
from infrastructure.models.notification import NotificationModel, PushSubscriptionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            user_id=model.user_id,
            type=model.type,
            title=model.title,
            message=model.message,
            data=dict(model.data or {}),
            is_read=bool(model.is_read),
            created_at=model.created_at,
        )

    async def create(self, notification: Notification) -> Notification:
        model = NotificationModel(
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            data=notification.data,
            is_read=notification.is_read,
        )
        if notification.id:
            model.id = notification.id
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("notification_created", notification_id=model.id, user_id=model.user_id, type=model.type)
        return self._to_entity(model)

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        result = await self.session.execute(
            select(NotificationModel).where(NotificationModel.id == notification_id)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    def _user_filter(self, stmt, user_id: str, unread_only: bool):
        stmt = stmt.where(NotificationModel.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationModel.is_read.is_(False))
        return stmt

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
    ) -> List[Notification]:
        stmt = self._user_filter(select(NotificationModel), user_id, unread_only)
        stmt = stmt.order_by(NotificationModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_by_user(self, user_id: str, unread_only: bool = False) -> int:
        stmt = self._user_filter(select(func.count(NotificationModel.id)), user_id, unread_only)
        result = await self.session.execute(stmt)
        return int(result.scalar() or 0)

    async def mark_read(self, notification_id: str) -> bool:
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.id == notification_id, NotificationModel.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.user_id == user_id, NotificationModel.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


class SQLAlchemyPushSubscriptionRepository(PushSubscriptionRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_by_user(self, user_id: str) -> List[PushSubscription]:
        result = await self.session.execute(
            select(PushSubscriptionModel).where(PushSubscriptionModel.user_id == user_id)
        )
        return [
            PushSubscription(
                id=m.id,
                user_id=m.user_id,
                endpoint=m.endpoint,
                p256dh=m.p256dh,
                auth=m.auth,
                created_at=m.created_at,
            )
            for m in result.scalars().all()
        ]

    async def delete_by_endpoints(self, endpoints: List[str]) -> int:
        if not endpoints:
            return 0
        result = await self.session.execute(
            delete(PushSubscriptionModel)
            .where(PushSubscriptionModel.endpoint.in_(endpoints))
            .execution_options(synchronize_session=False)
        )
        removed = int(result.rowcount or 0)
        logger.info("push_subscriptions_cleaned", removed=removed)
        return removed

    async def upsert(self, subscription: PushSubscription) -> PushSubscription:
        result = await self.session.execute(
            select(PushSubscriptionModel).where(PushSubscriptionModel.endpoint == subscription.endpoint)
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = PushSubscriptionModel(endpoint=subscription.endpoint)
            self.session.add(model)
        model.user_id = subscription.user_id
        model.p256dh = subscription.p256dh
        model.auth = subscription.auth
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("push_subscription_saved", user_id=model.user_id)
        return PushSubscription(
            id=model.id,
            user_id=model.user_id,
            endpoint=model.endpoint,
            p256dh=model.p256dh,
            auth=model.auth,
            created_at=model.created_at,
        )
