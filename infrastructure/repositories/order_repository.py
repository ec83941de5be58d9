"""
订单仓储实现
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from domain.order.entity import Order, OrderStatus
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            user_id=model.user_id,
            total_amount=int(model.total_amount),
            status=OrderStatus(model.status),
            payment_reference=model.payment_reference,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def confirm_if_pending(self, order_id: str, payment_reference: Optional[str]) -> bool:
        values = {
            "status": OrderStatus.CONFIRMED.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if payment_reference:
            values["payment_reference"] = payment_reference
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == OrderStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        confirmed = (result.rowcount or 0) == 1
        if confirmed:
            logger.info("order_confirmed", order_id=order_id, payment_reference=payment_reference)
        else:
            logger.info("order_confirm_skipped", order_id=order_id)
        return confirmed
