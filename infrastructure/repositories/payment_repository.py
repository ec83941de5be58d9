"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from domain.payment.entity import Payment, PaymentMethod, PaymentStatus, TERMINAL_STATUSES
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            user_id=model.user_id,
            amount=int(model.amount),
            payment_method=PaymentMethod(model.payment_method),
            status=PaymentStatus(model.status),
            order_id=model.order_id,
            phone_number=model.phone_number,
            transaction_id=model.transaction_id,
            metadata=dict(model.extra_metadata or {}),
            created_at=model.created_at,
            updated_at=model.updated_at,
            completed_at=model.completed_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        return PaymentModel(
            id=entity.id,
            user_id=entity.user_id,
            amount=entity.amount,
            payment_method=entity.payment_method.value,
            status=entity.status.value,
            order_id=entity.order_id,
            phone_number=entity.phone_number,
            transaction_id=entity.transaction_id,
            extra_metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            completed_at=entity.completed_at,
        )

    async def _first(self, stmt) -> Optional[Payment]:
        result = await self.session.execute(stmt.limit(1))
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            payment_method=db_payment.payment_method,
            amount=db_payment.amount,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        # populate_existing: 同一会话内条件写入后需读取库中最新值
        return await self._first(
            select(PaymentModel)
            .where(PaymentModel.id == payment_id)
            .execution_options(populate_existing=True)
        )

    async def get_latest_by_order(self, order_id: str) -> Optional[Payment]:
        return await self._first(
            select(PaymentModel)
            .where(PaymentModel.order_id == order_id)
            .order_by(PaymentModel.created_at.desc())
        )

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        return await self._first(
            select(PaymentModel)
            .where(PaymentModel.transaction_id == transaction_id)
            .order_by(PaymentModel.created_at.desc())
        )

    async def find_latest_pending_by_amount(self, amount: int) -> Optional[Payment]:
        return await self._first(
            select(PaymentModel)
            .where(
                PaymentModel.status == PaymentStatus.PENDING.value,
                PaymentModel.amount == amount,
            )
            .order_by(PaymentModel.created_at.desc())
        )

    async def list_stale_non_terminal(self, older_than: datetime, limit: int = 50) -> List[Payment]:
        stmt = (
            select(PaymentModel)
            .where(
                PaymentModel.status.notin_([s.value for s in TERMINAL_STATUSES]),
                PaymentModel.created_at < older_than,
            )
            .order_by(PaymentModel.created_at.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def compare_and_set(self, payment: Payment, expected_status: PaymentStatus) -> bool:
        """UPDATE ... WHERE id = :id AND status = :expected"""
        stmt = (
            update(PaymentModel)
            .where(
                PaymentModel.id == payment.id,
                PaymentModel.status == expected_status.value,
            )
            .values(
                status=payment.status.value,
                transaction_id=payment.transaction_id,
                extra_metadata=payment.metadata,
                completed_at=payment.completed_at,
                updated_at=payment.updated_at or datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        won = (result.rowcount or 0) == 1
        if not won:
            logger.info(
                "payment_cas_lost",
                payment_id=payment.id,
                expected_status=expected_status.value,
                target_status=payment.status.value,
            )
        return won
