"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# Module-level engine must not need a running Postgres
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///./.pytest-izy-scoly.db")
os.environ.setdefault("ENVIRONMENT", "test")

from dataclasses import dataclass, field  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, Optional  # noqa: E402
import uuid  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from application.dtos.notifications import PushMessage  # noqa: E402
from application.dtos.payments import ChargeRequest, ProviderCharge, WebhookEvent  # noqa: E402
from application.ports.push import PushDelivery  # noqa: E402
from domain.notification.entity import PushSubscription  # noqa: E402
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus  # noqa: E402
from infrastructure.models import Base, OrderModel, PushSubscriptionModel, UserRoleModel  # noqa: E402
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork  # noqa: E402


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def uow_factory(session_factory):
    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory, readonly=readonly)
    return factory


class Seeder:
    """Inserts fixture rows through the same repositories the services use."""

    def __init__(self, session_factory, uow_factory) -> None:
        self._sf = session_factory
        self._uow = uow_factory

    async def order(self, *, user_id: str = "user-1", total_amount: int = 5000, status: str = "pending") -> str:
        order_id = str(uuid.uuid4())
        async with self._sf() as session:
            session.add(OrderModel(id=order_id, user_id=user_id, total_amount=total_amount, status=status))
            await session.commit()
        return order_id

    async def payment(
        self,
        *,
        user_id: str = "user-1",
        amount: int = 5000,
        method: PaymentMethod = PaymentMethod.ORANGE,
        status: PaymentStatus = PaymentStatus.PENDING,
        order_id: Optional[str] = None,
        transaction_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> Payment:
        created_at = created_at or datetime.now(timezone.utc) - timedelta(minutes=1)
        payment = Payment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=amount,
            payment_method=method,
            status=status,
            order_id=order_id,
            phone_number="+22997000000",
            transaction_id=transaction_id,
            metadata=metadata or {},
            created_at=created_at,
            updated_at=created_at,
            completed_at=completed_at,
        )
        async with self._uow() as uow:
            return await uow.payment_repository.create(payment)

    async def admin(self, user_id: str) -> None:
        async with self._sf() as session:
            session.add(UserRoleModel(user_id=user_id, role="admin"))
            await session.commit()

    async def push_subscription(self, user_id: str, endpoint: str) -> None:
        async with self._sf() as session:
            session.add(PushSubscriptionModel(user_id=user_id, endpoint=endpoint, p256dh="p256", auth="auth"))
            await session.commit()

    async def get_payment(self, payment_id: str) -> Optional[Payment]:
        async with self._uow(readonly=True) as uow:
            return await uow.payment_repository.get_by_id(payment_id)

    async def get_order(self, order_id: str):
        async with self._uow(readonly=True) as uow:
            return await uow.order_repository.get_by_id(order_id)

    async def notifications(self, user_id: str):
        async with self._uow(readonly=True) as uow:
            return await uow.notification_repository.list_by_user(user_id)


@pytest.fixture
def seed(session_factory, uow_factory) -> Seeder:
    return Seeder(session_factory, uow_factory)


@dataclass
class FakeGateway:
    """Scriptable PaymentGateway used where no provider HTTP is wanted."""

    provider: str = "fake"
    signature_header: str = "x-fake-signature"
    charge_result: Optional[ProviderCharge] = None
    charge_error: Optional[Exception] = None
    query_result: Optional[ProviderCharge] = None
    credentials: bool = True
    charged: list = field(default_factory=list)
    queried: list = field(default_factory=list)
    closed: int = 0

    @property
    def has_credentials(self) -> bool:
        return self.credentials

    @property
    def webhook_secret(self) -> Optional[str]:
        return None

    async def charge(self, req: ChargeRequest) -> ProviderCharge:
        self.charged.append(req)
        if self.charge_error is not None:
            raise self.charge_error
        return self.charge_result or ProviderCharge(provider=self.provider, accepted=True)

    async def query_status(self, transaction_id: str) -> ProviderCharge:
        self.queried.append(transaction_id)
        if self.query_result is None:
            raise RuntimeError("no scripted answer")
        return self.query_result

    def verify_signature(self, headers: dict, body: bytes) -> bool:
        return True

    def parse_webhook(self, payload: dict) -> WebhookEvent:
        return WebhookEvent(provider=self.provider, **payload)

    async def aclose(self) -> None:
        self.closed += 1


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


class RecordingPushSender:
    def __init__(self, gone: tuple[str, ...] = (), failing: tuple[str, ...] = ()) -> None:
        self.sent: list[tuple[str, PushMessage]] = []
        self._gone = set(gone)
        self._failing = set(failing)

    async def send(self, subscription: PushSubscription, message: PushMessage) -> PushDelivery:
        if subscription.endpoint in self._failing:
            raise RuntimeError("push service exploded")
        if subscription.endpoint in self._gone:
            return PushDelivery(endpoint=subscription.endpoint, delivered=False, gone=True, status_code=410)
        self.sent.append((subscription.endpoint, message))
        return PushDelivery(endpoint=subscription.endpoint, delivered=True, status_code=201)

    async def aclose(self) -> None:
        return None


@pytest.fixture
def push_sender_cls():
    return RecordingPushSender


@pytest.fixture
def gateway_cls():
    return FakeGateway
