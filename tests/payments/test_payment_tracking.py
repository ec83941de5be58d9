import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from application.dtos.payments import (
    ConfirmPaymentRequest,
    InitiatePaymentRequest,
    ProviderCharge,
    StatusCheckRequest,
)
from application.ports.realtime import Envelope
from application.services.payment_tracking import MSG_STARTED, MSG_STOPPED, PaymentTracker
from application.services.realtime_service import RealtimeService
from domain.payment.entity import PaymentStatus
from infrastructure.bootstrap import build_payment_stack
from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionManager


T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


def _row(payment_id="p1", status="pending", *, created=T0, updated=None, order_id=None):
    return {
        "id": payment_id,
        "status": status,
        "payment_method": "mtn",
        "amount": 5000,
        "order_id": order_id,
        "transaction_id": None,
        "created_at": created.isoformat(),
        "updated_at": (updated or created).isoformat(),
        "completed_at": None,
    }


async def _publish(broker, room, row, kind="payment.update"):
    await broker.publish(room, Envelope(type=kind, room=room, data=row))


async def _until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_exactly_one_scope_is_required():
    with pytest.raises(ValueError):
        PaymentTracker()
    with pytest.raises(ValueError):
        PaymentTracker(payment_id="p1", order_id="o1")
    assert PaymentTracker(order_id="o1").room == "payments:order:o1"


async def test_poll_and_realtime_converge_on_webhook_completion(uow_factory, seed, fake_gateway):
    broker = InMemoryRealtimeBroker()
    stack = build_payment_stack(
        uow_factory=uow_factory, gateway_factory=lambda provider=None: fake_gateway, broker=broker
    )
    payment = await seed.payment(status=PaymentStatus.PROCESSING)

    async def source():
        return await stack.payments.poll_status(StatusCheckRequest(payment_id=payment.id))

    async with PaymentTracker(status_source=source, broker=broker, payment_id=payment.id, poll_interval=30) as tracker:
        await _until(lambda: tracker.state is not None)
        assert tracker.is_polling and tracker.is_subscribed
        assert tracker.state.status is PaymentStatus.PROCESSING

        await stack.payments.confirm_payment(
            ConfirmPaymentRequest(payment_id=payment.id, transaction_id="tx-9", status="completed")
        )
        final = await tracker.wait_for_terminal(timeout=2)

        assert final.status is PaymentStatus.COMPLETED
        assert final.transaction_id == "tx-9"
        await _until(lambda: not tracker.is_polling)

    assert broker.handler_count == 0
    assert not tracker.is_subscribed
    messages = [entry.message for entry in tracker.log]
    assert messages == [
        MSG_STARTED,
        "Statut vérifié: processing",
        "Mise à jour temps réel: completed",
        MSG_STOPPED,
    ]


async def test_polling_alone_picks_up_provider_completion(uow_factory, seed, fake_gateway):
    stack = build_payment_stack(uow_factory=uow_factory, gateway_factory=lambda provider=None: fake_gateway)
    payment = await seed.payment(status=PaymentStatus.PROCESSING, transaction_id="tx-1")
    fake_gateway.query_result = ProviderCharge(
        provider="fake", accepted=True, status=PaymentStatus.COMPLETED, raw={"status": "SUCCESS"}
    )

    async def source():
        return await stack.payments.poll_status(StatusCheckRequest(payment_id=payment.id))

    async with PaymentTracker(status_source=source, payment_id=payment.id, poll_interval=30) as tracker:
        final = await tracker.wait_for_terminal(timeout=2)
        await _until(lambda: not tracker.is_polling)

    assert final.status is PaymentStatus.COMPLETED
    assert fake_gateway.queried == ["tx-1"]
    assert "Statut vérifié: completed" in [entry.message for entry in tracker.log]


async def test_poll_source_reports_missing_row_as_none(uow_factory, fake_gateway):
    stack = build_payment_stack(uow_factory=uow_factory, gateway_factory=lambda provider=None: fake_gateway)
    assert await stack.payments.poll_status(StatusCheckRequest(payment_id="not-yet-created")) is None
    assert fake_gateway.queried == []


async def test_missing_row_and_source_errors_are_tolerated():
    calls = []

    async def source():
        calls.append(1)
        if len(calls) == 1:
            return None
        raise RuntimeError("database hiccup")

    tracker = PaymentTracker(status_source=source, payment_id="p1", poll_interval=30)
    assert await tracker.poll_once() is None
    assert await tracker.poll_once() is None
    assert tracker.state is None
    assert not tracker.is_terminal


async def test_resources_released_when_body_raises():
    broker = InMemoryRealtimeBroker()

    async def source():
        return None

    with pytest.raises(RuntimeError):
        async with PaymentTracker(status_source=source, broker=broker, payment_id="p1", poll_interval=0.01) as tracker:
            assert broker.handler_count == 1
            raise RuntimeError("page closed")

    assert broker.handler_count == 0
    assert not tracker.is_polling
    assert tracker.log[-1].message == MSG_STOPPED
    # stop is idempotent
    await tracker.stop()
    assert [e.message for e in tracker.log].count(MSG_STOPPED) == 1


async def test_stale_and_foreign_updates_are_ignored():
    broker = InMemoryRealtimeBroker()
    room = "payments:id:p1"
    async with PaymentTracker(broker=broker, payment_id="p1") as tracker:
        await _publish(broker, room, _row(status="processing", updated=T0 + timedelta(seconds=10)))
        await _publish(broker, room, _row(status="pending", updated=T0 + timedelta(seconds=5)))
        await _publish(broker, "payments:id:other", _row("other", status="completed"))
        await _publish(broker, room, _row(status="completed"), kind="payment.delete")
        await _publish(broker, room, {"id": "p1", "status": "not-a-status"})

        assert tracker.state.status is PaymentStatus.PROCESSING
        assert not tracker.is_terminal


async def test_order_scope_ignores_older_payments():
    broker = InMemoryRealtimeBroker()
    room = "payments:order:o1"
    async with PaymentTracker(broker=broker, order_id="o1") as tracker:
        await _publish(broker, room, _row("retry", created=T0 + timedelta(minutes=5), order_id="o1"), "payment.insert")
        await _publish(broker, room, _row("first", status="failed", created=T0, order_id="o1"))

        assert tracker.state.id == "retry"
        assert not tracker.is_terminal

        await _publish(broker, room, _row("retry", status="completed", created=T0 + timedelta(minutes=5),
                                          updated=T0 + timedelta(minutes=6), order_id="o1"))
        assert tracker.is_terminal
        assert tracker.state.status is PaymentStatus.COMPLETED


async def test_user_scope_keeps_tracking_after_terminal_rows():
    broker = InMemoryRealtimeBroker()
    room = "payments:user:u1"
    async with PaymentTracker(broker=broker, user_id="u1") as tracker:
        await _publish(broker, room, _row("a", status="completed"))
        await _publish(broker, room, _row("b", status="pending", created=T0 - timedelta(days=1)))

        assert not tracker.is_terminal
        assert set(tracker.rows) == {"a", "b"}


# ------------------------------------------------------------- room ACL

@pytest.fixture
def realtime(uow_factory):
    return RealtimeService(broker=InMemoryRealtimeBroker(), connections=ConnectionManager(), uow_factory=uow_factory)


async def test_room_access_is_limited_to_owner(realtime, seed):
    order_id = await seed.order(user_id="owner")
    payment = await seed.payment(user_id="owner", order_id=order_id)

    await realtime.ensure_can_join("owner", f"payments:id:{payment.id}")
    await realtime.ensure_can_join("owner", f"payments:order:{order_id}")
    await realtime.ensure_can_join("owner", "payments:user:owner")

    for room in (f"payments:id:{payment.id}", f"payments:order:{order_id}", "payments:user:owner", "lobby"):
        with pytest.raises(PermissionError):
            await realtime.ensure_can_join("intruder", room)

    with pytest.raises(PermissionError):
        await realtime.ensure_can_join("owner", "payments:id:missing")

    await realtime.ensure_can_join("admin", f"payments:id:{payment.id}", is_admin=True)


async def test_row_changes_are_published_to_every_room(uow_factory, fake_gateway):
    broker = InMemoryRealtimeBroker()
    seen = []

    async def capture(envelope):
        seen.append((envelope.type, envelope.room))

    await broker.subscribe(capture)
    stack = build_payment_stack(
        uow_factory=uow_factory, gateway_factory=lambda provider=None: fake_gateway, broker=broker
    )

    result = await stack.payments.initiate_payment(InitiatePaymentRequest(
        order_id=None, amount=1000, payment_method="kkiapay", user_id="u1"
    ))

    assert seen == [
        ("payment.insert", f"payments:id:{result.payment_id}"),
        ("payment.insert", "payments:user:u1"),
    ]
