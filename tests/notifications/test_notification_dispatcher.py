import pytest

from application.dtos.notifications import PushSubscriptionKeys, PushSubscriptionRequest
from application.services.event_dispatcher import PaymentEventDispatcher
from application.services.notification_service import (
    NotificationDispatcher,
    NotificationQueryService,
    PaymentNotificationSubscriber,
)
from domain.common.exceptions import NotificationNotFoundException
from domain.payment.events import PaymentCancelled, PaymentCompleted


async def _subscriptions(uow_factory, user_id):
    async with uow_factory(readonly=True) as uow:
        return [s.endpoint for s in await uow.push_subscription_repository.list_by_user(user_id)]


async def test_dispatch_without_subscriptions_persists_and_returns_zero(uow_factory, seed, push_sender_cls):
    sender = push_sender_cls()
    dispatcher = NotificationDispatcher(uow_factory, sender)

    sent = await dispatcher.dispatch("user-1", "payment", "Paiement réussi", "ok", {"payment_id": "p1"})

    assert sent == 0
    assert sender.sent == []
    (row,) = await seed.notifications("user-1")
    assert (row.title, row.message, row.data, row.is_read) == ("Paiement réussi", "ok", {"payment_id": "p1"}, False)


async def test_fan_out_counts_deliveries_and_forgets_gone_endpoints(uow_factory, seed, push_sender_cls):
    for endpoint in ("https://push.example/a", "https://push.example/gone", "https://push.example/broken"):
        await seed.push_subscription("user-1", endpoint)
    await seed.push_subscription("user-2", "https://push.example/other")
    sender = push_sender_cls(gone=("https://push.example/gone",), failing=("https://push.example/broken",))

    sent = await NotificationDispatcher(uow_factory, sender).dispatch("user-1", "payment", "T", "M")

    assert sent == 1
    assert [endpoint for endpoint, _ in sender.sent] == ["https://push.example/a"]
    assert sender.sent[0][1].tag == "payment"
    remaining = await _subscriptions(uow_factory, "user-1")
    assert sorted(remaining) == ["https://push.example/a", "https://push.example/broken"]
    assert await _subscriptions(uow_factory, "user-2") == ["https://push.example/other"]


async def test_dispatch_never_raises(push_sender_cls):
    class BrokenUnitOfWork:
        async def __aenter__(self):
            raise RuntimeError("database down")

        async def __aexit__(self, *exc):
            return False

    dispatcher = NotificationDispatcher(lambda **kw: BrokenUnitOfWork(), push_sender_cls())
    assert await dispatcher.dispatch("user-1", "payment", "T", "M") == 0


async def test_completed_payment_notifies_admins_user_and_schedules_email(uow_factory, seed):
    await seed.admin("admin-1")
    await seed.admin("admin-2")
    emails = []
    events = PaymentEventDispatcher()
    PaymentNotificationSubscriber(
        NotificationDispatcher(uow_factory),
        uow_factory,
        email_scheduler=lambda to, subject, body: emails.append((to, subject, body)),
    ).register(events)

    await events.dispatch([PaymentCompleted(
        payment_id="p1", user_id="user-1", amount=5000, order_id="abcdef123456",
        transaction_id="tx-1", customer_email="client@example.com",
    )])

    for admin_id in ("admin-1", "admin-2"):
        (row,) = await seed.notifications(admin_id)
        assert row.title == "Paiement confirmé"
        assert "#abcdef12" in row.message
    (row,) = await seed.notifications("user-1")
    assert row.title == "Paiement réussi"
    assert "5000 FCFA" in row.message
    assert row.data["status"] == "completed"
    assert len(emails) == 1
    to, subject, body = emails[0]
    assert to == "client@example.com"
    assert "tx-1" in body


async def test_email_scheduler_failure_does_not_block_notifications(uow_factory, seed):
    def broken_scheduler(*args):
        raise ConnectionError("broker unreachable")

    events = PaymentEventDispatcher()
    PaymentNotificationSubscriber(
        NotificationDispatcher(uow_factory), uow_factory, email_scheduler=broken_scheduler
    ).register(events)

    await events.dispatch([PaymentCompleted(
        payment_id="p1", user_id="user-1", amount=100, customer_email="client@example.com"
    )])
    assert len(await seed.notifications("user-1")) == 1


async def test_cancelled_payment_notifies_user_only(uow_factory, seed):
    await seed.admin("admin-1")
    events = PaymentEventDispatcher()
    PaymentNotificationSubscriber(NotificationDispatcher(uow_factory), uow_factory).register(events)

    await events.dispatch([PaymentCancelled(payment_id="p1", user_id="user-1", amount=100)])

    assert [n.title for n in await seed.notifications("user-1")] == ["Paiement annulé"]
    assert await seed.notifications("admin-1") == []


async def test_mark_read_and_mark_all_read(uow_factory, seed):
    dispatcher = NotificationDispatcher(uow_factory)
    for i in range(3):
        await dispatcher.dispatch("user-1", "payment", f"T{i}", "M")
    await dispatcher.dispatch("user-2", "payment", "other", "M")
    queries = NotificationQueryService(uow_factory)

    items, total = await queries.list_for_user("user-1", page=1, size=2)
    assert total == 3 and len(items) == 2

    first = items[0]
    assert await queries.mark_read("user-1", first.id) is True
    assert await queries.mark_read("user-1", first.id) is False
    with pytest.raises(NotificationNotFoundException):
        await queries.mark_read("user-2", first.id)
    with pytest.raises(NotificationNotFoundException):
        await queries.mark_read("user-1", "missing")

    unread, unread_total = await queries.list_for_user("user-1", unread_only=True)
    assert unread_total == 2 and first.id not in [n.id for n in unread]

    assert await queries.mark_all_read("user-1") == 2
    assert await queries.mark_all_read("user-1") == 0
    _, still_unread = await queries.list_for_user("user-2", unread_only=True)
    assert still_unread == 1


async def test_register_push_subscription_upserts_by_endpoint(uow_factory):
    queries = NotificationQueryService(uow_factory)
    keys = PushSubscriptionKeys(p256dh="key-1", auth="auth-1")
    endpoint = "https://push.example/device"

    await queries.register_push_subscription("user-1", PushSubscriptionRequest(endpoint=endpoint, keys=keys))
    # Same browser endpoint re-registered after a different user logs in
    await queries.register_push_subscription("user-2", PushSubscriptionRequest(endpoint=endpoint, keys=keys))

    assert await _subscriptions(uow_factory, "user-1") == []
    assert await _subscriptions(uow_factory, "user-2") == [endpoint]
