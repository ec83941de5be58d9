import json
import time

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from api.dependencies import get_uow_factory
from core.config import settings
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.bootstrap import build_payment_stack
from infrastructure.cache import InMemoryPendingPaymentStore
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.signatures import compute_signature
from main import app


SECRET = "route-webhook-secret"


def _token(user_id: str, **claims) -> str:
    payload = {"sub": user_id, "aud": "authenticated", "exp": int(time.time()) + 3600, **claims}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {_token(user_id)}"}


@pytest.fixture
def stack(uow_factory, fake_gateway, monkeypatch):
    monkeypatch.setattr(payment_settings.kkiapay, "webhook_secret", SECRET)

    def gateways(provider=None):
        # Initiation uses the scripted gateway; webhooks go through the real parsers
        return get_payment_gateway(provider) if provider else fake_gateway

    return build_payment_stack(
        uow_factory=uow_factory, gateway_factory=gateways, pending_store=InMemoryPendingPaymentStore()
    )


@pytest.fixture
async def client(stack, uow_factory):
    app.state.payment_stack = stack
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
    del app.state.payment_stack


async def test_health_and_request_id(client):
    resp = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"] == "req-123"


async def test_webhook_route_contract(client, seed):
    payment = await seed.payment()
    body = json.dumps({"status": "approved", "transactionId": "kk-77", "custom_data": {"paymentId": payment.id}}).encode()

    resp = await client.post(
        "/api/v1/payments/webhooks/kkiapay",
        content=body,
        headers={"x-kkiapay-signature": compute_signature(SECRET, body), "content-type": "application/json"},
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "received": True, "success": True, "paymentId": payment.id, "status": "completed", "changed": True,
    }

    resp = await client.post("/api/v1/payments/webhooks/kkiapay", content=body, headers={"x-kkiapay-signature": "00"})
    assert resp.status_code == 401
    assert resp.json() == {"received": False, "error": "Invalid signature"}

    resp = await client.post("/api/v1/payments/webhooks/paypal", content=b"{}")
    assert resp.status_code == 404


async def test_initiate_requires_auth_and_valid_body(client):
    payload = {"amount": 5000, "paymentMethod": "mtn", "userId": "user-1"}

    assert (await client.post("/api/v1/payments/initiate", json=payload)).status_code == 401

    resp = await client.post("/api/v1/payments/initiate", json=payload, headers=_auth("user-1"))
    assert resp.status_code == 422


async def test_initiate_then_resume_from_pending(client):
    payload = {"amount": 5000, "paymentMethod": "kkiapay", "userId": "user-1", "customerEmail": "client@example.com"}

    resp = await client.post("/api/v1/payments/initiate", json=payload, headers=_auth("user-1"))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["success"] is True and data["status"] == "pending"

    resp = await client.get("/api/v1/payments/pending", headers=_auth("user-1"))
    assert [c["paymentId"] for c in resp.json()["data"]] == [data["paymentId"]]

    resp = await client.post("/api/v1/payments/initiate", json=payload, headers=_auth("someone-else"))
    assert resp.status_code == 403


async def test_status_route_scopes_to_owner(client, seed):
    payment = await seed.payment(user_id="user-1")

    assert (await client.post("/api/v1/payments/status", json={"paymentId": payment.id})).status_code == 401

    resp = await client.post("/api/v1/payments/status", json={"paymentId": payment.id}, headers=_auth("user-1"))
    assert resp.status_code == 200
    view = resp.json()["data"]["payment"]
    assert view["id"] == payment.id and view["status"] == "pending" and view["paymentMethod"] == "orange"

    resp = await client.post("/api/v1/payments/status", json={"paymentId": payment.id}, headers=_auth("user-2"))
    assert resp.status_code == 404

    resp = await client.post("/api/v1/payments/status", json={}, headers=_auth("user-1"))
    assert resp.status_code == 422


async def test_confirm_route_is_admin_only(client, seed):
    payment = await seed.payment()
    await seed.admin("admin-1")
    body = {"paymentId": payment.id, "transactionId": "manual-9", "status": "completed"}

    resp = await client.post("/api/v1/payments/confirm", json=body, headers=_auth("user-1"))
    assert resp.status_code == 403

    resp = await client.post("/api/v1/payments/confirm", json=body, headers=_auth("admin-1"))
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["changed"] is True and data["status"] == "completed"
    assert (await seed.get_payment(payment.id)).status is PaymentStatus.COMPLETED


async def test_notification_routes(client, stack):
    await stack.notifications.dispatch("user-1", "payment", "Paiement réussi", "ok")
    await stack.notifications.dispatch("user-1", "payment", "Paiement échoué", "ko")

    resp = await client.get("/api/v1/notifications", params={"size": 1}, headers=_auth("user-1"))
    assert resp.status_code == 200
    page = resp.json()["data"]
    assert page["total"] == 2 and page["pages"] == 2 and len(page["items"]) == 1

    notification_id = page["items"][0]["id"]
    resp = await client.post(f"/api/v1/notifications/{notification_id}/read", headers=_auth("user-1"))
    assert resp.json()["data"] == {"id": notification_id, "changed": True}
    assert (await client.post(f"/api/v1/notifications/{notification_id}/read", headers=_auth("user-2"))).status_code == 404

    resp = await client.post("/api/v1/notifications/read-all", headers=_auth("user-1"))
    assert resp.json()["data"] == {"updated": 1}

    resp = await client.post(
        "/api/v1/notifications/push-subscriptions",
        json={"endpoint": "https://push.example/device", "keys": {"p256dh": "k", "auth": "a"}},
        headers=_auth("user-1"),
    )
    assert resp.status_code == 200
    assert resp.json()["data"] == {"endpoint": "https://push.example/device"}


async def test_expired_token_is_rejected(client):
    expired = jwt.encode(
        {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) - 3600},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
    )
    resp = await client.get("/api/v1/payments/pending", headers={"Authorization": f"Bearer {expired}"})
    assert resp.status_code == 401


def test_websocket_without_valid_token_is_closed():
    client = TestClient(app)
    with pytest.raises(WebSocketDisconnect) as info:
        with client.websocket_connect("/api/v1/ws?token=not-a-jwt") as ws:
            ws.receive_json()
    assert info.value.code == 1008
