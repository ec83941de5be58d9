import json

import httpx
import pytest

from application.dtos.payments import ChargeRequest
from core.settings import payment_settings
from domain.payment.entity import PaymentMethod, PaymentStatus
from infrastructure.external.payments import SUPPORTED_PROVIDERS, get_payment_gateway
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    UnsupportedPaymentProviderError,
)
from infrastructure.external.payments.fedapay_client import FedapayClient
from infrastructure.external.payments.kkiapay_client import KkiapayClient
from infrastructure.external.payments.signatures import compute_signature, verify_hmac_signature


def _charge(method=PaymentMethod.MTN, phone="+22997000000") -> ChargeRequest:
    return ChargeRequest(
        payment_id="pay-1",
        order_id="ord-1",
        user_id="user-1",
        amount=5000,
        payment_method=method,
        phone_number=phone,
        customer_email="client@example.com",
    )


def test_signature_helpers():
    body = b'{"status":"approved"}'
    sig = compute_signature("s3cr3t", body)
    assert verify_hmac_signature("s3cr3t", body, sig)
    assert verify_hmac_signature("s3cr3t", body, f"  {sig.upper()} ")
    assert not verify_hmac_signature("s3cr3t", body + b" ", sig)
    assert not verify_hmac_signature(None, body, sig)
    assert not verify_hmac_signature("s3cr3t", body, None)


def test_gateway_factory():
    assert SUPPORTED_PROVIDERS == ("kkiapay", "fedapay")
    assert isinstance(get_payment_gateway("KKIAPAY"), KkiapayClient)
    assert isinstance(get_payment_gateway("fedapay"), FedapayClient)
    with pytest.raises(UnsupportedPaymentProviderError):
        get_payment_gateway("paypal")


# ----------------------------------------------------------------- KkiaPay

def test_kkiapay_parses_flat_payload():
    event = KkiapayClient().parse_webhook({
        "transactionId": 12345,
        "status": "SUCCESS",
        "amount": "5000",
        "paymentMethod": "MOBILE_MONEY",
        "custom_data": {"paymentId": "pay-1", "orderId": "ord-1", "userId": "user-1"},
    })
    assert event.provider == "kkiapay"
    assert event.status is PaymentStatus.COMPLETED
    assert event.raw_status == "SUCCESS"
    assert event.transaction_id == "12345"
    assert (event.payment_id, event.order_id, event.user_id) == ("pay-1", "ord-1", "user-1")
    assert event.amount == 5000
    assert event.metadata["kkiapay_payment_method"] == "MOBILE_MONEY"


def test_kkiapay_parses_enveloped_payload_with_string_state():
    event = KkiapayClient().parse_webhook({
        "event": "transaction.failed",
        "data": {
            "transactionId": "kk-9",
            "state": json.dumps({"payment_id": "pay-9"}),
            "failureReason": "timeout",
        },
    })
    assert event.status is PaymentStatus.FAILED
    assert event.raw_status == "failed"
    assert event.payment_id == "pay-9"
    assert event.failure_reason == "timeout"


def test_kkiapay_unknown_status_stays_pending():
    event = KkiapayClient().parse_webhook({"status": "WHATEVER", "custom_data": "not-json"})
    assert event.status is PaymentStatus.PENDING
    assert event.payment_id is None


async def test_kkiapay_charge_returns_widget_parameters(monkeypatch):
    monkeypatch.setattr(payment_settings.kkiapay, "public_key", "pk_test")
    answer = await KkiapayClient().charge(_charge(method=PaymentMethod.KKIAPAY, phone=None))
    assert answer.accepted and answer.status is PaymentStatus.PENDING
    assert answer.transaction_id is None
    assert answer.channel["type"] == "widget"
    assert answer.channel["key"] == "pk_test"
    assert answer.channel["data"] == {"paymentId": "pay-1", "orderId": "ord-1", "userId": "user-1"}


async def test_kkiapay_charge_without_key_is_rejected(monkeypatch):
    monkeypatch.setattr(payment_settings.kkiapay, "public_key", None)
    answer = await KkiapayClient().charge(_charge())
    assert not answer.accepted
    assert answer.status is PaymentStatus.FAILED


async def test_kkiapay_query_status(monkeypatch):
    monkeypatch.setattr(payment_settings.kkiapay, "public_key", "pk")
    monkeypatch.setattr(payment_settings.kkiapay, "private_key", "pv")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["api_key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"transactionId": "kk-1", "status": "SUCCESS"})

    client = KkiapayClient(transport=httpx.MockTransport(handler))
    try:
        answer = await client.query_status("kk-1")
    finally:
        await client.aclose()

    assert client.has_credentials
    assert seen["url"].endswith("/api/v1/transactions/status")
    assert seen["api_key"] == "pk"
    assert seen["body"] == {"transactionId": "kk-1"}
    assert answer.status is PaymentStatus.COMPLETED


async def test_kkiapay_http_error_becomes_provider_error(monkeypatch):
    client = KkiapayClient(transport=httpx.MockTransport(lambda r: httpx.Response(500, text="boom")))
    with pytest.raises(PaymentProviderError):
        await client.query_status("kk-1")
    await client.aclose()


async def test_transport_failure_is_retried_then_recoverable(monkeypatch):
    monkeypatch.setattr(payment_settings.retry, "base_backoff", 0.0)
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("unreachable", request=request)

    client = KkiapayClient(transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentRecoverableError):
        await client.query_status("kk-1")
    await client.aclose()
    assert len(calls) == payment_settings.retry.max + 1


# ----------------------------------------------------------------- FedaPay

async def test_fedapay_charge_creates_transaction_token_and_push(monkeypatch):
    monkeypatch.setattr(payment_settings.fedapay, "secret_key", "sk_test")
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/v1/transactions":
            return httpx.Response(200, json={"v1/transaction": {"id": 101, "reference": "trx_abc", "status": "pending"}})
        if path == "/v1/transactions/101/token":
            return httpx.Response(200, json={"token": "tok_1", "url": "https://pay"})
        if path == "/v1/mtn_open":
            return httpx.Response(200, json={"message": "sent"})
        return httpx.Response(404)

    client = FedapayClient(transport=httpx.MockTransport(handler))
    answer = await client.charge(_charge())
    await client.aclose()

    assert [r.url.path for r in requests] == ["/v1/transactions", "/v1/transactions/101/token", "/v1/mtn_open"]
    created = json.loads(requests[0].content)
    assert created["amount"] == 5000
    assert created["custom_metadata"] == {"payment_id": "pay-1", "order_id": "ord-1", "user_id": "user-1"}
    assert requests[0].headers["authorization"] == "Bearer sk_test"
    push = json.loads(requests[2].content)
    assert push["token"] == "tok_1"
    assert push["phone_number"]["number"] == "+22997000000"

    assert answer.accepted
    assert answer.status is PaymentStatus.PROCESSING
    assert answer.transaction_id == "101"
    assert answer.channel["reference"] == "trx_abc"


async def test_fedapay_rejects_without_credentials_or_mode(monkeypatch):
    monkeypatch.setattr(payment_settings.fedapay, "secret_key", None)
    assert not (await FedapayClient().charge(_charge())).accepted

    monkeypatch.setattr(payment_settings.fedapay, "secret_key", "sk_test")
    answer = await FedapayClient().charge(_charge(method=PaymentMethod.KKIAPAY))
    assert not answer.accepted
    assert "Unsupported payment method" in answer.message


def test_fedapay_parses_webhook():
    event = FedapayClient().parse_webhook({
        "name": "transaction.approved",
        "object": {
            "id": 101,
            "reference": "trx_abc",
            "status": "approved",
            "amount": 5000,
            "mode": "mtn_open",
            "custom_metadata": {"payment_id": "pay-1", "order_id": "ord-1"},
        },
    })
    assert event.status is PaymentStatus.COMPLETED
    assert event.transaction_id == "101"
    assert event.reference == "trx_abc"
    assert event.payment_id == "pay-1"
    assert event.order_id == "ord-1"
    assert event.metadata == {"fedapay_reference": "trx_abc", "fedapay_mode": "mtn_open"}


def test_fedapay_status_from_event_name():
    event = FedapayClient().parse_webhook({"name": "transaction.declined", "object": {"id": 7}})
    assert event.status is PaymentStatus.FAILED
    assert event.raw_status == "declined"
