from datetime import datetime, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import (
    Payment,
    PaymentMethod,
    PaymentStatus,
    is_valid_phone,
    normalize_phone,
)
from domain.payment.status_mapping import map_provider_status


def _payment(status=PaymentStatus.PENDING, **kw) -> Payment:
    return Payment(id="p1", user_id="u1", amount=5000, payment_method=PaymentMethod.ORANGE, status=status, **kw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("approved", PaymentStatus.COMPLETED),
        ("transferred", PaymentStatus.COMPLETED),
        ("SUCCESS", PaymentStatus.COMPLETED),
        ("declined", PaymentStatus.FAILED),
        ("cancelled", PaymentStatus.FAILED),
        ("canceled", PaymentStatus.FAILED),
        ("refunded", PaymentStatus.REFUNDED),
        ("processing", PaymentStatus.PROCESSING),
        ("pending", PaymentStatus.PENDING),
        ("something-new", PaymentStatus.PENDING),
        ("", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_provider_status_mapping_is_total(raw, expected):
    assert map_provider_status(raw) is expected


def test_amount_must_be_positive_integer():
    with pytest.raises(DomainValidationException):
        _payment_with_amount(0)
    with pytest.raises(DomainValidationException):
        _payment_with_amount(-10)
    with pytest.raises(DomainValidationException):
        _payment_with_amount(True)


def _payment_with_amount(amount):
    return Payment(id="p1", user_id="u1", amount=amount, payment_method="mtn")


def test_success_path_sets_completed_at_once():
    p = _payment()
    assert p.mark_processing("tx-1").changed
    assert p.transaction_id == "tx-1"
    change = p.apply_status(PaymentStatus.COMPLETED)
    assert change.previous is PaymentStatus.PROCESSING
    assert p.status is PaymentStatus.COMPLETED
    first_completed_at = p.completed_at
    assert first_completed_at is not None

    # Redelivery is absorbed and leaves the row untouched
    again = p.apply_status(PaymentStatus.COMPLETED, metadata={"late": True})
    assert not again.changed
    assert p.completed_at == first_completed_at
    assert "late" not in p.metadata


@pytest.mark.parametrize("terminal", [PaymentStatus.FAILED, PaymentStatus.CANCELLED])
def test_terminal_states_absorb_everything(terminal):
    p = _payment(status=terminal)
    for reported in PaymentStatus:
        assert not p.apply_status(reported).changed
        assert p.status is terminal


def test_refunded_only_reachable_from_completed():
    done = _payment(status=PaymentStatus.COMPLETED, completed_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
    change = done.apply_status(PaymentStatus.REFUNDED)
    assert change.changed and done.status is PaymentStatus.REFUNDED
    # Original completion time is kept
    assert done.completed_at == datetime(2026, 1, 1, tzinfo=timezone.utc)

    pending = _payment()
    pending.apply_status(PaymentStatus.REFUNDED)
    assert pending.status is PaymentStatus.FAILED


def test_processing_cannot_go_back_to_pending():
    p = _payment(status=PaymentStatus.PROCESSING)
    change = p.apply_status(PaymentStatus.PENDING, metadata={"kkiapay_status": "pending"})
    assert not change.changed
    assert p.status is PaymentStatus.PROCESSING
    # Non-terminal rows still record the provider breadcrumb
    assert p.metadata["kkiapay_status"] == "pending"


def test_transaction_id_is_never_overwritten():
    p = _payment(transaction_id="tx-first")
    p.apply_status(PaymentStatus.PROCESSING, transaction_id="tx-second")
    assert p.transaction_id == "tx-first"


def test_mark_failed_records_reason():
    p = _payment()
    p.mark_failed("insufficient_funds", provider_error="402")
    assert p.status is PaymentStatus.FAILED
    assert p.metadata["failure_reason"] == "insufficient_funds"
    assert p.metadata["provider_error"] == "402"


def test_phone_normalization_and_validation():
    assert normalize_phone(" +229 97-00.00.00 ") == "+22997000000"
    assert normalize_phone("   ") is None
    assert is_valid_phone("+22997000000")
    assert is_valid_phone("0022507070707")
    assert is_valid_phone("97000000")
    assert not is_valid_phone("12345")
    assert not is_valid_phone("+229abc00000")
