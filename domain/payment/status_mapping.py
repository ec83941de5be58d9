"""
Provider status vocabulary → internal PaymentStatus.

The mapping is total: unknown, empty or missing values yield ``pending`` so an
unrecognised string can never land a payment in a terminal state.
"""
from __future__ import annotations

from typing import Any

from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL
from .entity import PaymentStatus


def map_provider_status(raw: Any) -> PaymentStatus:
    if raw is None:
        return PaymentStatus.PENDING
    key = str(raw).strip().lower().replace("-", "_").replace(" ", "_")
    internal = PROVIDER_STATUS_TO_INTERNAL.get(key)
    if internal is None:
        return PaymentStatus.PENDING
    return PaymentStatus(internal)
