"""
Payment specific codes and provider status vocabulary.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    UNSUPPORTED_PROVIDER = 60002


# Provider vocabulary → internal status value. Keys are lower-cased before lookup;
# anything not listed maps to "pending".
PROVIDER_STATUS_TO_INTERNAL = {
    "success": "completed",
    "successful": "completed",
    "succeeded": "completed",
    "approved": "completed",
    "completed": "completed",
    "transferred": "completed",
    "failed": "failed",
    "failure": "failed",
    "declined": "failed",
    "cancelled": "failed",
    "canceled": "failed",
    "expired": "failed",
    "rejected": "failed",
    "refunded": "refunded",
    "reversed": "refunded",
    "processing": "processing",
    "in_progress": "processing",
}

