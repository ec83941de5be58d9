"""
Webhook signature helpers: HMAC-SHA256 over the raw body, hex encoded.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_hmac_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> bool:
    """Constant-time comparison over bytes; a missing secret or signature never verifies."""
    if not secret or not signature:
        return False
    expected = compute_signature(secret, body).encode("ascii")
    # 伪造的请求头可能含非 ASCII 字符，按字节比较以免 compare_digest 抛出 TypeError
    given = signature.strip().lower().encode("utf-8", "replace")
    return hmac.compare_digest(expected, given)
