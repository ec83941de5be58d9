"""Celery beat schedule configuration.

Periodic jobs live here; keeping the structure close to the Celery docs makes
copying snippets straightforward for new tasks.
"""
from __future__ import annotations

from core.settings import payment_settings

CELERY_BEAT_SCHEDULE = {
    "payments-reconcile-stale": {
        "task": "payments.reconcile_stale",
        "schedule": float(payment_settings.tracking.sweep_interval_s),
        "kwargs": {"limit": payment_settings.tracking.sweep_batch},
    },
}
