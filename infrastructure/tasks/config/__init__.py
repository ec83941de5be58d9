"""Celery app, queues and the beat schedule for the stale-payment sweep."""
from .celery import celery_app, NOTIFICATIONS_QUEUE, PAYMENTS_QUEUE
from .beat import CELERY_BEAT_SCHEDULE

__all__ = ["celery_app", "CELERY_BEAT_SCHEDULE", "PAYMENTS_QUEUE", "NOTIFICATIONS_QUEUE"]
