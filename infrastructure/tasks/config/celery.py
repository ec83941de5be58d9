"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from .beat import CELERY_BEAT_SCHEDULE


# Task modules are discovered via this tuple so new packages only need to be
# listed here rather than altering the runtime imports scattered elsewhere.
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)

PAYMENTS_QUEUE = "payments"
NOTIFICATIONS_QUEUE = "notifications"


celery_app = Celery("izy_scoly_payments")

celery_app.conf.update(
    # Redis doubles as broker and result backend; env vars cover worker-only hosts.
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A sweep interrupted by a worker crash is simply redelivered; it is idempotent.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue=NOTIFICATIONS_QUEUE,
    task_default_retry_delay=5,
    task_queues=(
        Queue(PAYMENTS_QUEUE),
        Queue(NOTIFICATIONS_QUEUE),
    ),
    # Sweeps must not queue behind a burst of confirmation e-mails
    task_routes={
        "payments.*": {"queue": PAYMENTS_QUEUE},
        "notifications.*": {"queue": NOTIFICATIONS_QUEUE},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

if settings.is_test:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=bool(sender.conf.broker_url),
        queues=[q.name for q in sender.conf.task_queues],
        beat_jobs=sorted(sender.conf.beat_schedule),
    )
