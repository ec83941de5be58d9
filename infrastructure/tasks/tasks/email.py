"""Email related Celery tasks"""
from __future__ import annotations

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger
from infrastructure.external.email.smtp_sender import send_email

logger = get_logger(__name__)


class EmailDeliveryError(Exception):
    pass


@shared_task(
    name="notifications.send_payment_email",
    bind=True,
    base=BaseTask,
    autoretry_for=(EmailDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def send_payment_email(self, to_email: str, subject: str, body: str) -> bool:
    """Send a payment confirmation e-mail; unconfigured SMTP is not retried."""
    ok, error = send_email(to_email, subject, body)
    if ok:
        return True
    if error == "Email not configured":
        logger.info("payment_email_skipped", reason=error)
        return False
    raise EmailDeliveryError(error)
