"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by application layer to schedule tasks."""

    def send_payment_email(self, to_email: str, subject: str, body: str) -> None:
        """Fire-and-forget payment confirmation e-mail."""
        celery_app.send_task(
            "notifications.send_payment_email",
            kwargs={"to_email": to_email, "subject": subject, "body": body},
        )
