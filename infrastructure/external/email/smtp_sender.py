"""SMTP e-mail sender used by the Celery e-mail task."""
from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Optional

from core.logging_config import get_logger
from core.settings import payment_settings


logger = get_logger(__name__)


def send_email(to_email: str, subject: str, body: str) -> tuple[bool, Optional[str]]:
    """发送纯文本邮件，返回 (是否成功, 错误信息)"""
    cfg = payment_settings.email
    from_email = cfg.from_email or cfg.smtp_username
    if not cfg.smtp_host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout) as server:
            if cfg.use_tls:
                server.starttls()
            if cfg.smtp_username and cfg.smtp_password:
                server.login(cfg.smtp_username, cfg.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("email_send_failed", to=to_email, error=str(exc))
        return False, str(exc)
    logger.info("email_sent", to=to_email, subject=subject)
    return True, None
