import logging
from email.message import EmailMessage

import aiosmtplib

from ..config import get_settings

LOGGER = logging.getLogger("uvicorn.error")


def is_enabled() -> bool:
    settings = get_settings()
    return bool(settings.smtp_host and settings.smtp_username and settings.mail_from)


async def send_email(to_email: str, subject: str, html: str) -> bool:
    """Attempt delivery of an HTML email. Failures are logged and reported as ``False``."""
    settings = get_settings()
    if not is_enabled():
        LOGGER.warning("[EMAIL] SMTP not configured; dropping '%s' to %s", subject, to_email)
        return False

    message = EmailMessage()
    message["From"] = f"{settings.mail_from_name} <{settings.mail_from}>"
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content("This message requires an HTML capable email client.")
    message.add_alternative(html, subtype="html")

    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            start_tls=True,
            username=settings.smtp_username,
            password=settings.smtp_password,
            timeout=settings.smtp_timeout,
        )
    except Exception as exc:
        LOGGER.error("[EMAIL] Failed to send '%s' to %s: %s", subject, to_email, exc)
        return False
    LOGGER.info("[EMAIL] Sent '%s' to %s", subject, to_email)
    return True


__all__ = ["is_enabled", "send_email"]
