import logging
import smtplib
from datetime import datetime, timedelta
from email.message import EmailMessage

from tutorconnect.core import config

logger = logging.getLogger(__name__)


def is_email(value: str | None) -> bool:
    if not value:
        return False
    return "@" in value and "." in value


def send_email(to_email: str, subject: str, body: str) -> bool:
    """Send a plain-text email. Returns False when disabled or on failure."""
    if not config.SMTP_ENABLED:
        logger.info("SMTP disabled, skipping email to %s", to_email)
        return False
    if not is_email(to_email):
        logger.warning("Refusing to send email to invalid address %r", to_email)
        return False

    msg = EmailMessage()
    msg["From"] = config.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        if config.SMTP_PORT == 465:
            with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT) as smtp:
                if config.SMTP_USER and config.SMTP_PASSWORD:
                    smtp.login(config.SMTP_USER, config.SMTP_PASSWORD)
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT) as smtp:
                smtp.starttls()
                if config.SMTP_USER and config.SMTP_PASSWORD:
                    smtp.login(config.SMTP_USER, config.SMTP_PASSWORD)
                smtp.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send email to %s", to_email)
        return False

    return True


def build_appointment_completion_email(
    recipient_name: str,
    counterpart_name: str,
    appointment_datetime: datetime,
    duration: int,
    subject: str,
    chat_id: int,
) -> tuple[str, str]:
    end_time = appointment_datetime + timedelta(minutes=duration)
    chat_url = f"{config.APP_BASE_URL}/chat?id={chat_id}"

    email_subject = f"Bekreft gjennomført time med {counterpart_name}"
    body = (
        f"Hei {recipient_name}!\n\n"
        f"Timen din med {counterpart_name} er nå over:\n"
        f"Dato: {appointment_datetime:%d.%m.%Y}\n"
        f"Tid: {appointment_datetime:%H:%M} - {end_time:%H:%M} (Fag: {subject})\n\n"
        "Bekreft at undervisningstimen ble gjennomført i chatten:\n"
        f"{chat_url}\n\n"
        "Hilsen TutorConnect"
    )
    return email_subject, body


def send_appointment_completion_email(
    recipient_email: str,
    recipient_name: str,
    counterpart_name: str,
    appointment_datetime: datetime,
    duration: int,
    subject: str,
    chat_id: int,
) -> bool:
    email_subject, body = build_appointment_completion_email(
        recipient_name,
        counterpart_name,
        appointment_datetime,
        duration,
        subject,
        chat_id,
    )
    return send_email(recipient_email, email_subject, body)
