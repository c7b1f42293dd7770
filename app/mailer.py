"""
Outgoing mail for attendance reports, sent over SMTP with the settings in app.config.
"""
import logging
import smtplib
from email.message import EmailMessage
from html import escape

from app import config

logger = logging.getLogger(__name__)

DEFAULT_REPORT_MESSAGE = "Please find the attached attendance report."


def build_message(to_email: str, subject: str, message: str,
                  attachment: bytes = None, filename: str = None,
                  content_type: str = None) -> EmailMessage:
    """Build a plain-text + HTML message with an optional attachment."""
    msg = EmailMessage()
    msg["From"] = config.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(message)
    msg.add_alternative(f"<p>{escape(message)}</p>", subtype="html")

    if attachment is not None:
        maintype, _, subtype = (content_type or "application/octet-stream").partition("/")
        msg.add_attachment(
            attachment,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=filename or "attachment",
        )
    return msg


def send_email(to_email: str, subject: str, message: str = None,
               attachment: bytes = None, filename: str = None,
               content_type: str = None) -> None:
    """Send one message. SMTP failures propagate to the caller."""
    msg = build_message(to_email, subject, message or DEFAULT_REPORT_MESSAGE,
                        attachment, filename, content_type)

    if config.EMAIL_SECURE:
        smtp = smtplib.SMTP_SSL(config.EMAIL_HOST, config.EMAIL_PORT, timeout=30)
    else:
        smtp = smtplib.SMTP(config.EMAIL_HOST, config.EMAIL_PORT, timeout=30)

    with smtp as s:
        if not config.EMAIL_SECURE:
            s.starttls()
        if config.EMAIL_USER and config.EMAIL_PASSWORD:
            s.login(config.EMAIL_USER, config.EMAIL_PASSWORD)
        s.send_message(msg)

    logger.info("Sent '%s' to %s", subject, to_email)
