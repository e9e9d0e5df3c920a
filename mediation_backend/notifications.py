"""
Notification Utilities
======================

Delivers the consent link to the opposite party.
Email goes over SMTP; SMS goes through Twilio's REST API.
Both fall back to logging in development mode (SMTP unset, SMS_PROVIDER=dev).
"""

import html
import logging
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, List, Optional

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class NotificationDeliveryError(Exception):
    """Raised when no channel could deliver the message"""


def is_email_configured(settings: Optional[Settings] = None) -> bool:
    """Check if SMTP is properly configured."""
    settings = settings or get_settings()
    return bool(settings.smtp_host and settings.smtp_user and settings.smtp_password)


def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """
    Send an email.

    Returns True if sent successfully, False otherwise.
    In development mode (SMTP not configured), logs the email instead.
    """
    settings = settings or get_settings()

    if not is_email_configured(settings):
        logger.info(f"[DEV MODE] Email would be sent to {to_email}: {subject}")
        logger.debug(f"[DEV MODE] Email body: {text_body or html_body[:200]}")
        return True

    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = settings.smtp_from
        msg["To"] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            if settings.smtp_use_tls:
                server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.smtp_from, to_email, msg.as_string())

        logger.info(f"Email sent successfully to {to_email}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


def normalize_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    if phone.strip().startswith("+"):
        return f"+{digits}"
    return f"+{digits}" if digits else phone


def send_sms(to_phone: str, body: str, settings: Optional[Settings] = None) -> bool:
    """
    Send an SMS.

    Returns True if sent successfully, False otherwise.
    With SMS_PROVIDER=dev the message is logged instead.
    """
    settings = settings or get_settings()
    target = normalize_phone(to_phone)
    provider = (settings.sms_provider or "dev").strip().lower()

    if provider == "dev":
        logger.info(f"[DEV MODE] SMS would be sent to {target}: {body}")
        return True

    if provider != "twilio":
        logger.error(f"Unsupported SMS_PROVIDER: {provider}")
        return False

    sid = settings.twilio_account_sid.strip()
    token = settings.twilio_auth_token.strip()
    sender = settings.sms_from.strip()
    if not sid or not token or not sender:
        logger.error("Twilio SMS config missing (TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN/SMS_FROM)")
        return False

    try:
        with httpx.Client(timeout=20.0) as client:
            resp = client.post(
                TWILIO_MESSAGES_URL.format(sid=sid),
                data={"To": target, "From": sender, "Body": body},
                auth=(sid, token),
            )
        if resp.status_code >= 400:
            logger.error(f"Twilio SMS failed: {resp.status_code} {resp.text[:200]}")
            return False
    except httpx.HTTPError as e:
        logger.error(f"Failed to send SMS to {target}: {e}")
        return False

    logger.info(f"SMS sent successfully to {target}")
    return True


def _invite_bodies(url: str, case_number: str, recipient_name: Optional[str]) -> Dict[str, str]:
    greeting = f"Dear {recipient_name}," if recipient_name else "Hello,"
    safe_greeting = html.escape(greeting)
    safe_case_number = html.escape(case_number)
    safe_url = html.escape(url, quote=True)
    text = (
        f"{greeting}\n\n"
        f"You have been named as the opposite party in dispute {case_number}.\n"
        f"Please let us know whether you agree to mediation:\n{url}\n\n"
        f"This link is personal and expires in a few days."
    )
    html_body = f"""
    <!DOCTYPE html>
    <html lang="en">
    <head><meta charset="UTF-8"></head>
    <body style="font-family: Arial, sans-serif;">
        <p>{safe_greeting}</p>
        <p>You have been named as the opposite party in dispute <strong>{safe_case_number}</strong>.</p>
        <p>Please let us know whether you agree to mediation:</p>
        <p><a href="{safe_url}">Respond to the mediation request</a></p>
        <p style="color: #666; font-size: 12px;">This link is personal and expires in a few days.
        If you were not expecting this message you can ignore it.</p>
    </body>
    </html>
    """
    sms = f"Mediation request {case_number}: please respond at {url}"
    return {"text": text, "html": html_body, "sms": sms}


class ConsentInviteNotifier:
    """Sends the consent link to the opposite party by email and/or SMS"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def send(
        self,
        email: Optional[str],
        phone: Optional[str],
        url: str,
        case_number: str,
        recipient_name: Optional[str] = None,
    ) -> List[str]:
        """
        Deliver the invite on every channel that has a destination.

        Returns:
            Channels that accepted the message

        Raises:
            NotificationDeliveryError: no destination, or every channel failed
        """
        if not email and not phone:
            raise NotificationDeliveryError("No email or phone to notify")

        bodies = _invite_bodies(url, case_number, recipient_name)
        delivered: List[str] = []

        if email:
            subject = f"Mediation request for case {case_number}"
            if send_email(email, subject, bodies["html"], bodies["text"], settings=self.settings):
                delivered.append("email")
        if phone:
            if send_sms(phone, bodies["sms"], settings=self.settings):
                delivered.append("sms")

        if not delivered:
            raise NotificationDeliveryError(f"Invite for {case_number} could not be delivered")
        return delivered
