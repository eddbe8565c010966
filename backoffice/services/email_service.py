"""
Email Service
Transactional email (invitations, password resets) over SMTP

Author: Back Office Team
Date: 2025-11-04
"""
import html
import logging
import smtplib
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Tuple

from backoffice.core.config import settings

logger = logging.getLogger(__name__)

MAX_EMAIL_ATTEMPTS = 3
SMTP_TIMEOUT = 30  # seconds


INVITE_TEMPLATE = """
<p>Hello {name},</p>
<p>You have been invited to the back office. Set your password to activate your account:</p>
<p><a href="{link}">{link}</a></p>
<p>This link expires in {hours} hours.</p>
"""

ONBOARDING_RESET_TEMPLATE = """
<p>Hello {name},</p>
<p>A new onboarding link was issued for your account:</p>
<p><a href="{link}">{link}</a></p>
<p>This link expires in {hours} hours.</p>
"""

PASSWORD_RESET_TEMPLATE = """
<p>Hello {name},</p>
<p>We received a request to reset your password. Use the link below to choose a new one:</p>
<p><a href="{link}">{link}</a></p>
<p>This link expires in {hours} hour(s). If you did not ask for this, ignore this email.</p>
"""


def is_smtp_configured() -> bool:
    return bool(settings.SMTP_HOST and settings.SMTP_PORT and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)


def send_email(
    to_email: str,
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
) -> Tuple[bool, Optional[str]]:
    """
    Send an email using the configured SMTP credentials with retry.

    Returns (sent, error_message). Never raises: callers treat email as
    best effort and carry on with the request.
    """
    if not is_smtp_configured():
        warning = "SMTP configuration missing. Email not sent."
        logger.warning(f"{warning} to={to_email} subject={subject!r}")
        return False, warning

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to_email
    message.attach(MIMEText(text_body or "Please view this email in an HTML-compatible client.", "plain"))
    message.attach(MIMEText(html_body, "html"))

    last_error = None
    for attempt in range(1, MAX_EMAIL_ATTEMPTS + 1):
        try:
            with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=SMTP_TIMEOUT) as server:
                server.starttls()
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.sendmail(settings.SMTP_FROM_EMAIL, [to_email], message.as_string())
            logger.info(f"Email sent to {to_email}: {subject}")
            return True, None
        except smtplib.SMTPAuthenticationError as exc:
            last_error = f"SMTP authentication failed: {exc}"
        except smtplib.SMTPServerDisconnected as exc:
            last_error = f"SMTP server disconnected: {exc}"
        except (smtplib.SMTPException, OSError) as exc:
            last_error = f"SMTP error: {exc}"

        logger.warning(f"Email attempt {attempt}/{MAX_EMAIL_ATTEMPTS} to {to_email} failed: {last_error}")
        if attempt < MAX_EMAIL_ATTEMPTS:
            time.sleep(2 ** attempt)

    logger.error(f"Giving up on email to {to_email}: {last_error}")
    return False, last_error
def render(template: str, name: str, link: str, hours: int) -> str:
    """Fill a template; user-supplied values are HTML-escaped"""
    return template.format(name=html.escape(name or ""), link=html.escape(link), hours=hours)


def send_invitation_email(to_email: str, name: str, token: str) -> Tuple[bool, Optional[str]]:
    link = f"{settings.FRONTEND_URL}/onboarding?token={token}"
    body = render(INVITE_TEMPLATE, name, link, settings.INVITE_TOKEN_EXPIRE_HOURS)
    return send_email(to_email, "You're invited to the back office", body)


def send_onboarding_reset_email(to_email: str, name: str, token: str) -> Tuple[bool, Optional[str]]:
    link = f"{settings.FRONTEND_URL}/onboarding?token={token}"
    body = render(ONBOARDING_RESET_TEMPLATE, name, link, settings.INVITE_TOKEN_EXPIRE_HOURS)
    return send_email(to_email, "Your new onboarding link", body)


def send_password_reset_email(to_email: str, name: str, token: str) -> Tuple[bool, Optional[str]]:
    link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    body = render(PASSWORD_RESET_TEMPLATE, name, link, settings.RESET_TOKEN_EXPIRE_HOURS)
    return send_email(to_email, "Reset your password", body)
