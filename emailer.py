# emailer.py
"""
Outbound mail. Uses SMTP when SMTP_HOST is set; otherwise the message is only
logged, which is what local development and the test-suite rely on.
"""
import os
import smtplib
from email.message import EmailMessage
from typing import Optional

from logging_config import get_logger

logger = get_logger(__name__)


def as_bool(val, default=False):
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")


SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST")
SMTP_PORT: int = int(os.getenv("SMTP_PORT") or 587)
SMTP_USE_TLS: bool = as_bool(os.getenv("SMTP_USE_TLS"), True)
SMTP_USERNAME: Optional[str] = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD")
MAIL_FROM: str = os.getenv("MAIL_FROM") or SMTP_USERNAME or "noreply@example.com"
FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:5000")


def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    """Deliver one message. SMTP errors propagate to the caller."""
    if not SMTP_HOST:
        logger.info("Email would be sent to=%s subject=%r (SMTP_HOST not configured)", to, subject)
        return True

    msg = EmailMessage()
    msg["From"] = MAIL_FROM
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text)
    if html:
        msg.add_alternative(html, subtype="html")

    with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=15) as server:
        if SMTP_USE_TLS:
            server.starttls()
        if SMTP_USERNAME and SMTP_PASSWORD:
            server.login(SMTP_USERNAME, SMTP_PASSWORD)
        server.send_message(msg)

    logger.info("Email sent to=%s subject=%r", to, subject)
    return True


def send_welcome_email(user_email: str, user_name: str) -> bool:
    text = (
        f"Welcome {user_name}! Thank you for registering with the Competitor Intelligence "
        "Dashboard. You now have access to competitor analysis, market trends and dashboard insights."
    )
    html = (
        f"<p>Hi {user_name},</p>"
        "<p>Thank you for registering with the Competitor Intelligence Dashboard. You now have access to:</p>"
        "<ul><li>Competitor pricing analysis</li><li>Market trend visualization</li>"
        "<li>Dashboard metrics and insights</li></ul>"
    )
    return send_email(user_email, "Welcome to the Competitor Intelligence Dashboard", text, html)


def send_temporary_password_email(user_email: str, user_name: str, temporary_password: str) -> bool:
    reset_url = f"{FRONTEND_URL.rstrip('/')}/reset-password"
    text = (
        f"Hi {user_name}, an administrator has created an account for you. "
        f"Email: {user_email}, Temporary Password: {temporary_password}. "
        f"Please visit {reset_url} to set a new password."
    )
    html = (
        f"<p>Hi {user_name},</p>"
        "<p>An administrator has created an account for you.</p>"
        f"<p><strong>Email:</strong> {user_email}<br>"
        f"<strong>Temporary Password:</strong> <code>{temporary_password}</code></p>"
        "<p>For security reasons, please change your password immediately after logging in.</p>"
        f'<p><a href="{reset_url}">Set New Password</a></p>'
    )
    return send_email(user_email, "Your Account Has Been Created - Set Your Password", text, html)
