"""
Outbound email over SMTP. Delivery is best-effort: failures are logged and
reported as False, never raised, so login keeps working without a mail server.
"""
import logging
import smtplib
from email.mime.text import MIMEText

from config import settings

logger = logging.getLogger(__name__)


def send_email(to: str, subject: str, body: str) -> bool:
    if not settings.SMTP_HOST:
        logger.warning(f"SMTP_HOST not configured; email to {to} not sent ({subject})")
        return False

    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM
    msg["To"] = to

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=10) as server:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.send_message(msg)
        logger.info("Email sent to %s: %s", to, subject)
        return True
    except Exception:
        logger.exception("Failed to send email to %s", to)
        return False


def send_otp_email(to: str, otp: str) -> bool:
    minutes = max(1, settings.OTP_EXPIRY_SECONDS // 60)
    body = (
        f"Your Bond CRM login code is {otp}.\n\n"
        f"It expires in {minutes} minutes. If you did not request it, ignore this email."
    )
    sent = send_email(to, "Your Bond CRM login code", body)
    if not sent and not settings.is_production:
        # Lets the flow be exercised locally without a mail server
        logger.info(f"OTP for {to}: {otp}")
    return sent
