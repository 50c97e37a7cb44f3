"""
PURPOSE: Signal email delivery over SMTP.

Renders a small HTML + plain-text email for each received signal and hands
it to the configured SMTP server with aiosmtplib. Port 465 uses implicit
TLS, port 587 uses STARTTLS.

CALLED BY:
    - webhook/processor.py (email task of background processing)
"""

from email.message import EmailMessage
from email.utils import make_msgid
from html import escape
from typing import Any, Optional

import aiosmtplib

from tradehook.config.settings import settings
from tradehook.core.errors import EmailDeliveryError
from tradehook.utils.logger import get_logger
from tradehook.utils.payload import normalize_string

logger = get_logger("notifications.email")

SIGNAL_SUBJECT = "New trading signal"

_LAYOUT = """<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{title}</title>
  </head>
  <body style="margin:0;padding:0;background:#f6f4ef;font-family:Arial,sans-serif;color:#14161d;">
    <span style="display:none;">{preheader}</span>
    <div style="max-width:640px;margin:0 auto;padding:24px;">
      <div style="background:#ffffff;border-radius:16px;padding:24px;border:1px solid #ece3d6;">
        {body}
      </div>
      <div style="margin-top:18px;font-size:12px;color:#7b8796;">Market Maya Alerts</div>
    </div>
  </body>
</html>
"""


def render_signal_email(
    name: Any,
    strategy_name: Any,
    alert_name: Any,
    scan_name: Any,
    stocks: Any,
    received_at: Any,
) -> str:
    """Render the HTML body of a signal email; every field is coerced to text and escaped."""
    safe_strategy = escape(normalize_string(strategy_name) or "Strategy")
    safe_alert = escape(normalize_string(alert_name) or "Signal")
    body = (
        "<h1>New signal received</h1>"
        f"<p>Hi {escape(normalize_string(name) or 'Trader')},</p>"
        "<p>A new signal arrived for your strategy.</p>"
        f"<p><strong>Strategy:</strong> {safe_strategy}</p>"
        f"<p><strong>Alert:</strong> {safe_alert}</p>"
        f"<p><strong>Scan:</strong> {escape(normalize_string(scan_name) or 'Chartink')}</p>"
        f"<p><strong>Stocks:</strong> {escape(normalize_string(stocks) or '-')}</p>"
        f"<p><strong>Time:</strong> {escape(normalize_string(received_at))}</p>"
    )
    return _LAYOUT.format(
        title=escape(SIGNAL_SUBJECT),
        preheader=f"{safe_alert} · {safe_strategy}",
        body=body,
    )


class EmailSender:
    """
    PURPOSE: Send emails through the configured SMTP server.

    Attributes:
        host, port, user, password: SMTP connection settings.
        from_email: Sender address; falls back to the SMTP user.
    """

    TIMEOUT = 10  # seconds

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        from_email: Optional[str] = None,
    ) -> None:
        self.host = (host if host is not None else settings.SMTP_HOST).strip()
        self.port = port if port is not None else settings.SMTP_PORT
        self.user = (user if user is not None else settings.SMTP_USER).strip()
        self.password = (password if password is not None else settings.SMTP_PASS).strip()
        self.from_email = (from_email if from_email is not None else settings.SMTP_FROM).strip() or self.user

    @property
    def configured(self) -> bool:
        return bool(self.host and self.user and self.password and self.port and self.port > 0)

    async def send(self, to: str, subject: str, html: str, text: str) -> str:
        """
        PURPOSE: Deliver one multipart email.

        Returns:
            str: Message-ID of the sent email.

        Raises:
            EmailDeliveryError: On missing configuration or any SMTP failure.
        """
        if not to:
            raise EmailDeliveryError("Recipient is required")
        if not self.configured:
            raise EmailDeliveryError("SMTP config is missing")
        if not self.from_email:
            raise EmailDeliveryError("SMTP_FROM is not configured")

        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text)
        message.add_alternative(html, subtype="html")

        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                timeout=self.TIMEOUT,
                use_tls=self.port == 465,
                start_tls=self.port == 587,
            ) as smtp:
                await smtp.login(self.user, self.password)
                await smtp.send_message(message)
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("email_smtp_failed", error=str(e))
            raise EmailDeliveryError(str(e) or "SMTP send failed") from e

        logger.info("email_sent", message_id=message["Message-ID"])
        return message["Message-ID"]

    async def send_signal_email(
        self,
        to: str,
        name: Optional[str],
        strategy_name: str,
        alert_name: Optional[str],
        scan_name: Optional[str],
        stocks: Optional[str],
        received_at: str,
    ) -> str:
        """Send the "new trading signal" email for one webhook event."""
        html = render_signal_email(name, strategy_name, alert_name, scan_name, stocks, received_at)
        text = (
            f"New signal: {alert_name}\nStrategy: {strategy_name}\nScan: {scan_name}\n"
            f"Stocks: {stocks}\nTime: {received_at}"
        )
        return await self.send(to, SIGNAL_SUBJECT, html, text)
