"""
Outbound account emails (verification / password reset / unlock).

``EmailService`` is the contract the HTTP layer depends on;
``SmtpEmailService`` delivers through ``aiosmtplib``.  Every delivery
failure surfaces as ``EmailDeliveryError`` carrying the provider's
diagnostic text.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from email.message import EmailMessage
from string import Template
from typing import Protocol
from urllib.parse import urlencode

import aiosmtplib

from bulletin.core.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    def __init__(self, diagnostic: str) -> None:
        super().__init__(diagnostic)
        self.diagnostic = diagnostic


class EmailService(Protocol):
    async def send_verification_email(self, to: str, url: str) -> None: ...

    async def send_password_reset_email(self, to: str, url: str) -> None: ...

    async def send_unlock_account_email(self, to: str, url: str) -> None: ...


def token_url(base: str, email: str, token: str) -> str:
    """Append the query string to a configured frontend URL ending in ``?``."""
    return f"{base}{urlencode({'email': email, 'token': token})}"


_LAYOUT = Template(
    """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>$title</title>
  <style>
    body { font-family: Arial, sans-serif; background: #f7f7f7; margin: 0; }
    .container { max-width: 480px; background: #fff; margin: 30px auto; border-radius: 8px; }
    .header { background: #1976d2; color: #fff; padding: 24px; text-align: center; }
    .content { padding: 32px; text-align: center; }
    .btn { display: inline-block; background: #1976d2; color: #fff; padding: 14px 32px;
           border-radius: 5px; text-decoration: none; font-weight: bold; margin-top: 18px; }
    .footer { font-size: 12px; color: #888; text-align: center; padding: 16px; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h2>$title</h2></div>
    <div class="content">
      <p>Hi, $email</p>
      <p>$intro</p>
      <a href="$url" class="btn">$button</a>
      <p style="margin-top:32px;font-size:14px;color:#999;">$ignore</p>
    </div>
    <div class="footer">&copy; $year $project. All rights reserved.</div>
  </div>
</body>
</html>
"""
)

_VERIFICATION = {
    "subject": "Verify your account",
    "title": "Verify your account",
    "intro": "Thank you for registering! Please confirm your email address to complete your registration:",
    "button": "Verify Email",
    "ignore": "If you did not request this, you can safely ignore this email.",
}

_PASSWORD_RESET = {
    "subject": "Reset your password",
    "title": "Password Reset",
    "intro": "You requested to reset your password. Click the button below to set a new password:",
    "button": "Reset Password",
    "ignore": "If you did not request a password reset, you can ignore this email.",
}

_UNLOCK = {
    "subject": "Unlock your account",
    "title": "Unlock Account",
    "intro": "You requested to unlock your account. Click the button below to enable your account again:",
    "button": "Unlock Account",
    "ignore": "If you did not request an activation of your account, you can ignore this email.",
}


def render(template: dict[str, str], to: str, url: str) -> str:
    return _LAYOUT.substitute(
        title=template["title"],
        intro=template["intro"],
        button=template["button"],
        ignore=template["ignore"],
        email=html.escape(to),
        url=html.escape(url, quote=True),
        year=datetime.now(timezone.utc).year,
        project=html.escape(settings.PROJECT_NAME),
    )


class SmtpEmailService:
    def __init__(
        self,
        host: str = settings.MAILER_HOST,
        port: int = settings.MAILER_PORT,
        username: str = settings.MAILER_USERNAME,
        password: str = settings.MAILER_PASSWORD,
        timeout: float = settings.MAILER_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    async def send_verification_email(self, to: str, url: str) -> None:
        await self._send(to, _VERIFICATION, url)

    async def send_password_reset_email(self, to: str, url: str) -> None:
        await self._send(to, _PASSWORD_RESET, url)

    async def send_unlock_account_email(self, to: str, url: str) -> None:
        await self._send(to, _UNLOCK, url)

    async def _send(self, to: str, template: dict[str, str], url: str) -> None:
        message = EmailMessage()
        message["From"] = f'"Support" <{self.username}>'
        message["To"] = to
        message["Subject"] = template["subject"]
        message.set_content(f"{template['intro']}\n\n{url}\n")
        message.add_alternative(render(template, to, url), subtype="html")

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=self.port == 465,
                start_tls=True if self.port == 587 else None,
                timeout=self.timeout,
            )
        except aiosmtplib.SMTPResponseException as exc:
            logger.error("SMTP rejected mail to %s: %s %s", to, exc.code, exc.message)
            raise EmailDeliveryError(exc.message or "Unknown SMTP error") from exc
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s failed: %s", to, exc)
            raise EmailDeliveryError(str(exc) or "Unknown SMTP error") from exc
        logger.info("Sent '%s' email to %s", template["subject"], to)
