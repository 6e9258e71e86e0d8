"""SMTP delivery of password reset links."""

from __future__ import annotations

import hashlib
import logging
from email.message import EmailMessage

import aiosmtplib

from nexus.domain.common.errors import CollaboratorUnavailable
from nexus.settings import Settings

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Reset your Skill Nexus password"

RESET_BODY = """\
<p>Hello,</p>
<p>Someone asked to reset the password of your Skill Nexus account.
The link below stays valid for {ttl} minutes and works once:</p>
<p><a href="{link}">Choose a new password</a></p>
<p>If this was not you, you can ignore this message.</p>
"""


def mask_email(email: str) -> str:
    """Stable short digest used in place of the address in log lines."""
    return hashlib.sha256(email.lower().encode("utf-8")).hexdigest()[:12]


class Mailer:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _tls_mode(self) -> dict:
        if not self._settings.smtp_tls:
            return {"use_tls": False, "start_tls": False}
        # 465 speaks TLS from the first byte; anything else upgrades with STARTTLS.
        implicit = int(self._settings.smtp_port) == 465
        return {"use_tls": implicit, "start_tls": not implicit}

    async def _send(self, to_email: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self._settings.smtp_from_email
        message["To"] = to_email
        message["Subject"] = subject
        message.set_content(html, subtype="html")
        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.smtp_host,
                port=self._settings.smtp_port,
                username=self._settings.smtp_user,
                password=self._settings.smtp_password,
                **self._tls_mode(),
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.warning("mail delivery failed", extra={"recipient": mask_email(to_email)}, exc_info=True)
            raise CollaboratorUnavailable("mailer_unavailable") from exc
        logger.info("mail delivered", extra={"recipient": mask_email(to_email), "subject": subject})

    async def send_password_reset(self, email: str, link: str) -> None:
        body = RESET_BODY.format(link=link, ttl=self._settings.password_reset_ttl_minutes)
        await self._send(email, RESET_SUBJECT, body)
