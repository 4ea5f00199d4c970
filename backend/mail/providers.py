"""Email provider implementations used by the application."""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Dict, Optional, Sequence

from .config import EmailConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class EmailProvider:
    """Base provider for outbound email delivery."""

    name = "base"

    def __init__(self, *, from_email: str) -> None:
        self.from_email = from_email

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"email_provider": self.name, "email_sender": self.from_email}


class DevPrintProvider(EmailProvider):
    """Development provider that logs messages instead of sending them."""

    name = "dev"

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:  # pragma: no cover - trivial logging
        logger.info(
            "Dev email dispatch",
            extra={
                "email_recipient": to,
                "email_subject": subject,
                "email_sender": self.from_email,
                "email_attachments": [attachment.filename for attachment in attachments],
            },
        )


class SMTPProvider(EmailProvider):
    """Simple SMTP-based provider for production use."""

    name = "smtp"

    def __init__(
        self,
        *,
        from_email: str,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
    ) -> None:
        super().__init__(from_email=from_email)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def _build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> str:
        alternative = MIMEMultipart("alternative")
        alternative.attach(MIMEText(text_body, "plain", "utf-8"))
        alternative.attach(MIMEText(html_body, "html", "utf-8"))

        if attachments:
            message = MIMEMultipart("mixed")
            message.attach(alternative)
            for attachment in attachments:
                subtype = attachment.content_type.split("/", 1)[-1]
                part = MIMEApplication(attachment.content, _subtype=subtype)
                part.replace_header("Content-Type", attachment.content_type)
                part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
                message.attach(part)
        else:
            message = alternative

        message["From"] = self.from_email
        message["To"] = to
        message["Subject"] = subject
        return message.as_string()

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:
        payload = self._build_message(to, subject, html_body, text_body, attachments)
        with smtplib.SMTP(self.host, self.port, timeout=30) as client:
            if self.use_tls:
                client.starttls()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.sendmail(self.from_email, [to], payload)


def create_email_provider(config: EmailConfig) -> EmailProvider:
    if config.provider_name == "smtp":
        smtp = config.smtp
        return SMTPProvider(
            from_email=config.from_email,
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            use_tls=smtp.use_tls,
        )
    return DevPrintProvider(from_email=config.from_email)


__all__ = [
    "DevPrintProvider",
    "EmailAttachment",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
]
