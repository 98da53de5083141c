"""
services/mail_service.py — Email verification codes.

Flow:
  1. send_auth_code(email): generate a 6-character code, mail it, and store
     it in Redis under EMAIL_AUTH:<email> for EMAIL_AUTH_CODE_EXPIRES.
  2. verify_auth_code(email, code): compare with the stored code; on a match
     mark the member verified and delete the code.

Tokens issued before verification keep `verified=false` until the member logs
in again; the flag is a snapshot taken at issuance.
"""

from __future__ import annotations

import logging
import secrets
import smtplib
import ssl
import string
from datetime import timedelta
from email.mime.text import MIMEText

from sqlalchemy.orm import Session

from tripfriend.services import member_service

logger = logging.getLogger(__name__)

EMAIL_AUTH_PREFIX = "EMAIL_AUTH:"
CODE_LENGTH = 6
_CODE_ALPHABET = string.ascii_uppercase + string.digits


class MailSender:
    """
    SMTP delivery. Without a server configured, mails are logged instead of
    sent (dev mode); the code itself is never logged.
    """

    def __init__(
            self,
            server: str | None = None,
            port: int = 587,
            username: str | None = None,
            password: str | None = None,
            use_tls: bool = True,
            sender: str | None = None,
    ) -> None:
        self.server   = server
        self.port     = port
        self.username = username
        self.password = password
        self.use_tls  = use_tls
        self.sender   = sender or username

    @classmethod
    def from_config(cls, config) -> "MailSender":
        return cls(
            server=config.get("MAIL_SERVER"),
            port=config.get("MAIL_PORT", 587),
            username=config.get("MAIL_USERNAME"),
            password=config.get("MAIL_PASSWORD"),
            use_tls=config.get("MAIL_USE_TLS", True),
            sender=config.get("MAIL_SENDER"),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.server and self.sender)

    def send(self, to_email: str, subject: str, html_body: str) -> bool:
        """Returns True if the mail was handed to the SMTP server (or logged in dev mode)."""
        if not self.is_configured:
            logger.info("Mail delivery not configured; skipping send of %r to %s", subject, _redact(to_email))
            return True

        message = MIMEText(html_body, "html", "utf-8")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = to_email

        try:
            with smtplib.SMTP(self.server, self.port, timeout=10) as smtp:
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.sendmail(self.sender, [to_email], message.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send %r to %s: %s", subject, _redact(to_email), exc)
            return False
        return True


def _redact(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def create_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _render_body(code: str) -> str:
    return (
        "<h3>Here is your verification code.</h3>"
        f"<h1>{code}</h1>"
        "<h3>Thank you.</h3>"
    )


def send_auth_code(
        email: str,
        client,
        sender: MailSender,
        ttl: timedelta = timedelta(seconds=300),
) -> bool:
    """
    Mails a fresh code and stores it. A previous unexpired code for the same
    address is replaced.

    Returns False (and stores nothing) if delivery failed.
    """
    code = create_code()
    if not sender.send(email, "Email verification", _render_body(code)):
        return False

    client.set(EMAIL_AUTH_PREFIX + email, code, ex=int(ttl.total_seconds()))
    return True


def verify_auth_code(
        email: str,
        code: str,
        client,
        session: Session,
) -> bool:
    """
    Returns True when `code` matches the stored code for `email`.

    On success the member with that email (if any) is marked verified and the
    code is deleted so it cannot be replayed.
    """
    key = EMAIL_AUTH_PREFIX + email
    stored = client.get(key)
    if stored is None or not secrets.compare_digest(stored.encode("utf-8"), code.encode("utf-8")):
        return False

    member = member_service.find_by_email(email, session)
    if member is not None:
        member.verified = True
        session.flush()
        logger.info("Verified email for member %s", member.username)

    client.delete(key)
    return True
