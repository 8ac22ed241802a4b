"""
auth/notifications.py -- Verification mail and fire-and-forget dispatch.

Signup must not fail because the mail server is down. The auth service hands
the send coroutine to dispatch_in_background(), which schedules it as a
detached task and only ever looks at its result to log a failure. Nothing
awaits it, retries it, or cancels it.

SmtpNotifier sends plain-text mail with smtplib on a worker thread. Template
rendering is out of scope: subject and body come from the message catalog.
When SMTP is not configured the send is logged and skipped.

Layer rule: no imports from api/ or orgs/.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Coroutine, Protocol

from auth.models import Identity
from core.config import Settings
from core.messages import MessageResolver

logger = logging.getLogger("orgwarden.notifications")

VERIFY_SUBJECT = "Verify your email"
VERIFY_BODY = (
    "Hello {{fullName}},\n\nWelcome to {{platformName}}. Please confirm {{email}} by opening the link below:"
    "\n\n{{verifyLink}}\n\n{{platformURL}}"
)

# Strong references to in-flight tasks; the event loop only keeps weak ones.
_background_tasks: set[asyncio.Task] = set()


class Notifier(Protocol):
    async def send_verification(self, identity: Identity, verify_link: str, locale: str) -> None: ...


def dispatch_in_background(coro: Coroutine, description: str) -> asyncio.Task:
    """Schedule coro without awaiting it; log (and absorb) any failure."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error("%s failed: %s", description, exc)

    task.add_done_callback(_done)
    return task


class SmtpNotifier:
    """Notifier backed by an SMTP server from Settings."""

    def __init__(self, settings: Settings, messages: MessageResolver) -> None:
        self.settings = settings
        self.messages = messages

    @property
    def configured(self) -> bool:
        s = self.settings
        return bool(s.smtp_host and s.smtp_from and s.smtp_port)

    async def send_verification(self, identity: Identity, verify_link: str, locale: str) -> None:
        args = {
            "fullName": identity.full_name or identity.email,
            "email": identity.email,
            "verifyLink": verify_link,
            "platformURL": self.settings.platform_url,
            "platformName": self.settings.platform_name,
        }
        subject = self.messages.resolve(VERIFY_SUBJECT, locale)
        body = self.messages.resolve(VERIFY_BODY, locale, args)
        if not self.configured:
            logger.info("SMTP not configured; skipping verification mail to %s", identity.email)
            return
        await asyncio.to_thread(self._send, identity.email, subject, body)
        logger.info("Verification mail sent to %s", identity.email)

    def _send(self, to_email: str, subject: str, body: str) -> None:
        s = self.settings
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = s.smtp_from
        msg["To"] = to_email
        context = ssl.create_default_context()
        if s.smtp_port == 465:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context) as server:
                if s.smtp_user:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [to_email], msg.as_string())
        else:
            with smtplib.SMTP(s.smtp_host, s.smtp_port) as server:
                server.ehlo()
                server.starttls(context=context)
                if s.smtp_user:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [to_email], msg.as_string())
