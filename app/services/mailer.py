# app/services/mailer.py

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

import httpx

from app.config import Settings
from app.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReceipt:
    transport: str
    message_id: str | None = None


class NotificationTransport(Protocol):
    """Anything that can deliver one email. One attempt per call, no retries."""

    kind: str

    async def send_notification(self, recipient: str, subject: str, body: str) -> DeliveryReceipt: ...

    async def aclose(self) -> None: ...


class ResendTransport:
    """
    Client for a Resend-compatible transactional email API.

      POST {api_url}
      Authorization: Bearer <api key>
      { "from": "...", "to": ["..."], "subject": "...", "html": "..." }

    A 2xx answer carries {"id": "..."}; anything else, or a network error or
    timeout, becomes TransportError.
    """

    kind = "resend"

    def __init__(
        self,
        api_key: str,
        sender: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.api_url = api_url
        self.sender = sender
        self.timeout = timeout
        self._api_key = api_key
        self._http = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def send_notification(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        payload = {"from": self.sender, "to": [recipient], "subject": subject, "html": body}
        try:
            # httpx times each phase separately; bound the whole exchange
            r = await asyncio.wait_for(
                self._http.post(self.api_url, json=payload, headers=self._headers()), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransportError(f"timeout after {self.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        if not r.is_success:
            raise TransportError(f"{r.status_code}: {_upstream_message(r)}")

        try:
            data = r.json()
        except ValueError:
            data = {}
        message_id = data.get("id") if isinstance(data, dict) else None
        return DeliveryReceipt(transport=self.kind, message_id=message_id)

    async def aclose(self) -> None:
        await self._http.aclose()


def _upstream_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return r.text.strip() or r.reason_phrase
    if isinstance(data, dict):
        msg = data.get("message") or data.get("error") or data.get("name")
        if msg:
            return str(msg)
    return r.text.strip() or r.reason_phrase


class SmtpTransport:
    """Plain SMTP relay. smtplib is blocking, so each send runs in a worker thread."""

    kind = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        starttls: bool = True,
        timeout: float = 15.0,
    ) -> None:
        if not host:
            raise ValueError("host is required")
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self._password = password
        self.starttls = starttls
        self.timeout = timeout

    def build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(body, subtype="html")
        return msg

    def _send_blocking(self, msg: EmailMessage) -> None:
        smtp_cls = smtplib.SMTP_SSL if self.port == 465 else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=self.timeout) as s:
            if self.starttls and smtp_cls is smtplib.SMTP:
                s.starttls()
            if self.username:
                s.login(self.username, self._password)
            s.send_message(msg)

    async def send_notification(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        msg = self.build_message(recipient, subject, body)
        try:
            await asyncio.wait_for(asyncio.to_thread(self._send_blocking, msg), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"timeout after {self.timeout:g}s") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        return DeliveryReceipt(transport=self.kind, message_id=msg["Message-ID"])

    async def aclose(self) -> None:
        return None


def build_transport(settings: Settings) -> NotificationTransport | None:
    """Pick the configured transport; None when nothing usable is configured."""
    choice = settings.email_transport
    if not choice:
        choice = "resend" if settings.resend_api_key else ("smtp" if settings.smtp_host else "")

    if choice == "resend":
        if not settings.resend_api_key:
            logger.warning("[BOOT] EMAIL_TRANSPORT=resend but RESEND_API_KEY is not set")
            return None
        return ResendTransport(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            api_url=settings.resend_api_url,
            timeout=settings.send_timeout_seconds,
        )

    if choice == "smtp":
        if not settings.smtp_host:
            logger.warning("[BOOT] EMAIL_TRANSPORT=smtp but SMTP_HOST is not set")
            return None
        return SmtpTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            username=settings.smtp_user,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.send_timeout_seconds,
        )

    if choice:
        logger.warning(f"[BOOT] unknown EMAIL_TRANSPORT={choice!r}")
    return None
