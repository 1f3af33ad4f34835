"""SMTP email channel.

Builds a multipart message (plain text plus HTML alternative) with
:class:`email.message.EmailMessage` and sends it through :mod:`smtplib`.
The blocking SMTP conversation runs in a worker thread via
:func:`asyncio.to_thread` so the event loop never stalls on a slow relay.

Port 465 (or ``use_ssl=True``) uses implicit TLS; any other port upgrades
with STARTTLS.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Final

from autotee.core.exceptions import EmailError
from autotee.notifiers.base import NotificationChannel
from autotee.notifiers.formatter import Message

__all__ = ["EmailChannel"]

logger = logging.getLogger(__name__)

#: Default SMTP socket timeout in seconds.
_DEFAULT_TIMEOUT: Final[float] = 30.0

_IMPLICIT_TLS_PORT: Final[int] = 465


class EmailChannel(NotificationChannel):
    """Deliver notifications by email.

    Args:
        host: SMTP server host name.
        port: SMTP server port.
        username: Login user; also used as the sender when *sender* is unset.
        password: Login password (an app password for Gmail).
        recipient: Destination address.
        sender: ``From`` address.  Defaults to *username*.
        use_ssl: Force implicit TLS.  Defaults to ``port == 465``.
        timeout: Socket timeout in seconds.

    Raises:
        ValueError: If host, username, password or recipient is empty.
    """

    name = "email"

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        recipient: str,
        sender: str = "",
        use_ssl: bool | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        if not (host and username and password and recipient):
            raise ValueError("EmailChannel requires host, username, password and recipient.")
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._recipient = recipient
        self._sender = sender or username
        self._use_ssl = port == _IMPLICIT_TLS_PORT if use_ssl is None else use_ssl
        self._timeout = timeout

    def build_message(self, message: Message) -> EmailMessage:
        mail = EmailMessage()
        mail["Subject"] = message.subject
        mail["From"] = self._sender
        mail["To"] = self._recipient
        mail.set_content(message.text)
        mail.add_alternative(message.html, subtype="html")
        return mail

    async def deliver(self, message: Message) -> None:
        mail = self.build_message(message)
        await asyncio.to_thread(self._send_blocking, mail)
        logger.debug("Email sent to %s: %s", self._recipient, message.subject)

    def _send_blocking(self, mail: EmailMessage) -> None:
        context = ssl.create_default_context()
        try:
            if self._use_ssl:
                with smtplib.SMTP_SSL(
                    self._host, self._port, timeout=self._timeout, context=context
                ) as smtp:
                    smtp.login(self._username, self._password)
                    smtp.send_message(mail)
            else:
                with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                    smtp.starttls(context=context)
                    smtp.login(self._username, self._password)
                    smtp.send_message(mail)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailError(f"SMTP delivery via {self._host}:{self._port} failed: {exc}") from exc
