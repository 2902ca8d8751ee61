# core/mail_dispatcher.py
"""
Mail Dispatcher for Callback Notifications
Sends rendered notifications through the configured SMTP relay with:
- One connection per delivery, so concurrent requests never share client state
- A bounded timeout around connect, login and send; QUIT is bounded separately
- An optional single retry for transient failures
"""

import asyncio
import logging
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Optional

import aiosmtplib

from config.delivery import DeliveryConfig
from core.exceptions import DispatchError

logger = logging.getLogger(__name__)

# Connection-level failures that are worth one more attempt
TRANSIENT_ERRORS = (
    aiosmtplib.SMTPConnectError,
    aiosmtplib.SMTPServerDisconnected,
    aiosmtplib.SMTPTimeoutError,
)


def _is_transient_code(code: Optional[int]) -> bool:
    """4xx SMTP replies are temporary failures (RFC 5321 section 4.2.1)"""
    return code is not None and 400 <= code < 500


class MailDispatcher:
    """Wraps the SMTP relay client configured from DeliveryConfig"""

    def __init__(self, config: DeliveryConfig):
        self.config = config

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.config.host,
            port=self.config.port,
            timeout=self.config.timeout,
            use_tls=self.config.secure,
            # Implicit TLS and STARTTLS are exclusive; None upgrades when offered
            start_tls=False if self.config.secure else None,
        )

    def build_message(self, subject: str, html: str, text: Optional[str] = None,
                      recipient: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((self.config.sender_name, self.config.sender))
        msg['To'] = recipient or self.config.receiver
        msg['Date'] = formatdate(localtime=True)
        domain = self.config.sender.rpartition('@')[2] or 'localhost'
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"

        if text:
            msg.attach(MIMEText(text, 'plain', 'utf-8'))
        msg.attach(MIMEText(html, 'html', 'utf-8'))
        return msg

    async def _quit(self, smtp: aiosmtplib.SMTP) -> None:
        # The message is already accepted at this point; QUIT failures only get logged
        try:
            await asyncio.wait_for(smtp.quit(), timeout=self.config.timeout)
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            smtp.close()
            logger.debug(f"SMTP quit failed: {str(e) or type(e).__name__}")

    async def _connect(self) -> aiosmtplib.SMTP:
        smtp = self._client()
        await smtp.connect()
        try:
            if self.config.username and self.config.password:
                await smtp.login(self.config.username, self.config.password)
        except BaseException:
            smtp.close()
            raise
        return smtp

    async def _async_send(self, msg: MIMEMultipart) -> aiosmtplib.SMTP:
        smtp = await self._connect()
        try:
            await smtp.send_message(msg)
        except BaseException:
            smtp.close()
            raise
        return smtp

    async def _send_and_quit(self, msg: MIMEMultipart) -> None:
        # Only connect, login and DATA count against the delivery timeout
        smtp = await asyncio.wait_for(self._async_send(msg), timeout=self.config.timeout)
        await self._quit(smtp)

    def _send_once(self, msg: MIMEMultipart) -> None:
        """Run one bounded SMTP exchange, mapping every failure to DispatchError"""
        try:
            asyncio.run(self._send_and_quit(msg))
        except aiosmtplib.SMTPResponseException as e:
            raise DispatchError(f"SMTP relay rejected message: {e.code} {e.message}",
                                code=e.code, transient=_is_transient_code(e.code)) from e
        except TRANSIENT_ERRORS as e:
            raise DispatchError(f"SMTP relay unavailable: {str(e)}", transient=True) from e
        except asyncio.TimeoutError as e:
            raise DispatchError(f"SMTP delivery timed out after {self.config.timeout}s",
                                transient=True) from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise DispatchError(f"SMTP delivery failed: {str(e)}") from e

    def deliver(self, subject: str, html: str, text: Optional[str] = None,
                recipient: Optional[str] = None) -> None:
        """
        Send one notification

        Args:
            subject: Subject line
            html: HTML body
            text: Optional plain text alternative
            recipient: Overrides the configured receiver

        Raises:
            DispatchError: when the relay rejects the message, cannot be reached,
                           or the exchange exceeds the configured timeout
        """
        msg = self.build_message(subject, html, text, recipient)
        attempts = 2 if self.config.retry_once else 1

        for attempt in range(1, attempts + 1):
            try:
                self._send_once(msg)
            except DispatchError as e:
                if attempt < attempts and e.transient:
                    logger.warning(f"Delivery to {msg['To']} failed, retrying once: {str(e)}")
                    continue
                raise

            logger.info(f"Notification delivered to {msg['To']}: {subject}")
            return

    async def _async_verify(self) -> None:
        smtp = await self._connect()
        await self._quit(smtp)

    def verify(self) -> bool:
        """
        Startup connectivity probe; advisory only

        Returns:
            True when the relay accepted a connection (and login, if configured)
        """
        try:
            asyncio.run(asyncio.wait_for(self._async_verify(), timeout=self.config.timeout))
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.warning(f"Mail transporter not ready: {str(e) or type(e).__name__}")
            return False

        logger.info("Mail transporter ready")
        return True
