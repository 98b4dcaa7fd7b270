"""Mail submission client: one message per connection, explicit dialog steps"""

import base64
import logging
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Iterable

import aiosmtplib

from donation_gateway.config import settings
from donation_gateway.domain.exceptions import MailProtocolError, MailTransportError


@dataclass(frozen=True)
class ConnectionParams:
    host: str
    port: int
    username: str
    password: str
    timeout: float = 15.0
    implicit_tls_port: int = 465

    @property
    def use_tls(self) -> bool:
        return self.port == self.implicit_tls_port


def connection_params_from_settings() -> ConnectionParams:
    return ConnectionParams(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        timeout=settings.smtp_timeout_seconds,
        implicit_tls_port=settings.smtp_implicit_tls_port,
    )


def encode_subject(subject: str) -> str:
    """RFC 2047 encoded-word: =?UTF-8?B?...?="""
    return "=?UTF-8?B?" + base64.b64encode(subject.encode("utf-8")).decode("ascii") + "?="


def compose_message(sender_name: str, sender_address: str, to: str, subject: str, html_body: str) -> str:
    """
    Build the DATA payload.

    The body is sent as Content-Transfer-Encoding: base64, so no line of it
    can start with '.' and non-ASCII text survives any relay.
    """
    msg = MIMEText(html_body, "html", "utf-8")
    msg["From"] = formataddr((sender_name, sender_address), charset="utf-8")
    msg["To"] = to
    msg["Subject"] = encode_subject(subject)
    msg["Date"] = formatdate(usegmt=True)
    msg["Message-ID"] = make_msgid(domain=sender_address.rpartition("@")[2] or None)
    return msg.as_string()


def _b64(value: str) -> bytes:
    return base64.b64encode(value.encode("utf-8"))


def _expect(step: str, response: aiosmtplib.SMTPResponse, codes: Iterable[int]) -> None:
    if response.code not in codes:
        raise MailProtocolError(step, response.code, response.message)


class MailTransferClient:
    """
    Delivers one formatted message per call.

    Dialog (strictly linear, no recovery):
        connect/greeting -> EHLO -> AUTH LOGIN -> username -> password (235)
        -> MAIL FROM -> RCPT TO (250) -> DATA -> message -> QUIT
    Implicit TLS when the port is the implicit-TLS port, plaintext otherwise;
    STARTTLS is never attempted. Every read is bounded by the timeout.
    """

    def __init__(self, params: ConnectionParams | None = None):
        self.params = params or connection_params_from_settings()

    def _connection(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.params.host,
            port=self.params.port,
            use_tls=self.params.use_tls,
            start_tls=False,
            timeout=self.params.timeout,
        )

    async def send(self, sender_name: str, sender_address: str, to: str, subject: str, html_body: str) -> None:
        """
        Raises:
            MailProtocolError: server replied with an unexpected code
            MailTransportError: connect, TLS, disconnect or timeout failure
        """
        message = compose_message(sender_name, sender_address, to, subject, html_body)
        smtp = self._connection()
        step = "CONNECT"
        try:
            await smtp.connect()

            step = "EHLO"
            await smtp.ehlo()

            step = "AUTH LOGIN"
            _expect(step, await smtp.execute_command(b"AUTH", b"LOGIN"), (334,))
            step = "AUTH USERNAME"
            _expect(step, await smtp.execute_command(_b64(self.params.username)), (334,))
            step = "AUTH PASSWORD"
            _expect(step, await smtp.execute_command(_b64(self.params.password)), (235,))

            step = "MAIL FROM"
            _expect(step, await smtp.execute_command(f"MAIL FROM:<{sender_address}>".encode("utf-8")), (250,))
            step = "RCPT TO"
            _expect(step, await smtp.execute_command(f"RCPT TO:<{to}>".encode("utf-8")), (250,))

            step = "DATA"
            await smtp.data(message)

            step = "QUIT"
            try:
                await smtp.quit()
            except aiosmtplib.SMTPException as e:
                # Message was already accepted; a failed goodbye does not undo that
                logging.warning(f"Mail server QUIT failed after delivery: {e}", extra={"to": to})

            logging.info("Mail accepted by server", extra={"to": to, "host": self.params.host})
        except aiosmtplib.SMTPResponseException as e:
            raise MailProtocolError(step, e.code, e.message) from e
        except (aiosmtplib.SMTPException, OSError) as e:
            raise MailTransportError(f"{step} failed: {e}") from e
        finally:
            smtp.close()
