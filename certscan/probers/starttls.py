"""SMTP STARTTLS upgrader: plaintext negotiation, then a TLS 1.2 hello on the same socket."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from certscan.errors import (
    HandshakeError,
    NoCertificatesError,
    ProtocolError,
    UnsupportedError,
)
from certscan.models.result import ProbeOutcome, ScanResult
from certscan.utils.net import close_quietly, open_tcp
from certscan.utils.tls_hello import fetch_certificate_chain

logger = logging.getLogger(__name__)

EHLO_COMMAND = b"EHLO certscan\r\n"
STARTTLS_COMMAND = b"STARTTLS\r\n"

# SMTP lines are at most 512 octets (RFC 5321); leave room for sloppy servers.
MAX_LINE_LENGTH = 4096
MAX_EHLO_LINES = 100


class SmtpState(StrEnum):
    CONNECTED = "connected"
    GREETING_READ = "greeting_read"
    EHLO_SENT = "ehlo_sent"
    EHLO_MULTILINE_READ = "ehlo_multiline_read"
    CAPABILITY_CHECKED = "capability_checked"
    STARTTLS_SENT = "starttls_sent"
    STARTTLS_ACCEPTED = "starttls_accepted"
    TLS_HANDSHAKING = "tls_handshaking"
    DONE = "done"


class _SmtpSession:
    """One plaintext SMTP conversation; tracks its own state for logging."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        peer: str,
        timeout: float,
    ):
        self.reader = reader
        self.writer = writer
        self.peer = peer
        self.timeout = timeout
        self.state = SmtpState.CONNECTED

    def advance(self, state: SmtpState) -> None:
        logger.debug("SMTP %s: %s -> %s", self.peer, self.state, state)
        self.state = state

    async def read_line(self) -> str:
        try:
            raw = await asyncio.wait_for(self.reader.readline(), timeout=self.timeout)
        except TimeoutError as e:
            msg = f"{self.peer}: timed out reading reply in state {self.state}"
            raise ProtocolError(msg) from e
        except (ValueError, OSError) as e:
            # ValueError: line exceeded the stream limit
            msg = f"{self.peer}: read failed in state {self.state}: {e}"
            raise ProtocolError(msg) from e
        if not raw:
            msg = f"{self.peer}: connection closed in state {self.state}"
            raise ProtocolError(msg)
        return raw.decode("utf-8", errors="replace")

    async def send(self, data: bytes) -> None:
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.timeout)
        except (TimeoutError, OSError) as e:
            msg = f"{self.peer}: write failed in state {self.state}: {e}"
            raise ProtocolError(msg) from e


class SmtpStartTlsUpgrader:
    """Negotiates STARTTLS over SMTP and harvests the chain from one handshake.

    After the `220` a plain TLS 1.2 hello offering every cipher family goes out
    on the same socket and the whole chain is read from the server flight.

    Any failure is terminal for the attempt; retries belong to the next scan
    cycle.
    """

    def __init__(self, dial_timeout: float = 3.0):
        self.dial_timeout = dial_timeout

    async def upgrade(self, ip: str, hostname: str, port: int) -> ScanResult:
        reader, writer = await open_tcp(
            ip, port, self.dial_timeout, limit=MAX_LINE_LENGTH,
        )
        session = _SmtpSession(reader, writer, f"{ip}:{port}", self.dial_timeout)
        try:
            await self._negotiate(session)
            certs = await self._handshake(session, hostname)
            session.advance(SmtpState.DONE)
        finally:
            await close_quietly(session.writer)

        outcome = ProbeOutcome(certificates=certs)
        if outcome.empty:
            msg = f"No certificates from {ip}:{port} after STARTTLS"
            raise NoCertificatesError(msg)
        return outcome.to_result(ip, port, hostname)

    async def _negotiate(self, session: _SmtpSession) -> None:
        # Greeting content is not validated; some servers send odd banners
        await session.read_line()
        session.advance(SmtpState.GREETING_READ)

        await session.send(EHLO_COMMAND)
        session.advance(SmtpState.EHLO_SENT)

        lines: list[str] = []
        while True:
            line = await session.read_line()
            lines.append(line)
            if not line.startswith("250-"):
                break
            if len(lines) >= MAX_EHLO_LINES:
                msg = f"{session.peer}: EHLO reply exceeded {MAX_EHLO_LINES} lines"
                raise ProtocolError(msg)
        session.advance(SmtpState.EHLO_MULTILINE_READ)

        if not any("STARTTLS" in line.upper() for line in lines):
            msg = f"{session.peer}: server does not advertise STARTTLS"
            raise UnsupportedError(msg)
        session.advance(SmtpState.CAPABILITY_CHECKED)

        await session.send(STARTTLS_COMMAND)
        session.advance(SmtpState.STARTTLS_SENT)

        reply = await session.read_line()
        if not reply.startswith("220"):
            msg = f"{session.peer}: STARTTLS refused: {reply.strip()}"
            raise ProtocolError(msg)
        session.advance(SmtpState.STARTTLS_ACCEPTED)

    async def _handshake(self, session: _SmtpSession, server_name: str) -> list[bytes]:
        # Plain TLS 1.2 hello: the Certificate message, and with it the whole
        # chain, arrives unencrypted. Both cipher families are offered.
        session.advance(SmtpState.TLS_HANDSHAKING)
        try:
            return await fetch_certificate_chain(
                session.reader, session.writer, None, server_name,
                timeout=self.dial_timeout,
            )
        except HandshakeError as e:
            msg = f"{session.peer}: TLS handshake after STARTTLS failed: {e}"
            raise HandshakeError(msg) from e
