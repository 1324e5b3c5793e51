"""Protocol dispatcher — effective protocol per port and handler selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from certscan.config import ScanSettings
from certscan.core.handlers import (
    ProtocolHandler,
    SmtpStartTlsHandler,
    UnimplementedHandler,
    WebTlsHandler,
)
from certscan.models.result import ScanResult
from certscan.models.target import Protocol
from certscan.probers.handshake import HandshakeProber
from certscan.probers.starttls import SmtpStartTlsUpgrader

logger = logging.getLogger(__name__)

WEB_PROTOCOLS = (Protocol.HTTP1, Protocol.H2, Protocol.H3)
UNIMPLEMENTED_PROTOCOLS = (Protocol.IMAP, Protocol.POP3, Protocol.LDAP, Protocol.CUSTOM)


class PortClassifier:
    """Single table mapping well-known ports to a default protocol."""

    def __init__(self, web_ports: Iterable[int], smtp_ports: Iterable[int]):
        self.web_ports = frozenset(web_ports)
        self.smtp_ports = frozenset(smtp_ports)

    def resolve(self, port: int, configured: str | None) -> str:
        """Explicit protocol wins, then SMTP ports, then web ports."""
        if configured:
            return configured.strip().lower()
        if port in self.smtp_ports:
            return Protocol.SMTP.value
        if port in self.web_ports:
            return Protocol.HTTP1.value
        return ""


def build_handler_table(
    prober: HandshakeProber, upgrader: SmtpStartTlsUpgrader,
) -> dict[Protocol, ProtocolHandler]:
    """One handler per Protocol member; stubs are explicit entries."""
    table: dict[Protocol, ProtocolHandler] = {}
    for proto in WEB_PROTOCOLS:
        table[proto] = WebTlsHandler(proto, prober)
    table[Protocol.SMTP] = SmtpStartTlsHandler(upgrader)
    for proto in UNIMPLEMENTED_PROTOCOLS:
        table[proto] = UnimplementedHandler(proto)
    return table


class ProtocolDispatcher:
    """Routes one port to its protocol handler.

    Usage::

        dispatcher = ProtocolDispatcher.from_settings(settings.scan)
        results = await dispatcher.dispatch("10.0.0.5", "mail.example.com", 587, None)
    """

    def __init__(
        self,
        handlers: dict[Protocol, ProtocolHandler],
        classifier: PortClassifier,
        allowed_protocols: Iterable[str],
    ):
        self.handlers = handlers
        self.classifier = classifier
        self.allowed = frozenset(p.lower() for p in allowed_protocols)

    @classmethod
    def from_settings(cls, scan: ScanSettings) -> ProtocolDispatcher:
        prober = HandshakeProber(dial_timeout=scan.dial_timeout)
        upgrader = SmtpStartTlsUpgrader(dial_timeout=scan.dial_timeout)
        return cls(
            handlers=build_handler_table(prober, upgrader),
            classifier=PortClassifier(scan.web_ports, scan.smtp_ports),
            allowed_protocols=scan.allowed_protocols,
        )

    def handler_for(self, protocol: str) -> ProtocolHandler | None:
        try:
            return self.handlers.get(Protocol(protocol))
        except ValueError:
            return None

    async def dispatch(
        self, ip: str, hostname: str, port: int, configured_protocol: str | None,
    ) -> list[ScanResult]:
        """Run the handler for ``ip:port`` and return its raw results."""
        proto = self.classifier.resolve(port, configured_protocol)
        if not proto:
            logger.debug("No protocol for %s:%d, skipping", ip, port)
            return []
        if proto not in self.allowed:
            logger.debug("Protocol %s not allowed for %s:%d", proto, ip, port)
            return []

        handler = self.handler_for(proto)
        if handler is None:
            logger.error("No handler for protocol %s (%s:%d)", proto, ip, port)
            return []

        logger.debug("Scanning %s -> %s:%d (protocol: %s)", ip, hostname, port, proto)
        outcome = await handler.attempt(ip, hostname, port)
        return outcome.results
