"""Protocol handlers — ProtocolHandler ABC and its variants."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from certscan.errors import (
    DialError,
    HandshakeError,
    NoCertificatesError,
    ProtocolError,
    UnsupportedError,
)
from certscan.models.result import ScanResult
from certscan.models.target import Protocol
from certscan.probers.handshake import HandshakeProber
from certscan.probers.starttls import SmtpStartTlsUpgrader

logger = logging.getLogger(__name__)


@dataclass
class HandlerOutcome:
    """What a handler did: ``handled`` is False when no I/O was attempted."""

    handled: bool
    results: list[ScanResult] = field(default_factory=list)


class ProtocolHandler(ABC):
    """Reaches the TLS material of one port for one application protocol."""

    protocol: Protocol

    @abstractmethod
    async def attempt(self, ip: str, hostname: str, port: int) -> HandlerOutcome:
        """Probe ``ip:port``; never raises for per-port failures."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.protocol}>"


class WebTlsHandler(ProtocolHandler):
    """Direct TLS: one ECDSA and one RSA handshake, independently."""

    def __init__(self, protocol: Protocol, prober: HandshakeProber):
        self.protocol = protocol
        self.prober = prober

    async def attempt(self, ip: str, hostname: str, port: int) -> HandlerOutcome:
        results = await self.prober.probe_all(ip, hostname, port)
        return HandlerOutcome(handled=True, results=results)


class SmtpStartTlsHandler(ProtocolHandler):
    protocol = Protocol.SMTP

    def __init__(self, upgrader: SmtpStartTlsUpgrader):
        self.upgrader = upgrader

    async def attempt(self, ip: str, hostname: str, port: int) -> HandlerOutcome:
        try:
            result = await self.upgrader.upgrade(ip, hostname, port)
        except DialError as e:
            logger.debug("SMTP dial failed: %s", e)
        except UnsupportedError as e:
            logger.info("STARTTLS unsupported: %s", e)
        except NoCertificatesError as e:
            logger.debug("%s", e)
        except (ProtocolError, HandshakeError) as e:
            logger.warning("SMTP STARTTLS %s:%d failed: %s", ip, port, e)
        else:
            return HandlerOutcome(handled=True, results=[result])
        return HandlerOutcome(handled=True)


class UnimplementedHandler(ProtocolHandler):
    """Placeholder for protocols without an upgrade path yet.

    Performs no I/O and never falls back to a plain TLS probe, so "not
    implemented" stays distinguishable from "scanned, no certificates".
    """

    def __init__(self, protocol: Protocol):
        self.protocol = protocol

    async def attempt(self, ip: str, hostname: str, port: int) -> HandlerOutcome:
        logger.info(
            "%s protocol handler not implemented for %s:%d",
            self.protocol.upper(), ip, port,
        )
        return HandlerOutcome(handled=False)
