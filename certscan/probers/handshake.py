"""Raw TLS handshake prober — one ClientHello per cipher family."""

from __future__ import annotations

import asyncio
import logging

from certscan.errors import NoCertificatesError, ScanError
from certscan.models.result import ProbeOutcome, ScanResult
from certscan.models.types import CipherFamily
from certscan.utils.net import close_quietly, open_tcp
from certscan.utils.tls_hello import fetch_certificate_chain

logger = logging.getLogger(__name__)


class HandshakeProber:
    """Harvests the certificate chain a server presents for one cipher family.

    Certificates are never validated: the goal is discovery, not trust.

    Usage::

        prober = HandshakeProber(dial_timeout=3.0)
        result = await prober.probe("93.184.216.34", "example.com", 443, CipherFamily.RSA)
    """

    def __init__(self, dial_timeout: float = 3.0):
        self.dial_timeout = dial_timeout

    async def probe(
        self, ip: str, hostname: str, port: int, family: CipherFamily,
    ) -> ScanResult:
        reader, writer = await open_tcp(ip, port, self.dial_timeout)
        try:
            certs = await fetch_certificate_chain(
                reader, writer, family, hostname, timeout=self.dial_timeout,
            )
        finally:
            await close_quietly(writer)

        outcome = ProbeOutcome(handshake_type=family, certificates=certs)
        if outcome.empty:
            msg = f"No certificates from {ip}:{port} ({family})"
            raise NoCertificatesError(msg)
        return outcome.to_result(ip, port, hostname)

    async def probe_all(
        self,
        ip: str,
        hostname: str,
        port: int,
        families: tuple[CipherFamily, ...] = (CipherFamily.ECDSA, CipherFamily.RSA),
    ) -> list[ScanResult]:
        """Probe every family concurrently; one family failing never hides another."""
        outcomes = await asyncio.gather(
            *(self.probe(ip, hostname, port, f) for f in families),
            return_exceptions=True,
        )
        results: list[ScanResult] = []
        for family, outcome in zip(families, outcomes, strict=True):
            if isinstance(outcome, ScanResult):
                results.append(outcome)
            elif isinstance(outcome, ScanError):
                logger.debug(
                    "%s handshake %s:%d failed: %s",
                    family.upper(), ip, port, outcome,
                )
            elif isinstance(outcome, Exception):
                logger.warning(
                    "%s handshake %s:%d crashed: %r",
                    family.upper(), ip, port, outcome,
                )
            else:
                raise outcome
        return results
