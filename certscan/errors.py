"""Error taxonomy for probing and reporting.

Probing primitives raise these; handlers and the scheduler absorb everything
except ``FatalSinkError`` into log lines.
"""

from __future__ import annotations


class ScanError(Exception):
    """Base error for a single probe attempt."""


class DialError(ScanError):
    """TCP connect failed or timed out."""


class ProtocolError(ScanError):
    """Peer sent something the plaintext protocol did not expect."""


class UnsupportedError(ScanError):
    """Peer lacks a required capability (e.g. no STARTTLS)."""


class HandshakeError(ScanError):
    """TLS negotiation failed for one attempt."""


class NoCertificatesError(ScanError):
    """Handshake completed far enough but the peer presented no certificates."""


class FatalSinkError(Exception):
    """Reporting can not continue; the process should stop scanning.

    ``guidance`` holds user-facing remediation text.
    """

    def __init__(self, message: str, guidance: str = "") -> None:
        super().__init__(message)
        self.guidance = guidance


class AuthError(FatalSinkError):
    """Webhook rejected the agent and no token is configured."""
