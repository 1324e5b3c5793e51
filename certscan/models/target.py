"""Target models — what we're probing."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Protocol(StrEnum):
    HTTP1 = "http1"
    H2 = "h2"
    H3 = "h3"
    SMTP = "smtp"
    LDAP = "ldap"
    IMAP = "imap"
    POP3 = "pop3"
    CUSTOM = "custom"


class ScanTarget(BaseModel):
    """One host (already resolved to an IP) and the ports to probe on it.

    ``protocol`` stays a plain string: values outside :class:`Protocol` are
    rejected by the dispatcher with a log line instead of failing validation.
    """

    model_config = ConfigDict(frozen=True)

    ip: str
    hostname: str = ""
    ports: frozenset[int] = Field(default_factory=frozenset)
    protocol: str | None = None

    def sorted_ports(self) -> list[int]:
        return sorted(self.ports)
