"""Result models — probe outcomes and the webhook payload."""

from __future__ import annotations

import base64
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from certscan.models.types import CipherFamily


def _now() -> int:
    return int(time.time())


class ProbeOutcome(BaseModel):
    """Certificates harvested by one handshake, before attribution to a port."""

    handshake_type: CipherFamily | None = None
    certificates: list[bytes] = Field(default_factory=list)
    timestamp: int = Field(default_factory=_now)

    @property
    def empty(self) -> bool:
        return not self.certificates

    def to_result(self, ip: str, port: int, hostname: str = "") -> ScanResult:
        return ScanResult(
            ip=ip,
            port=port,
            hostname=hostname,
            handshake_type=self.handshake_type,
            certificates=self.certificates,
            timestamp=self.timestamp,
        )


class ScanResult(BaseModel):
    """One successful, non-empty probe of ``ip:port``.

    Certificates are held as DER bytes and serialized as base64 strings.
    """

    model_config = ConfigDict(frozen=True)

    ip: str
    port: int
    hostname: str = ""
    handshake_type: CipherFamily | None = None
    certificates: list[bytes] = Field(default_factory=list)
    timestamp: int = Field(default_factory=_now)

    @field_serializer("certificates")
    def _serialize_certificates(self, certs: list[bytes]) -> list[str]:
        return [base64.b64encode(der).decode("ascii") for der in certs]

    def with_certificates(self, certs: list[bytes]) -> ScanResult:
        return self.model_copy(update={"certificates": list(certs)})

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict; empty hostname, handshake type and certs are omitted."""
        data = self.model_dump(mode="json")
        for key in ("hostname", "handshake_type", "certificates"):
            if not data.get(key):
                data.pop(key, None)
        return data


class Payload(BaseModel):
    """Body POSTed to the webhook for one flush."""

    primary_ip: str = ""
    machine_id: str = ""
    scan_results: list[ScanResult] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.primary_ip:
            data["primary_ip"] = self.primary_ip
        if self.machine_id:
            data["machine_id"] = self.machine_id
        data["scan_results"] = [r.to_wire() for r in self.scan_results]
        return data
