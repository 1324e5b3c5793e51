"""Domain-specific types — cipher families and certificate exclusion rules."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class CipherFamily(StrEnum):
    """Server-authentication key type a ClientHello is restricted to."""

    ECDSA = "ecdsa"
    RSA = "rsa"


class ExclusionRule(BaseModel):
    """Wildcard patterns for certificates that must not be reported.

    A certificate is excluded when ``issuer`` matches its issuer DN or ``cn``
    matches its subject common name. Empty patterns never match.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    issuer: str = ""
    cn: str = Field(default="", alias="CN")
