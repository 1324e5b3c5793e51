"""certscan — TLS certificate discovery agent."""

from __future__ import annotations

__version__ = "1.0.0"

from certscan.models.result import Payload, ProbeOutcome, ScanResult  # noqa: F401
from certscan.models.target import Protocol, ScanTarget  # noqa: F401
from certscan.models.types import CipherFamily, ExclusionRule  # noqa: F401
