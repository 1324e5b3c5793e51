"""Data models — contracts for the entire system."""

from certscan.models.result import Payload, ProbeOutcome, ScanResult
from certscan.models.target import Protocol, ScanTarget
from certscan.models.types import CipherFamily, ExclusionRule

__all__ = [
    "CipherFamily",
    "ExclusionRule",
    "Payload",
    "ProbeOutcome",
    "Protocol",
    "ScanResult",
    "ScanTarget",
]
