"""Agent identity — deterministic machine id for webhook attribution."""

from __future__ import annotations

import hashlib
import logging
import socket
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

_MACHINE_ID_FILES = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))


def _system_seed() -> str:
    for path in _MACHINE_ID_FILES:
        try:
            value = path.read_text(encoding="utf-8").strip()
        except OSError:
            continue
        if value:
            return value
    # No machine-id file (containers, macOS): MAC + hostname is stable enough
    return f"{uuid.getnode():012x}-{socket.gethostname()}"


def machine_id(override: str = "") -> str:
    """Configured id if set, else a stable hash of this system's identity."""
    if override:
        return override
    digest = hashlib.sha256(f"certscan:{_system_seed()}".encode()).hexdigest()
    return digest[:32]
