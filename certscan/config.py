"""Configuration — Pydantic Settings + YAML loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from certscan.models.target import Protocol
from certscan.models.types import ExclusionRule

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "default.yaml"

DEFAULT_DIAL_TIMEOUT_MS = 3000
DEFAULT_WEBHOOK_TIMEOUT_MS = 5000

# Legacy single-level config keys -> (section, field)
_FLAT_KEYS: dict[str, tuple[str, str]] = {
    "webhook_url": ("webhook", "url"),
    "ultrapki_token": ("webhook", "token"),
    "webhook_timeout_ms": ("webhook", "timeout_ms"),
    "ports": ("scan", "ports"),
    "dial_timeout_ms": ("scan", "dial_timeout_ms"),
    "concurrency_limit": ("scan", "concurrency_limit"),
    "scan_interval_seconds": ("scan", "interval_seconds"),
    "scan_throttle_delay_ms": ("scan", "throttle_delay_ms"),
}


class _Section(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CERTSCAN_", extra="ignore")


class ScanSettings(_Section):
    ports: list[int] = Field(default=[443, 465, 587, 993, 995])
    dial_timeout_ms: int = DEFAULT_DIAL_TIMEOUT_MS
    concurrency_limit: int = 10
    interval_seconds: int = 3600
    throttle_delay_ms: int = 50
    # Port classification used when a target carries no explicit protocol
    web_ports: list[int] = Field(default=[443, 8443, 4433, 5001, 10443])
    smtp_ports: list[int] = Field(default=[25, 465, 587])
    allowed_protocols: list[str] = Field(default_factory=lambda: [p.value for p in Protocol])

    @property
    def dial_timeout(self) -> float:
        """Dial timeout in seconds."""
        ms = self.dial_timeout_ms if self.dial_timeout_ms > 0 else DEFAULT_DIAL_TIMEOUT_MS
        return ms / 1000.0

    @property
    def effective_concurrency(self) -> int:
        return self.concurrency_limit if self.concurrency_limit > 0 else 1


class WebhookSettings(_Section):
    url: str = ""
    token: str = ""
    timeout_ms: int = DEFAULT_WEBHOOK_TIMEOUT_MS

    @property
    def timeout(self) -> float:
        ms = self.timeout_ms if self.timeout_ms > 0 else DEFAULT_WEBHOOK_TIMEOUT_MS
        return ms / 1000.0


class IncludeEntry(BaseModel):
    """One include_list entry: host, host:port, IP or IPv4 CIDR."""

    target: str
    protocol: str | None = None


class Settings(_Section):
    """Root settings — merges defaults, YAML config, and env vars."""

    scan: ScanSettings = Field(default_factory=ScanSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    machine_id: str = ""
    include_list: list[IncludeEntry] = Field(default_factory=list)
    exclude_list: list[str] = Field(default_factory=list)
    exclude_certs: list[ExclusionRule] = Field(default_factory=list)
    enable_ipv6_discovery: bool = False
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> Settings:
        """Load settings from YAML file, falling back to defaults."""
        data: dict[str, Any] = {}

        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        path = Path(config_path)
        if path.exists():
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
                if isinstance(raw, dict):
                    data = raw

        return cls(**_nest_flat_keys(data))


def _nest_flat_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Move flat legacy keys into their sections; nested values win on conflict."""
    out = dict(data)
    for flat, (section, field) in _FLAT_KEYS.items():
        if flat not in out:
            continue
        value = out.pop(flat)
        nested = out.get(section)
        if not isinstance(nested, dict):
            nested = {}
        nested = dict(nested)
        nested.setdefault(field, value)
        out[section] = nested
    # Plain strings are accepted as include_list entries
    include = out.get("include_list")
    if isinstance(include, list):
        out["include_list"] = [
            {"target": e} if isinstance(e, str) else e for e in include
        ]
    return out
