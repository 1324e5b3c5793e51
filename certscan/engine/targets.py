"""Target loader — expands include/exclude lists into ScanTargets."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

from certscan.config import IncludeEntry, Settings
from certscan.models.target import ScanTarget
from certscan.utils.net import resolve

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[list[str]]]


def split_host_port(entry: str) -> tuple[str, int | None]:
    """Split ``host``, ``host:port``, ``[v6]:port`` or a bare IPv6 literal."""
    entry = entry.strip()
    if entry.startswith("["):
        host, sep, rest = entry[1:].partition("]")
        if not sep:
            msg = f"Unterminated IPv6 literal: {entry}"
            raise ValueError(msg)
        if rest.startswith(":"):
            return host, _parse_port(rest[1:], entry)
        return host, None
    if entry.count(":") >= 2:
        return entry, None  # bare IPv6, no port
    host, sep, port = entry.partition(":")
    if sep:
        return host, _parse_port(port, entry)
    return host, None


def _parse_port(value: str, entry: str) -> int:
    try:
        port = int(value)
    except ValueError:
        msg = f"Invalid port in {entry!r}"
        raise ValueError(msg) from None
    if not 0 < port < 65536:
        msg = f"Port out of range in {entry!r}"
        raise ValueError(msg)
    return port


def parse_ip(value: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(value)
    except ValueError:
        return None


def parse_ipv4_network(value: str) -> ipaddress.IPv4Network | None:
    if "/" not in value:
        return None
    try:
        net = ipaddress.ip_network(value, strict=False)
    except ValueError:
        return None
    return net if isinstance(net, ipaddress.IPv4Network) else None


class ExclusionList:
    """Hosts, IPs and CIDRs (v4 and v6) that must never be scanned."""

    def __init__(self, entries: Iterable[str]):
        self.networks: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = []
        self.names: set[str] = set()
        for raw in entries:
            entry = raw.strip()
            if not entry:
                continue
            if "/" in entry:
                try:
                    self.networks.append(ipaddress.ip_network(entry, strict=False))
                    continue
                except ValueError:
                    logger.warning("Ignoring invalid exclude_list CIDR: %s", entry)
                    continue
            self.names.add(entry.lower())

    def __contains__(self, host: str) -> bool:
        if host.lower() in self.names:
            return True
        addr = parse_ip(host)
        if addr is None:
            return False
        return any(addr in net for net in self.networks if net.version == addr.version)


class TargetLoader:
    """Turns configuration into ScanTargets, one cycle at a time.

    Explicit host/IP entries are always scanned; the exclude list applies to
    CIDR expansions and to the addresses a hostname resolves to.
    """

    def __init__(self, settings: Settings, resolver: Resolver = resolve):
        self.settings = settings
        self.resolver = resolver
        self.excluded = ExclusionList(settings.exclude_list)

    async def targets(self) -> AsyncIterator[ScanTarget]:
        seen: set[ScanTarget] = set()
        for entry in self.settings.include_list:
            async for target in self._expand(entry):
                if target in seen:
                    continue
                seen.add(target)
                yield target

    async def _expand(self, entry: IncludeEntry) -> AsyncIterator[ScanTarget]:
        default_ports = frozenset(self.settings.scan.ports)
        value = entry.target.strip()

        net = parse_ipv4_network(value)
        if net is not None:
            for ip in self.expand_cidr(net):
                yield ScanTarget(ip=ip, hostname=ip, ports=default_ports, protocol=entry.protocol)
            return
        if "/" in value:
            logger.debug("Ignoring non-IPv4 CIDR in include_list: %s", value)
            return

        try:
            host, port = split_host_port(value)
        except ValueError as e:
            logger.error("Failed to parse include_list entry %s: %s", value, e)
            return
        ports = frozenset({port}) if port else default_ports

        addr = parse_ip(host)
        if addr is not None:
            if addr.version == 6 and not self.settings.enable_ipv6_discovery:
                logger.debug("Skipping IPv6 address %s (IPv6 disabled)", host)
                return
            yield ScanTarget(ip=str(addr), hostname=host, ports=ports, protocol=entry.protocol)
            return

        addrs = await self.resolver(host)
        if not addrs:
            logger.error("Failed to resolve hostname %s", host)
            return
        logger.debug("Resolved %s -> %s", host, addrs)
        for ip in addrs:
            if ip in self.excluded:
                logger.debug("Skipping excluded resolved IP: %s", ip)
                continue
            resolved = parse_ip(ip)
            if resolved is not None and resolved.version == 6 and not self.settings.enable_ipv6_discovery:
                logger.debug("Skipping resolved IPv6 address %s (IPv6 disabled)", ip)
                continue
            yield ScanTarget(ip=ip, hostname=host, ports=ports, protocol=entry.protocol)

    def expand_cidr(self, net: ipaddress.IPv4Network) -> list[str]:
        """All addresses of *net* minus broadcast and excluded ones."""
        ips: list[str] = []
        for addr in net:
            if net.prefixlen < 31 and addr == net.broadcast_address:
                logger.debug("Skipping broadcast IP: %s", addr)
                continue
            ip = str(addr)
            if ip in self.excluded:
                continue
            ips.append(ip)
        return ips
