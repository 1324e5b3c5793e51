"""Tests for include/exclude list expansion."""

from __future__ import annotations

import ipaddress

import pytest

from certscan.config import IncludeEntry, Settings
from certscan.engine.targets import (
    ExclusionList,
    TargetLoader,
    parse_ipv4_network,
    split_host_port,
)


def _settings(*entries, **overrides) -> Settings:
    s = Settings(**overrides)
    s.include_list = [
        e if isinstance(e, IncludeEntry) else IncludeEntry(target=e) for e in entries
    ]
    s.scan.ports = [443, 587]
    return s


def _resolver(table: dict[str, list[str]]):
    async def resolve(host: str) -> list[str]:
        return table.get(host, [])
    return resolve


async def _collect(loader: TargetLoader):
    return [t async for t in loader.targets()]


class TestSplitHostPort:
    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ("example.com", ("example.com", None)),
            ("example.com:8443", ("example.com", 8443)),
            ("10.0.0.5:25", ("10.0.0.5", 25)),
            ("[2001:db8::1]:443", ("2001:db8::1", 443)),
            ("2001:db8::1", ("2001:db8::1", None)),
            (" mail.example.com ", ("mail.example.com", None)),
        ],
    )
    def test_forms(self, entry, expected):
        assert split_host_port(entry) == expected

    @pytest.mark.parametrize("entry", ["example.com:http", "example.com:70000", "[::1"])
    def test_invalid(self, entry):
        with pytest.raises(ValueError):
            split_host_port(entry)


class TestExclusionList:
    def test_names_ips_and_networks(self):
        excluded = ExclusionList(["Skip.Example.com", "10.0.0.0/30", "2001:db8::/64", "10.1.1.1"])
        assert "skip.example.com" in excluded
        assert "10.0.0.2" in excluded
        assert "10.1.1.1" in excluded
        assert "2001:db8::5" in excluded
        assert "10.0.0.9" not in excluded
        assert "example.com" not in excluded

    def test_invalid_cidr_ignored(self):
        excluded = ExclusionList(["10.0.0.0/99"])
        assert excluded.networks == []


class TestTargetLoader:
    async def test_cidr_expansion_skips_broadcast(self):
        loader = TargetLoader(_settings("192.168.1.0/30"))
        targets = await _collect(loader)
        assert [t.ip for t in targets] == ["192.168.1.0", "192.168.1.1", "192.168.1.2"]
        assert all(t.ports == frozenset({443, 587}) for t in targets)

    async def test_cidr_respects_exclusions(self):
        s = _settings("192.168.1.0/29")
        s.exclude_list = ["192.168.1.2", "192.168.1.4/31"]
        ips = [t.ip for t in await _collect(TargetLoader(s))]
        assert "192.168.1.2" not in ips
        assert "192.168.1.4" not in ips
        assert "192.168.1.5" not in ips
        assert "192.168.1.7" not in ips
        assert "192.168.1.6" in ips

    def test_slash_31_keeps_both(self):
        net = parse_ipv4_network("10.0.0.0/31")
        assert TargetLoader(_settings()).expand_cidr(net) == ["10.0.0.0", "10.0.0.1"]

    async def test_ipv6_cidr_ignored(self):
        assert await _collect(TargetLoader(_settings("2001:db8::/126"))) == []

    async def test_explicit_ip_with_port(self):
        targets = await _collect(TargetLoader(_settings("10.0.0.5:8443")))
        assert len(targets) == 1
        assert targets[0].ip == "10.0.0.5"
        assert targets[0].ports == frozenset({8443})

    async def test_explicit_ip_always_scanned(self):
        s = _settings("10.0.0.5")
        s.exclude_list = ["10.0.0.0/24"]
        assert [t.ip for t in await _collect(TargetLoader(s))] == ["10.0.0.5"]

    async def test_ipv6_gated(self):
        assert await _collect(TargetLoader(_settings("[2001:db8::1]:443"))) == []
        s = _settings("[2001:db8::1]:443", enable_ipv6_discovery=True)
        targets = await _collect(TargetLoader(s))
        assert targets[0].ip == "2001:db8::1"

    async def test_hostname_resolution(self):
        s = _settings(IncludeEntry(target="mail.example.com:587", protocol="smtp"))
        loader = TargetLoader(s, resolver=_resolver({
            "mail.example.com": ["10.0.0.7", "10.0.0.8", "2001:db8::7"],
        }))
        targets = await _collect(loader)
        assert [t.ip for t in targets] == ["10.0.0.7", "10.0.0.8"]
        assert all(t.hostname == "mail.example.com" for t in targets)
        assert all(t.protocol == "smtp" for t in targets)
        assert all(t.ports == frozenset({587}) for t in targets)

    async def test_resolved_ips_respect_exclusions(self):
        s = _settings("example.com")
        s.exclude_list = ["10.0.0.8"]
        loader = TargetLoader(s, resolver=_resolver({"example.com": ["10.0.0.7", "10.0.0.8"]}))
        assert [t.ip for t in await _collect(loader)] == ["10.0.0.7"]

    async def test_unresolvable_hostname_skipped(self, caplog):
        loader = TargetLoader(_settings("nowhere.invalid"), resolver=_resolver({}))
        assert await _collect(loader) == []
        assert "Failed to resolve hostname nowhere.invalid" in caplog.text

    async def test_duplicates_removed(self):
        targets = await _collect(TargetLoader(_settings("10.0.0.5", "10.0.0.5")))
        assert len(targets) == 1

    async def test_invalid_entry_skipped(self, caplog):
        targets = await _collect(TargetLoader(_settings("example.com:http", "10.0.0.5")))
        assert [t.ip for t in targets] == ["10.0.0.5"]
        assert "Failed to parse include_list entry" in caplog.text

    def test_parse_ipv4_network(self):
        assert parse_ipv4_network("10.0.0.0/8") == ipaddress.ip_network("10.0.0.0/8")
        assert parse_ipv4_network("10.0.0.1") is None
        assert parse_ipv4_network("2001:db8::/64") is None
