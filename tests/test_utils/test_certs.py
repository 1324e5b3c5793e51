"""Tests for certificate parsing, exclusion filtering and de-duplication."""

from __future__ import annotations

from certscan.models.types import ExclusionRule
from certscan.utils.certs import (
    dedupe_certificates,
    filter_certificates,
    is_excluded,
    issuer_dn,
    parse_certificate,
    subject_cn,
)


class TestParseCertificate:
    def test_valid_der(self, rsa_cert):
        cert = parse_certificate(rsa_cert.der)
        assert cert is not None
        assert subject_cn(cert) == "rsa.certscan.test"

    def test_garbage_returns_none(self):
        assert parse_certificate(b"\x30\x03\x02\x01\x00") is None
        assert parse_certificate(b"") is None

    def test_issuer_dn(self, evil_cert):
        cert = parse_certificate(evil_cert.der)
        assert issuer_dn(cert) == "CN=Evil CA"
        assert subject_cn(cert) == "victim.certscan.test"


class TestIsExcluded:
    def test_issuer_rule(self, evil_cert, rsa_cert):
        rules = [ExclusionRule(issuer="*Evil*")]
        assert is_excluded(parse_certificate(evil_cert.der), rules)
        assert not is_excluded(parse_certificate(rsa_cert.der), rules)

    def test_cn_rule(self, rsa_cert):
        rules = [ExclusionRule(cn="*.certscan.test")]
        assert is_excluded(parse_certificate(rsa_cert.der), rules)

    def test_empty_rule_matches_nothing(self, rsa_cert):
        assert not is_excluded(parse_certificate(rsa_cert.der), [ExclusionRule()])


class TestFilterCertificates:
    def test_no_rules_keeps_parsable(self, rsa_cert, ecdsa_cert):
        raw = [rsa_cert.der, ecdsa_cert.der]
        assert filter_certificates(raw, []) == raw

    def test_unparsable_always_dropped(self, rsa_cert):
        raw = [b"not a certificate", rsa_cert.der]
        assert filter_certificates(raw, []) == [rsa_cert.der]

    def test_excluded_dropped_order_kept(self, rsa_cert, evil_cert, ecdsa_cert):
        raw = [rsa_cert.der, evil_cert.der, ecdsa_cert.der]
        kept = filter_certificates(raw, [ExclusionRule(issuer="*Evil*")])
        assert kept == [rsa_cert.der, ecdsa_cert.der]

    def test_idempotent(self, rsa_cert, evil_cert):
        rules = [ExclusionRule(issuer="*Evil*")]
        once = filter_certificates([evil_cert.der, rsa_cert.der, b"junk"], rules)
        assert filter_certificates(once, rules) == once

    def test_everything_filtered(self, evil_cert):
        assert filter_certificates([evil_cert.der], [ExclusionRule(issuer="CN=Evil*")]) == []


class TestDedupeCertificates:
    def test_first_occurrence_wins(self):
        assert dedupe_certificates([b"a", b"b", b"a", b"c", b"b"]) == [b"a", b"b", b"c"]

    def test_empty(self):
        assert dedupe_certificates([]) == []
