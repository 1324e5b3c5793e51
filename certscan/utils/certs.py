"""X.509 parsing, exclusion filtering and de-duplication of DER chains."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from cryptography import x509
from cryptography.x509.oid import NameOID

from certscan.models.types import ExclusionRule
from certscan.utils.wildcard import match_wildcard

logger = logging.getLogger(__name__)


def parse_certificate(der: bytes) -> x509.Certificate | None:
    """Parse DER bytes, or return None when they are not a certificate."""
    try:
        return x509.load_der_x509_certificate(der)
    except ValueError:
        return None


def issuer_dn(cert: x509.Certificate) -> str:
    """Full issuer distinguished name, e.g. ``CN=Evil CA,O=Evil Corp``."""
    return cert.issuer.rfc4514_string()


def subject_cn(cert: x509.Certificate) -> str:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return ""
    value = attrs[0].value
    return value if isinstance(value, str) else value.decode("utf-8", "replace")


def is_excluded(cert: x509.Certificate, rules: Sequence[ExclusionRule]) -> bool:
    """True if any rule matches the issuer DN or the subject common name."""
    issuer = issuer_dn(cert)
    cn = subject_cn(cert)
    return any(
        match_wildcard(rule.issuer, issuer) or match_wildcard(rule.cn, cn)
        for rule in rules
    )


def filter_certificates(
    raw: Iterable[bytes], rules: Sequence[ExclusionRule],
) -> list[bytes]:
    """Drop unparsable and excluded certificates; keep order and original bytes."""
    kept: list[bytes] = []
    for der in raw:
        cert = parse_certificate(der)
        if cert is None:
            logger.debug("Dropping unparsable certificate (%d bytes)", len(der))
            continue
        if rules and is_excluded(cert, rules):
            logger.debug(
                "Skipping certificate due to exclude_certs filter: CN=%s Issuer=%s",
                subject_cn(cert), issuer_dn(cert),
            )
            continue
        kept.append(der)
    return kept


def dedupe_certificates(raw: Iterable[bytes]) -> list[bytes]:
    """Remove byte-identical duplicates, first occurrence wins."""
    seen: set[bytes] = set()
    out: list[bytes] = []
    for der in raw:
        if der in seen:
            continue
        seen.add(der)
        out.append(der)
    return out
