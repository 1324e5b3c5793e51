"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import contextlib
import datetime
import itertools
import socket
import ssl
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.x509.oid import NameOID

_file_ids = itertools.count()


@dataclass
class CertPair:
    der: bytes
    cert_pem: bytes
    key_pem: bytes
    # DER of every certificate the server sends, leaf first
    chain: list[bytes] = field(default_factory=list)


def make_cert(
    cn: str = "localhost",
    *,
    issuer: str | None = None,
    key_type: str = "rsa",
) -> CertPair:
    """Self-signed certificate; *issuer* overrides the issuer CN only."""
    if key_type == "rsa":
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    else:
        key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])
    issuer_name = (
        x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer)]) if issuer else subject
    )
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(key, hashes.SHA256())
    )
    return CertPair(
        der=cert.public_bytes(serialization.Encoding.DER),
        cert_pem=cert.public_bytes(serialization.Encoding.PEM),
        key_pem=key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
    )


def make_chain(cn: str = "localhost") -> CertPair:
    """Leaf signed by a throwaway intermediate; the PEM carries both."""
    ca_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    ca_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "certscan Test Intermediate")])
    leaf_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    now = datetime.datetime.now(datetime.UTC)
    ca = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )
    leaf = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)]))
        .issuer_name(ca_name)
        .public_key(leaf_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .sign(ca_key, hashes.SHA256())
    )
    pem = serialization.Encoding.PEM
    return CertPair(
        der=leaf.public_bytes(serialization.Encoding.DER),
        cert_pem=leaf.public_bytes(pem) + ca.public_bytes(pem),
        key_pem=leaf_key.private_bytes(
            pem,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ),
        chain=[
            leaf.public_bytes(serialization.Encoding.DER),
            ca.public_bytes(serialization.Encoding.DER),
        ],
    )


def server_context(directory: Path, *pairs: CertPair) -> ssl.SSLContext:
    """TLS 1.2-capable server context holding one certificate per key type."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    for pair in pairs:
        n = next(_file_ids)
        cert_file = directory / f"cert{n}.pem"
        key_file = directory / f"key{n}.pem"
        cert_file.write_bytes(pair.cert_pem)
        key_file.write_bytes(pair.key_pem)
        ctx.load_cert_chain(cert_file, key_file)
    return ctx


async def _hold_until_eof(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
    with contextlib.suppress(OSError):
        await reader.read()
    writer.close()


async def close_server(server: asyncio.Server) -> None:
    server.close()
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(server.wait_closed(), timeout=1.0)


@pytest.fixture(scope="session")
def rsa_cert() -> CertPair:
    return make_cert("rsa.certscan.test")


@pytest.fixture(scope="session")
def ecdsa_cert() -> CertPair:
    return make_cert("ecdsa.certscan.test", key_type="ecdsa")


@pytest.fixture(scope="session")
def evil_cert() -> CertPair:
    return make_cert("victim.certscan.test", issuer="Evil CA")


@pytest.fixture(scope="session")
def chain_cert() -> CertPair:
    return make_chain("chain.certscan.test")


@pytest.fixture
def tls_context(tmp_path):
    """Factory: server SSLContext for the given certs."""
    return lambda *pairs: server_context(tmp_path, *pairs)


@pytest.fixture
async def serve_tls(tmp_path):
    """Factory: start a loopback TLS server for the given certs, return its port."""
    servers: list[asyncio.Server] = []

    async def _serve(*pairs: CertPair) -> int:
        ctx = server_context(tmp_path, *pairs)
        server = await asyncio.start_server(_hold_until_eof, "127.0.0.1", 0, ssl=ctx)
        servers.append(server)
        return server.sockets[0].getsockname()[1]

    yield _serve
    for server in servers:
        await close_server(server)


@pytest.fixture
def unused_port() -> int:
    """A loopback port nothing listens on."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
