"""Hand-built TLS 1.2 ClientHello and the server-side records we care about.

A hello restricted to one cipher family forces the server to present the
certificate chain for that key type. No ``supported_versions`` extension
is sent, so the server answers with TLS <= 1.2 and its Certificate message
arrives in the clear.
"""

from __future__ import annotations

import asyncio
import ipaddress
import os
import struct

from certscan.errors import HandshakeError, NoCertificatesError
from certscan.models.types import CipherFamily

# ---------------------------------------------------------------------------
# Wire constants
# ---------------------------------------------------------------------------
CONTENT_CHANGE_CIPHER_SPEC = 20
CONTENT_ALERT = 21
CONTENT_HANDSHAKE = 22
CONTENT_APPLICATION_DATA = 23

HS_CLIENT_HELLO = 1
HS_SERVER_HELLO = 2
HS_CERTIFICATE = 11
HS_SERVER_HELLO_DONE = 14

EXT_SERVER_NAME = 0x0000
EXT_SUPPORTED_GROUPS = 0x000A
EXT_EC_POINT_FORMATS = 0x000B
EXT_SIGNATURE_ALGORITHMS = 0x000D
EXT_ALPN = 0x0010
EXT_SUPPORTED_VERSIONS = 0x002B

TLS1_0 = 0x0301
TLS1_2 = 0x0303

# Max plaintext record is 2^14; allow expansion slack for broken servers.
MAX_RECORD_LENGTH = 2**14 + 2048
# Upper bound on everything read before the Certificate message arrives.
MAX_HANDSHAKE_BYTES = 256 * 1024

# Ordered newest-strongest first; legacy CBC/RC4/3DES kept for old servers.
CIPHER_SUITES: dict[CipherFamily, tuple[int, ...]] = {
    CipherFamily.ECDSA: (
        0xC02B,  # TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256
        0xC02C,  # TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384
        0xCCA9,  # TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305_SHA256
        0xC023,  # TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA256
        0xC00A,  # TLS_ECDHE_ECDSA_WITH_AES_256_CBC_SHA
        0xC009,  # TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA
        0xC007,  # TLS_ECDHE_ECDSA_WITH_RC4_128_SHA
    ),
    CipherFamily.RSA: (
        0xC02F,  # TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256
        0xC030,  # TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384
        0xCCA8,  # TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305_SHA256
        0xC027,  # TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA256
        0xC014,  # TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA
        0xC013,  # TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA
        0xC012,  # TLS_ECDHE_RSA_WITH_3DES_EDE_CBC_SHA
        0xC011,  # TLS_ECDHE_RSA_WITH_RC4_128_SHA
        0x009C,  # TLS_RSA_WITH_AES_128_GCM_SHA256
        0x009D,  # TLS_RSA_WITH_AES_256_GCM_SHA384
        0x003C,  # TLS_RSA_WITH_AES_128_CBC_SHA256
        0x0035,  # TLS_RSA_WITH_AES_256_CBC_SHA
        0x002F,  # TLS_RSA_WITH_AES_128_CBC_SHA
        0x000A,  # TLS_RSA_WITH_3DES_EDE_CBC_SHA
        0x0005,  # TLS_RSA_WITH_RC4_128_SHA
    ),
}

SIGNATURE_ALGORITHMS: dict[CipherFamily, tuple[int, ...]] = {
    CipherFamily.ECDSA: (
        0x0403,  # ecdsa_secp256r1_sha256
        0x0503,  # ecdsa_secp384r1_sha384
        0x0603,  # ecdsa_secp521r1_sha512
    ),
    CipherFamily.RSA: (
        0x0401,  # rsa_pkcs1_sha256
        0x0501,  # rsa_pkcs1_sha384
        0x0601,  # rsa_pkcs1_sha512
        0x0804,  # rsa_pss_rsae_sha256
        0x0805,  # rsa_pss_rsae_sha384
        0x0806,  # rsa_pss_rsae_sha512
    ),
}

SUPPORTED_GROUPS: tuple[int, ...] = (
    0x001D,  # x25519
    0x0017,  # secp256r1
    0x0018,  # secp384r1
)

ALPN_PROTOCOLS: tuple[str, ...] = ("h2", "http/1.1", "http/1.0", "h3", "spdy/3.1", "acme-tls/1")

_ALERTS = {
    0: "close_notify",
    10: "unexpected_message",
    20: "bad_record_mac",
    22: "record_overflow",
    40: "handshake_failure",
    42: "bad_certificate",
    47: "illegal_parameter",
    50: "decode_error",
    51: "decrypt_error",
    70: "protocol_version",
    71: "insufficient_security",
    80: "internal_error",
    86: "inappropriate_fallback",
    109: "missing_extension",
    110: "unsupported_extension",
    112: "unrecognized_name",
    120: "no_application_protocol",
}


# ---------------------------------------------------------------------------
# ClientHello
# ---------------------------------------------------------------------------
def _prefix_length(b: bytes, width_bytes: int = 2) -> bytes:
    """Return *b* prefixed with its big-endian length of *width_bytes* bytes."""
    return len(b).to_bytes(width_bytes, byteorder="big") + b


def _u16_list(values: tuple[int, ...]) -> bytes:
    return b"".join(v.to_bytes(2, "big") for v in values)


def _extension(ext_type: int, data: bytes) -> bytes:
    return ext_type.to_bytes(2, "big") + _prefix_length(data)


def _offered(
    table: dict[CipherFamily, tuple[int, ...]], family: CipherFamily | None,
) -> tuple[int, ...]:
    if family is not None:
        return table[family]
    return tuple(v for f in CipherFamily for v in table[f])


def _is_dns_name(hostname: str) -> bool:
    if not hostname:
        return False
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return True
    return False


def build_client_hello(
    family: CipherFamily | None, server_name: str = "", *, random: bytes | None = None,
) -> bytes:
    """Build a complete handshake record carrying a ClientHello for *family*.

    ``None`` offers every family, letting the server present its preferred
    chain. SNI is only sent for DNS names; IP literals are not valid server
    names.
    """
    extensions = b""
    if _is_dns_name(server_name):
        host = server_name.rstrip(".").encode("idna")
        extensions += _extension(
            EXT_SERVER_NAME,
            _prefix_length(b"\x00" + _prefix_length(host)),  # host_name entry
        )
    extensions += _extension(
        EXT_SUPPORTED_GROUPS, _prefix_length(_u16_list(SUPPORTED_GROUPS)),
    )
    extensions += _extension(EXT_EC_POINT_FORMATS, b"\x01\x00")  # uncompressed only
    extensions += _extension(
        EXT_SIGNATURE_ALGORITHMS,
        _prefix_length(_u16_list(_offered(SIGNATURE_ALGORITHMS, family))),
    )
    extensions += _extension(
        EXT_ALPN,
        _prefix_length(b"".join(
            _prefix_length(p.encode("ascii"), 1) for p in ALPN_PROTOCOLS
        )),
    )

    body = b"".join((
        TLS1_2.to_bytes(2, "big"),  # legacy client version
        random if random is not None else os.urandom(32),
        _prefix_length(os.urandom(32), 1),  # session id
        _prefix_length(_u16_list(_offered(CIPHER_SUITES, family))),
        b"\x01\x00",  # compression methods: null
        _prefix_length(extensions),
    ))
    handshake = bytes([HS_CLIENT_HELLO]) + _prefix_length(body, 3)
    return bytes([CONTENT_HANDSHAKE]) + TLS1_0.to_bytes(2, "big") + _prefix_length(handshake)


# ---------------------------------------------------------------------------
# Server response parsing
# ---------------------------------------------------------------------------
def describe_alert(body: bytes) -> str:
    if len(body) < 2:
        return "truncated alert"
    level = "fatal" if body[0] == 2 else "warning"
    return f"{level} alert: {_ALERTS.get(body[1], f'code {body[1]}')}"


def parse_certificate_message(body: bytes) -> list[bytes]:
    """Split a TLS 1.2 Certificate handshake body into DER certificates."""
    if len(body) < 3:
        msg = "Certificate message too short"
        raise HandshakeError(msg)
    total = int.from_bytes(body[:3], "big")
    if total + 3 > len(body):
        msg = "Certificate list length exceeds message"
        raise HandshakeError(msg)
    certs: list[bytes] = []
    pos = 3
    end = 3 + total
    while pos < end:
        if pos + 3 > end:
            msg = "Truncated certificate entry"
            raise HandshakeError(msg)
        length = int.from_bytes(body[pos:pos + 3], "big")
        pos += 3
        if pos + length > end:
            msg = "Certificate entry exceeds list"
            raise HandshakeError(msg)
        certs.append(bytes(body[pos:pos + length]))
        pos += length
    return certs


def check_server_hello(body: bytes) -> int:
    """Validate a ServerHello body and return the negotiated version."""
    if len(body) < 38:
        msg = "ServerHello too short"
        raise HandshakeError(msg)
    version = int.from_bytes(body[:2], "big")
    pos = 34
    sid_len = body[pos]
    pos += 1 + sid_len + 3  # session id, cipher suite, compression
    if pos + 2 <= len(body):
        ext_end = pos + 2 + int.from_bytes(body[pos:pos + 2], "big")
        pos += 2
        while pos + 4 <= min(ext_end, len(body)):
            ext_type, ext_len = struct.unpack("!HH", body[pos:pos + 4])
            if ext_type == EXT_SUPPORTED_VERSIONS and ext_len >= 2:
                version = int.from_bytes(body[pos + 4:pos + 6], "big")
            pos += 4 + ext_len
    if version > TLS1_2:
        # Certificates would be encrypted; we never offer 1.3 so this is a broken peer.
        msg = f"Server selected unsupported version 0x{version:04x}"
        raise HandshakeError(msg)
    return version


async def _read_record(
    reader: asyncio.StreamReader, timeout: float,
) -> tuple[int, bytes]:
    try:
        header = await asyncio.wait_for(reader.readexactly(5), timeout=timeout)
        content_type, _version, length = struct.unpack("!BHH", header)
        if content_type not in (
            CONTENT_CHANGE_CIPHER_SPEC, CONTENT_ALERT,
            CONTENT_HANDSHAKE, CONTENT_APPLICATION_DATA,
        ):
            msg = f"Not a TLS response (first byte 0x{content_type:02x})"
            raise HandshakeError(msg)
        if length > MAX_RECORD_LENGTH:
            msg = f"Record too large ({length} bytes)"
            raise HandshakeError(msg)
        body = await asyncio.wait_for(reader.readexactly(length), timeout=timeout)
    except TimeoutError as e:
        msg = "Timed out waiting for server handshake"
        raise HandshakeError(msg) from e
    except asyncio.IncompleteReadError as e:
        msg = "Connection closed during handshake"
        raise HandshakeError(msg) from e
    except OSError as e:
        msg = f"Connection error during handshake: {e}"
        raise HandshakeError(msg) from e
    return content_type, body


async def read_certificate_chain(
    reader: asyncio.StreamReader,
    *,
    timeout: float,
    max_bytes: int = MAX_HANDSHAKE_BYTES,
) -> list[bytes]:
    """Read server records until the Certificate message and return its chain.

    Raises HandshakeError on alerts or malformed input and
    NoCertificatesError if the server finishes its flight without one.
    """
    pending = bytearray()
    consumed = 0
    seen_hello = False
    while True:
        content_type, body = await _read_record(reader, timeout)
        consumed += 5 + len(body)
        if consumed > max_bytes:
            msg = f"Handshake exceeded {max_bytes} bytes without a certificate"
            raise HandshakeError(msg)
        if content_type == CONTENT_ALERT:
            raise HandshakeError(describe_alert(body))
        if content_type != CONTENT_HANDSHAKE:
            msg = f"Unexpected record type {content_type} before certificate"
            raise HandshakeError(msg)

        pending += body
        while len(pending) >= 4:
            msg_type = pending[0]
            length = int.from_bytes(pending[1:4], "big")
            if len(pending) < 4 + length:
                break
            message = bytes(pending[4:4 + length])
            del pending[:4 + length]

            if msg_type == HS_SERVER_HELLO:
                check_server_hello(message)
                seen_hello = True
            elif not seen_hello:
                msg = f"Expected ServerHello, got handshake type {msg_type}"
                raise HandshakeError(msg)
            elif msg_type == HS_CERTIFICATE:
                certs = parse_certificate_message(message)
                if not certs:
                    msg = "Server sent an empty certificate list"
                    raise NoCertificatesError(msg)
                return certs
            elif msg_type == HS_SERVER_HELLO_DONE:
                msg = "Server completed hello without a certificate"
                raise NoCertificatesError(msg)


async def fetch_certificate_chain(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    family: CipherFamily | None,
    server_name: str = "",
    *,
    timeout: float,
) -> list[bytes]:
    """Send a ClientHello and read the server's chain.

    The whole exchange shares one deadline of *timeout* seconds, on top of the
    per-record read timeout.
    """
    try:
        async with asyncio.timeout(timeout):
            writer.write(build_client_hello(family, server_name))
            await writer.drain()
            return await read_certificate_chain(reader, timeout=timeout)
    except TimeoutError as e:
        msg = f"Handshake not finished within {timeout:.1f}s"
        raise HandshakeError(msg) from e
    except OSError as e:
        msg = f"Sending ClientHello failed: {e}"
        raise HandshakeError(msg) from e
