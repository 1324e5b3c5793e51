"""Network utilities — bounded TCP dial, quiet close, name resolution."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket

from certscan.errors import DialError

logger = logging.getLogger(__name__)


async def open_tcp(
    ip: str, port: int, timeout: float, *, limit: int = 2**16,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Connect to *ip:port* within *timeout* seconds or raise DialError."""
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(ip, port, limit=limit),
            timeout=timeout,
        )
    except TimeoutError as e:
        msg = f"Dial {ip}:{port} timed out after {timeout:.1f}s"
        raise DialError(msg) from e
    except OSError as e:
        msg = f"Dial {ip}:{port} failed: {e}"
        raise DialError(msg) from e


async def close_quietly(writer: asyncio.StreamWriter, timeout: float = 1.0) -> None:
    """Close *writer*, aborting if the peer never finishes the close."""
    writer.close()
    try:
        with contextlib.suppress(OSError):
            await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except TimeoutError:
        writer.transport.abort()


async def resolve(host: str) -> list[str]:
    """Resolve *host* to its unique addresses, in resolver order."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        logger.error("Could not resolve %s: %s", host, e)
        return []
    addrs: list[str] = []
    for info in infos:
        addr = info[4][0]
        if addr not in addrs:
            addrs.append(addr)
    return addrs


def primary_ip() -> str:
    """Local address of the default outbound route, or "" when offline.

    UDP connect sends no packets; it only asks the kernel to pick a route.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        try:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
        except OSError:
            return ""
