"""Tests for network helpers and agent identity."""

from __future__ import annotations

import asyncio
import socket
from unittest.mock import patch

import pytest

from certscan.errors import DialError
from certscan.utils import identity
from certscan.utils.net import close_quietly, open_tcp, resolve


class TestOpenTcp:
    async def test_connect_and_close(self):
        async def handle(reader, writer):
            writer.write(b"hi")
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            reader, writer = await open_tcp("127.0.0.1", port, 1.0)
            assert await reader.read(2) == b"hi"
            await close_quietly(writer)
            assert writer.is_closing()
        finally:
            server.close()
            await server.wait_closed()

    async def test_refused_is_dial_error(self, unused_port):
        with pytest.raises(DialError, match="failed"):
            await open_tcp("127.0.0.1", unused_port, 1.0)

    async def test_timeout_is_dial_error(self):
        async def never(*args, **kwargs):
            await asyncio.sleep(10)

        with patch("certscan.utils.net.asyncio.open_connection", never):
            with pytest.raises(DialError, match="timed out"):
                await open_tcp("192.0.2.1", 443, 0.05)


class TestResolve:
    async def test_localhost(self):
        addrs = await resolve("localhost")
        assert addrs
        assert len(addrs) == len(set(addrs))

    async def test_failure_returns_empty(self):
        async def fail(*args, **kwargs):
            raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

        loop = asyncio.get_running_loop()
        with patch.object(loop, "getaddrinfo", fail):
            assert await resolve("does-not-exist.invalid") == []


class TestMachineId:
    def test_override_wins(self):
        assert identity.machine_id("my-agent") == "my-agent"

    def test_stable_and_hex(self):
        first = identity.machine_id()
        assert first == identity.machine_id()
        assert len(first) == 32
        int(first, 16)

    def test_fallback_without_machine_id_file(self, tmp_path):
        with patch.object(identity, "_MACHINE_ID_FILES", (tmp_path / "missing",)):
            assert len(identity.machine_id()) == 32
