"""Webhook sink — POSTs scan results as JSON with aiohttp."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from certscan.config import WebhookSettings
from certscan.errors import AuthError
from certscan.models.result import Payload, ScanResult
from certscan.reporting.sink import ResultSink

logger = logging.getLogger(__name__)

MACHINE_ID_HEADER = "x-ultrapki-machine-id"

REGISTRATION_GUIDANCE = (
    "No token provided.\n"
    "You can register your system in seconds with the following command:\n\n"
    "  curl -sSf https://cd.ultrapki.com/sh | sh\n\n"
    "This will generate a token for your system and show you how to add it "
    "to your config."
)


class WebhookSink(ResultSink):
    """Reports each batch to the configured webhook.

    Transport errors and non-2xx replies drop the batch and scanning goes on.
    A 403 while no token is configured raises AuthError: every later batch
    would be rejected too.

    Usage::

        async with WebhookSink(settings.webhook, machine_id=mid) as sink:
            await sink.send(results)
    """

    def __init__(
        self,
        settings: WebhookSettings,
        *,
        machine_id: str = "",
        primary_ip: str = "",
    ):
        self.url = settings.url
        self.token = settings.token
        self.machine_id = machine_id
        self.primary_ip = primary_ip
        self.timeout = aiohttp.ClientTimeout(total=settings.timeout)
        self._session: aiohttp.ClientSession | None = None
        self._lock = asyncio.Lock()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
            headers[MACHINE_ID_HEADER] = self.machine_id
        return headers

    def build_payload(self, results: list[ScanResult]) -> dict[str, Any]:
        return Payload(
            primary_ip=self.primary_ip,
            machine_id=self.machine_id,
            scan_results=results,
        ).to_wire()

    async def send(self, results: list[ScanResult]) -> None:
        if not results:
            return
        if not self.url:
            logger.warning("No webhook_url configured, dropping %d results", len(results))
            return
        try:
            body = json.dumps(self.build_payload(results))
        except (TypeError, ValueError) as e:
            logger.error("Failed to marshal results: %s", e)
            return

        async with self._lock:
            status = await self._post(body)
        if status is None or 200 <= status < 300:
            return

        logger.error("Webhook returned status: %d", status)
        if status == 403:
            logger.error("Invalid or missing token for webhook %s", self.url)
            if not self.token:
                msg = f"Webhook {self.url} rejected the agent (403) and no token is set"
                raise AuthError(msg, guidance=REGISTRATION_GUIDANCE)

    async def _post(self, body: str) -> int | None:
        session = await self._ensure_session()
        try:
            async with session.post(self.url, data=body, headers=self.headers()) as resp:
                logger.debug("Webhook %s -> %d", self.url, resp.status)
                return resp.status
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.error("Webhook request failed: %s", e)
            return None

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
