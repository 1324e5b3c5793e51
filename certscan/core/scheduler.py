"""Scan scheduler — bounded-concurrency fan-out over one target's ports."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence

from certscan.config import Settings
from certscan.core.dispatcher import ProtocolDispatcher
from certscan.errors import FatalSinkError
from certscan.models.result import ScanResult
from certscan.models.target import ScanTarget
from certscan.models.types import ExclusionRule
from certscan.reporting.sink import ResultSink
from certscan.utils.certs import dedupe_certificates, filter_certificates

logger = logging.getLogger(__name__)


def prepare_results(
    raw: Iterable[ScanResult], rules: Sequence[ExclusionRule],
) -> list[ScanResult]:
    """Filter and de-duplicate each result's chain; drop results left empty."""
    prepared: list[ScanResult] = []
    for result in raw:
        certs = dedupe_certificates(filter_certificates(result.certificates, rules))
        if not certs:
            logger.debug(
                "All certificates filtered for %s:%d (%s)",
                result.ip, result.port, result.handshake_type or "starttls",
            )
            continue
        prepared.append(result.with_certificates(certs))
    return prepared


class ScanScheduler:
    """Runs one task per port, at most ``concurrency`` probing at once.

    A target's scan returns only when every port task has finished. Port
    failures are logged and never cancel siblings; only ``FatalSinkError``
    escapes.
    """

    def __init__(
        self,
        dispatcher: ProtocolDispatcher,
        sink: ResultSink,
        *,
        concurrency: int = 1,
        exclusion_rules: Sequence[ExclusionRule] = (),
    ):
        self.dispatcher = dispatcher
        self.sink = sink
        self.concurrency = concurrency if concurrency > 0 else 1
        self.exclusion_rules = list(exclusion_rules)
        self.semaphore = asyncio.Semaphore(self.concurrency)

    @classmethod
    def from_settings(cls, settings: Settings, sink: ResultSink) -> ScanScheduler:
        return cls(
            ProtocolDispatcher.from_settings(settings.scan),
            sink,
            concurrency=settings.scan.effective_concurrency,
            exclusion_rules=settings.exclude_certs,
        )

    async def scan(
        self,
        ip: str,
        hostname: str,
        ports: Iterable[int],
        protocol: str | None = None,
    ) -> None:
        await self.scan_target(
            ScanTarget(ip=ip, hostname=hostname, ports=frozenset(ports), protocol=protocol),
        )

    async def scan_target(self, target: ScanTarget) -> None:
        try:
            async with asyncio.TaskGroup() as tg:
                for port in target.sorted_ports():
                    tg.create_task(
                        self._scan_port(target, port),
                        name=f"scan {target.ip}:{port}",
                    )
        except* FatalSinkError as group:
            raise group.exceptions[0] from None

    async def _scan_port(self, target: ScanTarget, port: int) -> None:
        async with self.semaphore:
            try:
                raw = await self.dispatcher.dispatch(
                    target.ip, target.hostname, port, target.protocol,
                )
            except Exception:
                logger.exception("Scan of %s:%d failed", target.ip, port)
                return

        results = prepare_results(raw, self.exclusion_rules)
        if not results:
            return
        try:
            await self.sink.send(results)
        except FatalSinkError:
            raise
        except Exception:
            logger.exception("Sink failed for %s:%d", target.ip, port)
