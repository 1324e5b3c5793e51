"""ResultSink ABC and an in-memory sink."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any

from certscan.models.result import ScanResult


class ResultSink(ABC):
    """Receives non-empty, filtered results as soon as a port finishes.

    ``send`` may be called concurrently from many port tasks. Only
    ``FatalSinkError`` may escape it.
    """

    @abstractmethod
    async def send(self, results: list[ScanResult]) -> None:
        """Deliver one batch of results."""

    async def close(self) -> None:  # noqa: B027
        """Release transport resources."""

    async def __aenter__(self) -> ResultSink:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()


class CollectingSink(ResultSink):
    """Keeps every batch in memory (``probe`` command, tests)."""

    def __init__(self) -> None:
        self.batches: list[list[ScanResult]] = []
        self._lock = asyncio.Lock()

    async def send(self, results: list[ScanResult]) -> None:
        async with self._lock:
            self.batches.append(list(results))

    @property
    def results(self) -> list[ScanResult]:
        return [r for batch in self.batches for r in batch]
