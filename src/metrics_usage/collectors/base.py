from __future__ import annotations

import asyncio
import time
from typing import Protocol

import structlog

logger = structlog.get_logger()


class Collector(Protocol):
    """A source of facts polled periodically."""

    name: str

    async def execute(self) -> None: ...


async def run_periodically(collector: Collector, period: float) -> None:
    """Run ``collector`` now and then every ``period`` seconds until cancelled.

    A failing run is logged and the next one still happens.
    """
    log = logger.bind(collector=collector.name)
    while True:
        start_time = time.monotonic()
        try:
            await collector.execute()
        except asyncio.CancelledError:
            log.info("collector_cancelled")
            raise
        except Exception:
            log.exception("collector_run_failed")
        duration = time.monotonic() - start_time
        log.debug("collector_run_finished", duration=duration)
        await asyncio.sleep(max(0.0, period - duration))


class CollectorRunner:
    """Owns the background tasks of the enabled collectors."""

    def __init__(self) -> None:
        self._scheduled: list[tuple[Collector, float]] = []
        self._tasks: list[asyncio.Task[None]] = []

    def add(self, collector: Collector, period: float) -> None:
        self._scheduled.append((collector, period))

    @property
    def collectors(self) -> list[Collector]:
        return [collector for collector, _ in self._scheduled]

    def start(self) -> None:
        if self._tasks:
            return
        for collector, period in self._scheduled:
            logger.info("collector_started", collector=collector.name, period=period)
            self._tasks.append(
                asyncio.create_task(
                    run_periodically(collector, period), name=f"collector-{collector.name}"
                )
            )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
