"""
In-memory store of metric names and their usage.

Writes never touch the maps directly: callers push facts onto one of four
bounded queues and a dedicated consumer task per queue applies them. Reads
take the lock of the map they look at and return copies.

Three maps are kept:

- the concrete metrics, confirmed by the metric-name collector,
- the partial metrics, names containing a variable or a regexp,
- the pending usage, usage received for a metric not confirmed yet.

The metrics lock guards the concrete metrics, the pending usage and the
absence counters. The partial lock guards the partial metrics. Code holding
both always takes the metrics lock first.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any, TypeVar

import structlog

from metrics_usage.config.settings import DatabaseSettings
from metrics_usage.core.errors import PatternCompileError
from metrics_usage.database.patterns import generate_regexp, is_matching
from metrics_usage.database.queue import FactQueue
from metrics_usage.database.snapshot import SnapshotFile
from metrics_usage.domain.models import Metric, PartialMetric, Usage, merge_usage

logger = structlog.get_logger()

DEFAULT_THRESHOLD = 3
DEFAULT_FLUSH_PERIOD = 300.0
USAGE_QUEUE_SIZE = 250
METRICS_QUEUE_SIZE = 10

T = TypeVar("T")


def _merged(existing: Usage | None, usage: Usage | None) -> Usage | None:
    # never keep a reference to a caller-owned usage
    if existing is None:
        return usage.clone() if usage is not None else None
    return merge_usage(existing, usage)


class MetricsStore:
    """Eventually consistent store reconciling metric names and usage."""

    def __init__(
        self,
        *,
        threshold: int = DEFAULT_THRESHOLD,
        snapshot: SnapshotFile | None = None,
        flush_period: float = DEFAULT_FLUSH_PERIOD,
        usage_queue_size: int = USAGE_QUEUE_SIZE,
        metrics_queue_size: int = METRICS_QUEUE_SIZE,
        partial_metric_ttl: int = 0,
        pending_usage_ttl: int = 0,
    ) -> None:
        self._threshold = threshold
        self._snapshot = snapshot
        self._flush_period = flush_period
        self._partial_metric_ttl = partial_metric_ttl
        self._pending_usage_ttl = pending_usage_ttl

        # guarded by _metrics_lock
        self._metrics: dict[str, Metric] = {}
        # number of consecutive metric-name batches a metric was missing from
        self._absence: dict[str, int] = {}
        self._pending: dict[str, Usage] = {}
        self._pending_age: dict[str, int] = {}

        # guarded by _partial_lock
        self._partial_metrics: dict[str, PartialMetric] = {}
        self._partial_age: dict[str, int] = {}

        self._metrics_lock = asyncio.Lock()
        self._partial_lock = asyncio.Lock()

        self._metrics_queue: FactQueue[list[str]] = FactQueue("metrics", metrics_queue_size)
        self._usage_queue: FactQueue[dict[str, Usage | None]] = FactQueue(
            "usage", usage_queue_size
        )
        self._partial_usage_queue: FactQueue[dict[str, Usage | None]] = FactQueue(
            "partial_usage", usage_queue_size
        )
        self._labels_queue: FactQueue[dict[str, list[str]]] = FactQueue(
            "labels", usage_queue_size
        )
        self._tasks: list[asyncio.Task[None]] = []
        # batches being applied, outliving a cancelled consumer
        self._inflight: set[asyncio.Future[None]] = set()

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> MetricsStore:
        return cls(
            threshold=settings.threshold,
            snapshot=None if settings.in_memory else SnapshotFile(settings.path),
            flush_period=settings.flush_period,
            usage_queue_size=settings.usage_queue_size,
            metrics_queue_size=settings.metrics_queue_size,
            partial_metric_ttl=settings.partial_metric_ttl,
            pending_usage_ttl=settings.pending_usage_ttl,
        )

    # ------------------------------------------------------------------
    # lifecycle

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Load the snapshot (if any) and start the consumers."""
        if self._tasks:
            return
        if self._snapshot is not None:
            await self._load_snapshot()

        self._tasks = [
            self._spawn(self._metrics_queue, self._apply_metric_list),
            self._spawn(self._usage_queue, self._apply_usage),
            self._spawn(self._partial_usage_queue, self._apply_partial_usage),
            self._spawn(self._labels_queue, self._apply_labels),
        ]
        if self._snapshot is not None:
            self._tasks.append(
                asyncio.create_task(self._flush_periodically(), name="store-flush")
            )
        logger.info("store_started", threshold=self._threshold, persistent=self._snapshot is not None)

    async def stop(self) -> None:
        """Stop the consumers and write a last snapshot."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._drain_inflight()
        await self.flush()
        logger.info("store_stopped")

    async def _drain_inflight(self) -> None:
        pending = list(self._inflight)
        if not pending:
            return
        logger.info("store_draining", batches=len(pending))
        results = await asyncio.gather(*pending, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("store_batch_failed", error=str(result))

    async def __aenter__(self) -> MetricsStore:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def join(self) -> None:
        """Wait until every queued fact has been applied."""
        await asyncio.gather(
            self._metrics_queue.join(),
            self._usage_queue.join(),
            self._partial_usage_queue.join(),
            self._labels_queue.join(),
        )

    # ------------------------------------------------------------------
    # reads

    async def get_metric(self, name: str) -> Metric | None:
        async with self._metrics_lock:
            metric = self._metrics.get(name)
            return metric.clone() if metric is not None else None

    async def list_metrics(self) -> dict[str, Metric]:
        async with self._metrics_lock:
            return {name: metric.clone() for name, metric in self._metrics.items()}

    async def list_partial_metrics(self) -> dict[str, PartialMetric]:
        async with self._partial_lock:
            return {name: partial.clone() for name, partial in self._partial_metrics.items()}

    async def list_pending_usage(self) -> dict[str, Usage]:
        async with self._metrics_lock:
            return {name: usage.clone() for name, usage in self._pending.items()}

    async def stats(self) -> dict[str, int]:
        async with self._metrics_lock:
            async with self._partial_lock:
                return {
                    "metrics": len(self._metrics),
                    "partial_metrics": len(self._partial_metrics),
                    "pending_usages": len(self._pending),
                    "queued_metric_lists": self._metrics_queue.size(),
                    "queued_usages": self._usage_queue.size(),
                    "queued_partial_usages": self._partial_usage_queue.size(),
                    "queued_labels": self._labels_queue.size(),
                }

    # ------------------------------------------------------------------
    # writes

    async def delete_metric(self, name: str) -> bool:
        async with self._metrics_lock:
            if name not in self._metrics:
                return False
            await self._delete_metric(name)
            return True

    async def enqueue_metric_list(self, names: Iterable[str]) -> None:
        await self._metrics_queue.enqueue(list(names))

    async def enqueue_usage(self, usages: Mapping[str, Usage | None]) -> None:
        await self._usage_queue.enqueue(dict(usages))

    async def enqueue_partial_usage(self, usages: Mapping[str, Usage | None]) -> None:
        await self._partial_usage_queue.enqueue(dict(usages))

    async def enqueue_labels(self, labels: Mapping[str, Iterable[str]]) -> None:
        await self._labels_queue.enqueue({name: list(values) for name, values in labels.items()})

    # ------------------------------------------------------------------
    # persistence

    async def flush(self) -> None:
        """Write the concrete metrics to the snapshot file, if configured."""
        if self._snapshot is None:
            return
        metrics = await self.list_metrics()
        try:
            await asyncio.to_thread(self._snapshot.write, metrics)
        except OSError as exc:
            logger.error("snapshot_write_failed", path=str(self._snapshot.path), error=str(exc))
            return
        logger.debug("snapshot_written", path=str(self._snapshot.path), metrics=len(metrics))

    async def _flush_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._flush_period)
            await self.flush()

    async def _load_snapshot(self) -> None:
        assert self._snapshot is not None
        metrics = await asyncio.to_thread(self._snapshot.read)
        async with self._metrics_lock:
            for name, metric in metrics.items():
                self._metrics.setdefault(name, metric)
                self._absence.setdefault(name, 0)
        logger.info("snapshot_loaded", path=str(self._snapshot.path), metrics=len(metrics))

    # ------------------------------------------------------------------
    # consumers

    def _spawn(
        self, queue: FactQueue[T], apply: Callable[[T], Awaitable[None]]
    ) -> asyncio.Task[None]:
        return asyncio.create_task(self._consume(queue, apply), name=f"store-{queue.name}")

    async def _consume(self, queue: FactQueue[T], apply: Callable[[T], Awaitable[None]]) -> None:
        while True:
            batch = await queue.dequeue()
            # a batch that started is applied to completion even on shutdown
            task = asyncio.ensure_future(apply(batch))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("store_batch_failed", queue=queue.name)
            finally:
                queue.task_done()

    async def _apply_metric_list(self, names: list[str]) -> None:
        async with self._metrics_lock:
            for name in self._absence:
                self._absence[name] += 1

            for name in names:
                try:
                    if name not in self._absence:
                        await self._confirm_metric(name)
                    self._absence[name] = 0
                except Exception:
                    logger.exception("metric_name_skipped", metric_name=name)

            expired = [name for name, count in self._absence.items() if count >= self._threshold]
            for name in expired:
                await self._delete_metric(name)
            if expired:
                logger.info("metrics_evicted", count=len(expired), threshold=self._threshold)

            self._age_pending_usage()
            await self._age_partial_metrics()

    async def _apply_usage(self, usages: dict[str, Usage | None]) -> None:
        async with self._metrics_lock:
            for name, usage in usages.items():
                if usage is None:
                    continue
                try:
                    metric = self._metrics.get(name)
                    if metric is not None:
                        metric.usage = _merged(metric.usage, usage)
                        continue
                    logger.debug("usage_for_unknown_metric", metric_name=name)
                    # buffered until the metric collector confirms the name
                    pending = _merged(self._pending.get(name), usage)
                    assert pending is not None
                    self._pending[name] = pending
                    self._pending_age[name] = 0
                except Exception:
                    logger.exception("usage_skipped", metric_name=name)

    async def _apply_partial_usage(self, usages: dict[str, Usage | None]) -> None:
        async with self._metrics_lock:
            async with self._partial_lock:
                for name, usage in usages.items():
                    try:
                        partial = self._partial_metrics.get(name)
                        if partial is None:
                            self._partial_metrics[name] = self._new_partial_metric(name, usage)
                        else:
                            partial.usage = _merged(partial.usage, usage)
                        self._partial_age[name] = 0
                    except Exception:
                        logger.exception("partial_usage_skipped", partial_metric=name)

    async def _apply_labels(self, labels: dict[str, list[str]]) -> None:
        async with self._metrics_lock:
            for name, values in labels.items():
                try:
                    metric = self._metrics.get(name)
                    if metric is not None:
                        metric.labels.update(values)
                        continue
                    # the metric was found by another source before the metric collector
                    metric = Metric(labels=set(values))
                    self._metrics[name] = metric
                    await self._link_partial_metrics(name)
                    self._adopt_pending_usage(name, metric)
                except Exception:
                    logger.exception("labels_skipped", metric_name=name)

    # ------------------------------------------------------------------
    # helpers, the caller holds the metrics lock unless stated otherwise

    async def _confirm_metric(self, name: str) -> None:
        metric = self._metrics.get(name)
        if metric is None:
            metric = Metric()
            self._metrics[name] = metric
        await self._link_partial_metrics(name)
        self._adopt_pending_usage(name, metric)

    def _adopt_pending_usage(self, name: str, metric: Metric) -> None:
        usage = self._pending.pop(name, None)
        self._pending_age.pop(name, None)
        if usage is not None:
            metric.usage = merge_usage(metric.usage, usage)

    async def _link_partial_metrics(self, name: str) -> None:
        async with self._partial_lock:
            for partial in self._partial_metrics.values():
                regexp = partial.matching_regexp
                if regexp is not None and is_matching(regexp, name):
                    partial.matching_metrics.add(name)

    async def _delete_metric(self, name: str) -> None:
        self._metrics.pop(name, None)
        self._absence.pop(name, None)
        async with self._partial_lock:
            for partial in self._partial_metrics.values():
                partial.matching_metrics.discard(name)

    def _new_partial_metric(self, name: str, usage: Usage | None) -> PartialMetric:
        # caller holds both locks
        try:
            regexp = generate_regexp(name)
        except PatternCompileError as exc:
            logger.error(
                "partial_metric_not_compiled",
                partial_metric=name,
                error=exc.details.get("error"),
            )
            regexp = None

        matching: set[str] = set()
        if regexp is not None:
            matching = {metric for metric in self._metrics if is_matching(regexp, metric)}
        return PartialMetric(
            usage=_merged(None, usage),
            matching_regexp=regexp,
            matching_metrics=matching,
        )

    def _age_pending_usage(self) -> None:
        if not self._pending_usage_ttl:
            return
        dropped = []
        for name in list(self._pending_age):
            self._pending_age[name] += 1
            if self._pending_age[name] >= self._pending_usage_ttl:
                dropped.append(name)
                del self._pending_age[name]
                self._pending.pop(name, None)
        if dropped:
            logger.info("pending_usages_dropped", count=len(dropped))

    async def _age_partial_metrics(self) -> None:
        if not self._partial_metric_ttl:
            return
        async with self._partial_lock:
            dropped = []
            for name in list(self._partial_age):
                self._partial_age[name] += 1
                if self._partial_age[name] >= self._partial_metric_ttl:
                    dropped.append(name)
                    del self._partial_age[name]
                    self._partial_metrics.pop(name, None)
            if dropped:
                logger.info("partial_metrics_dropped", count=len(dropped))
