"""
Best-effort JSON snapshot of the concrete metrics.

The snapshot only warms the store up after a restart; it is never the
source of truth and a missing or broken file simply means starting empty.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from metrics_usage.domain.models import Metric

logger = structlog.get_logger()

METRICS_ADAPTER: TypeAdapter[dict[str, Metric]] = TypeAdapter(dict[str, Metric])


def dump_metrics(metrics: dict[str, Metric]) -> bytes:
    return METRICS_ADAPTER.dump_json(metrics, by_alias=True, exclude_none=True)


class SnapshotFile:
    """JSON file holding the serialized concrete-metric map."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def read(self) -> dict[str, Metric]:
        """Load the metrics from disk, returning an empty map on any failure."""
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            logger.info("snapshot_not_found", path=str(self.path))
            return {}
        except OSError as exc:
            logger.warning("snapshot_read_failed", path=str(self.path), error=str(exc))
            return {}

        try:
            return METRICS_ADAPTER.validate_json(data)
        except ValidationError as exc:
            logger.warning("snapshot_parse_failed", path=str(self.path), error=str(exc))
            return {}

    def write(self, metrics: dict[str, Metric]) -> None:
        """Replace the file content atomically.

        Raises:
            OSError: the file could not be written.
        """
        data = dump_metrics(metrics)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, self.path)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise
