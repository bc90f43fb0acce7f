"""
Point ingestion for the metrics service.

A write is addressed as ``/{namespace}/{metric_id}?value=...``. Possession of the
namespace string is the only write capability: there is no per-row owner or
credential check. The timestamp is the server clock at receipt, never the
caller's.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable

from storage.base import StorageBackend
from storage.errors import InputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestedPoint:
    namespace: str
    id: str
    value: float
    timestamp: int


def parse_value(raw: Any) -> float:
    """Parse a raw request value into a finite float, or raise InputError."""
    if raw is None:
        raise InputError("Missing required parameter: value")
    if isinstance(raw, bool):
        raise InputError(f"Value is not a number: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InputError(f"Value is not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise InputError(f"Value must be finite, got {raw!r}")
    return value


def require_component(name: str, raw: str | None) -> str:
    if raw is None or not raw.strip():
        raise InputError(f"Missing required path component: {name}")
    return raw


class PointIngestor:
    def __init__(self, backend: StorageBackend, clock: Callable[[], float] = time.time):
        self.backend = backend
        self.clock = clock

    def ingest(self, namespace: str | None, metric_id: str | None, raw_value: Any) -> IngestedPoint:
        """
        Validate and store one point.

        InputError is raised before storage is touched; StorageError from the
        backend propagates unchanged and is not retried here.
        """
        namespace = require_component("namespace", namespace)
        metric_id = require_component("metric_id", metric_id)
        value = parse_value(raw_value)

        timestamp = int(self.clock())
        self.backend.append_point(namespace, metric_id, value, timestamp)
        logger.debug("Stored %s/%s=%r at %d", namespace, metric_id, value, timestamp)
        return IngestedPoint(namespace, metric_id, value, timestamp)
