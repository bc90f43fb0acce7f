from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# SQLite INTEGER range
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class MetricPoint:
    timestamp: int
    value: float


@dataclass(frozen=True)
class SeriesSummary:
    id: str
    point_count: int
    last_timestamp: int


@dataclass(frozen=True)
class SeriesPage:
    namespace: str
    page: int
    per_page: int
    total_series: int
    series: list[SeriesSummary] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return (self.total_series + self.per_page - 1) // self.per_page

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


class StorageBackend(ABC):
    """Abstract append-only store for metric points."""

    @abstractmethod
    def connect(self):
        """Bring the schema up to date. Must succeed before any read or write."""

    @abstractmethod
    def append_point(self, namespace: str, id: str, value: float, timestamp: int) -> None:
        """Durably insert one point. Never overwrites or deduplicates."""

    @abstractmethod
    def range_query(
        self,
        namespace: str,
        id: str,
        start: int | None = None,
        end: int | None = None,
        limit: int | None = None,
    ) -> list[MetricPoint]:
        """Points for namespace+id with start <= timestamp <= end, ascending."""

    @abstractmethod
    def list_series(self, namespace: str, page: int = 1) -> SeriesPage:
        """Series in a namespace, most recently updated first."""

    @abstractmethod
    def close(self):
        """Release any resources held by the backend."""
