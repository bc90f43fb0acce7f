import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from migrations.runner import VERSIONS_DIR, ensure_migrated

from .base import INT64_MAX, INT64_MIN, MetricPoint, SeriesPage, SeriesSummary, StorageBackend
from .errors import StorageError

logger = logging.getLogger(__name__)

SERIES_PER_PAGE = 12
MAX_PAGE = INT64_MAX // SERIES_PER_PAGE


def _clamp(n: int) -> int:
    return max(INT64_MIN, min(INT64_MAX, int(n)))


class SQLiteBackend(StorageBackend):
    def __init__(self, db_path="metrics.db", busy_timeout=5.0, migrations_dir=VERSIONS_DIR):
        """
        SQLite backend for metric points.
        :param db_path: Path to sqlite db file.
        :param busy_timeout: Seconds to wait on a locked database before failing.
        :param migrations_dir: Directory of schema steps applied by connect().
        """
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout
        self.migrations_dir = Path(migrations_dir)
        self._ready = False

    def connect(self):
        # MigrationError propagates: no traffic against a half-migrated schema
        ensure_migrated(self.db_path, self.migrations_dir)
        self._ready = True

    @contextmanager
    def _connection(self):
        """
        Short-lived connection per operation. WAL mode (set by the migrations)
        lets readers work from a snapshot while a writer appends, so no
        connection is shared between threads.
        """
        if not self._ready:
            raise StorageError("Storage backend used before connect()")
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        except sqlite3.Error as e:
            logger.error("Cannot open %s: %s", self.db_path, e)
            raise StorageError(f"Cannot open database: {e}") from e
        try:
            conn.execute("PRAGMA synchronous=FULL")
            yield conn
        except sqlite3.Error as e:
            logger.error("SQLite error on %s: %s", self.db_path, e)
            raise StorageError(f"DB error: {e}") from e
        finally:
            conn.close()

    def ping(self) -> None:
        with self._connection() as conn:
            conn.execute("SELECT 1")

    def append_point(self, namespace: str, id: str, value: float, timestamp: int) -> None:
        with self._connection() as conn:
            # commits on exit, rolls back on error
            with conn:
                conn.execute(
                    "INSERT INTO metrics (namespace, id, value, timestamp) VALUES (?, ?, ?, ?)",
                    (namespace, id, float(value), int(timestamp)),
                )

    def range_query(self, namespace, id, start=None, end=None, limit=None) -> list[MetricPoint]:
        if start is not None and end is not None and start > end:
            return []
        if limit is not None and limit <= 0:
            return []

        query = "SELECT timestamp, value FROM metrics WHERE namespace = ? AND id = ?"
        params: list = [namespace, id]
        if start is not None:
            query += " AND timestamp >= ?"
            params.append(_clamp(start))
        if end is not None:
            query += " AND timestamp <= ?"
            params.append(_clamp(end))

        # rowid breaks timestamp ties in arrival order
        if limit is None:
            query += " ORDER BY timestamp ASC, rowid ASC"
        else:
            query += " ORDER BY timestamp DESC, rowid DESC LIMIT ?"
            params.append(_clamp(limit))

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()

        if limit is not None:
            rows.reverse()
        return [MetricPoint(timestamp=ts, value=val) for ts, val in rows]

    def count_points(self, namespace: str, id: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM metrics WHERE namespace = ?"
        params: list = [namespace]
        if id is not None:
            query += " AND id = ?"
            params.append(id)
        with self._connection() as conn:
            return conn.execute(query, params).fetchone()[0]

    def list_series(self, namespace: str, page: int = 1) -> SeriesPage:
        page = min(max(1, int(page)), MAX_PAGE)
        offset = (page - 1) * SERIES_PER_PAGE

        with self._connection() as conn:
            # one read transaction so the count and the page agree
            conn.execute("BEGIN")
            try:
                total = conn.execute(
                    "SELECT COUNT(DISTINCT id) FROM metrics WHERE namespace = ?",
                    (namespace,),
                ).fetchone()[0]
                rows = conn.execute(
                    """
                    SELECT id, COUNT(*), MAX(timestamp)
                    FROM metrics
                    WHERE namespace = ?
                    GROUP BY id
                    ORDER BY MAX(timestamp) DESC, id ASC
                    LIMIT ? OFFSET ?
                    """,
                    (namespace, SERIES_PER_PAGE, offset),
                ).fetchall()
            finally:
                conn.rollback()

        return SeriesPage(
            namespace=namespace,
            page=page,
            per_page=SERIES_PER_PAGE,
            total_series=total,
            series=[SeriesSummary(id=r[0], point_count=r[1], last_timestamp=r[2]) for r in rows],
        )

    def close(self):
        # connections are per operation; nothing is held open
        self._ready = False
