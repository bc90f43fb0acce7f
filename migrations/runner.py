import hashlib
import logging
import re
import sqlite3
import threading
import time
from dataclasses import dataclass
from pathlib import Path

from storage.errors import MigrationError

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"
LEDGER_TABLE = "_migrations"

_STEP_NAME = re.compile(r"^(\d{14})_(\w+)\.sql$")

LEDGER_SQL = f"""
CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    applied_at INTEGER NOT NULL
)
"""

# Databases already reconciled by this process, keyed by (db path, steps dir).
_RECONCILE_LOCK = threading.Lock()
_RECONCILED: set[tuple[str, str]] = set()


@dataclass(frozen=True)
class Step:
    version: int
    name: str
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()

    def statements(self) -> list[str]:
        return split_statements(self.sql)


def _has_code(text: str) -> bool:
    return any(
        line.strip() and not line.strip().startswith("--") for line in text.splitlines()
    )


def split_statements(script: str) -> list[str]:
    """
    Split a SQL script into individual statements.

    sqlite3's executescript() commits before it runs, so it cannot be used
    inside the step transaction; statements are executed one at a time instead.
    """
    statements: list[str] = []
    buf = ""
    for line in script.splitlines(keepends=True):
        buf += line
        if sqlite3.complete_statement(buf):
            if _has_code(buf):
                statements.append(buf.strip())
            buf = ""
    if _has_code(buf):
        # trailing statement without a semicolon
        statements.append(buf.strip())
    return statements


def load_steps(directory: Path = VERSIONS_DIR) -> list[Step]:
    """Read migration steps from `directory`, sorted by file name."""
    steps: list[Step] = []
    seen: dict[int, str] = {}
    for path in sorted(Path(directory).glob("*.sql")):
        match = _STEP_NAME.match(path.name)
        if not match:
            logger.debug("Ignoring non-migration file %s", path.name)
            continue
        version = int(match.group(1))
        if version in seen:
            raise MigrationError(
                f"Duplicate migration version {version}: {seen[version]} and {path.stem}"
            )
        seen[version] = path.stem
        steps.append(Step(version, path.stem, path.read_text(encoding="utf-8")))
    return steps


class MigrationRunner:
    def __init__(self, db_path, migrations_dir: Path = VERSIONS_DIR, timeout: float = 30.0):
        """
        :param db_path: Path to the sqlite database file (created if missing).
        :param migrations_dir: Directory holding the ``*.sql`` steps.
        :param timeout: Seconds to wait for exclusive access before failing.
        """
        self.db_path = str(db_path)
        self.migrations_dir = Path(migrations_dir)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # autocommit mode: transactions are opened explicitly per step
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def applied(self) -> list[dict]:
        """Ledger entries in version order (empty if the ledger does not exist yet)."""
        conn = self._connect()
        try:
            exists = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (LEDGER_TABLE,),
            ).fetchone()
            if not exists:
                return []
            rows = conn.execute(
                f"SELECT version, name, checksum, applied_at FROM {LEDGER_TABLE} ORDER BY version"
            ).fetchall()
            return [dict(r) for r in rows]
        except sqlite3.Error as e:
            raise MigrationError(f"Cannot read migration ledger: {e}") from e
        finally:
            conn.close()

    def pending(self) -> list[Step]:
        done = {row["version"] for row in self.applied()}
        return [s for s in load_steps(self.migrations_dir) if s.version not in done]

    def run(self) -> list[str]:
        """Apply every pending step in order. Returns the names applied by this call."""
        steps = load_steps(self.migrations_dir)
        conn = self._connect()
        try:
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(LEDGER_SQL)
                self._check_ledger(conn, steps)
            except sqlite3.Error as e:
                logger.error("Migration ledger unavailable for %s: %s", self.db_path, e)
                raise MigrationError(f"Cannot prepare migration ledger: {e}") from e

            applied = [step.name for step in steps if self._apply(conn, step)]
        finally:
            conn.close()

        if applied:
            logger.info("Applied %d migration(s) to %s", len(applied), self.db_path)
        else:
            logger.debug("Schema of %s already up to date", self.db_path)
        return applied

    def _check_ledger(self, conn: sqlite3.Connection, steps: list[Step]) -> None:
        known = {s.version for s in steps}
        rows = conn.execute(f"SELECT version, name FROM {LEDGER_TABLE}").fetchall()
        missing = [r["name"] for r in rows if r["version"] not in known]
        if missing:
            raise MigrationError(
                f"Database records migrations unknown to this build: {', '.join(missing)}"
            )

    def _apply(self, conn: sqlite3.Connection, step: Step) -> bool:
        try:
            conn.execute("BEGIN EXCLUSIVE")
            row = conn.execute(
                f"SELECT checksum FROM {LEDGER_TABLE} WHERE version = ?", (step.version,)
            ).fetchone()
            if row is not None:
                conn.execute("ROLLBACK")
                if row["checksum"] != step.checksum:
                    raise MigrationError(
                        f"Migration {step.name} was modified after it was applied"
                    )
                return False

            for statement in step.statements():
                conn.execute(statement)
            conn.execute(
                f"INSERT INTO {LEDGER_TABLE} (version, name, checksum, applied_at) "
                "VALUES (?, ?, ?, ?)",
                (step.version, step.name, step.checksum, int(time.time())),
            )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error("Migration %s failed, rolled back: %s", step.name, e)
            raise MigrationError(f"Migration {step.name} failed: {e}") from e

        logger.info("Applied migration %s", step.name)
        return True


def ensure_migrated(db_path, migrations_dir: Path = VERSIONS_DIR) -> list[str]:
    """
    Reconcile `db_path` against the ledger once per process.

    Later calls for the same database return an empty list without touching it.
    """
    key = (str(Path(db_path).resolve()), str(Path(migrations_dir).resolve()))
    with _RECONCILE_LOCK:
        if key in _RECONCILED:
            return []
        applied = MigrationRunner(db_path, migrations_dir).run()
        _RECONCILED.add(key)
        return applied
