import os
from pathlib import Path

from storage.factory import get_storage_backend

# <repo root>/data/metrics.db
DEFAULT_DB_PATH = Path(__file__).resolve().parents[2] / "data" / "metrics.db"

DB_PATH = Path(os.getenv("METRICS_DB_PATH", str(DEFAULT_DB_PATH)))
# how long a request may wait on a locked database before failing
BUSY_TIMEOUT_SEC = float(os.getenv("METRICS_BUSY_TIMEOUT_SEC", "5"))


def make_backend(db_path=None, busy_timeout=None, migrations_dir=None):
    """Return an unconnected backend; connect() brings the schema up to date."""
    kwargs = {}
    if migrations_dir is not None:
        kwargs["migrations_dir"] = migrations_dir
    return get_storage_backend(
        "sqlite",
        db_path=str(db_path or DB_PATH),
        busy_timeout=BUSY_TIMEOUT_SEC if busy_timeout is None else busy_timeout,
        **kwargs,
    )
