import sys

from api.utils.db import make_backend
from api.utils.query import format_timestamp, parse_bound


def query(namespace, metric_id, start=None, end=None, limit=None, db_path=None):
    backend = make_backend(db_path)
    backend.connect()
    try:
        return backend.range_query(namespace, metric_id, start, end, limit)
    finally:
        backend.close()


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage: python -m scripts.query_metrics <namespace> <metric_id> [start] [end]")
        sys.exit(1)
    start = parse_bound(sys.argv[3]) if len(sys.argv) > 3 else None
    end = parse_bound(sys.argv[4]) if len(sys.argv) > 4 else None
    for point in query(sys.argv[1], sys.argv[2], start, end):
        print(f"[{format_timestamp(point.timestamp)}] {point.value}")
