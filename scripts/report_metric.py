"""
Best-effort reporter for pipelines (build/deploy tooling).

Failures are logged and swallowed: recording a metric must never fail the
task being measured.
"""

import logging
import os
import sys
import time
from contextlib import contextmanager
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

METRICS_URL = os.getenv("METRICS_URL", "http://localhost:3000")
METRICS_KEY = os.getenv("METRICS_KEY", "deploy")
TIMEOUT_SEC = float(os.getenv("METRICS_TIMEOUT_SEC", "5"))


def metric_url(namespace: str, metric_id: str, base_url: str = METRICS_URL) -> str:
    return f"{base_url.rstrip('/')}/{quote(namespace, safe='')}/{quote(metric_id, safe='')}"


def report(namespace, metric_id, value, base_url=METRICS_URL, timeout=TIMEOUT_SEC, session=None) -> bool:
    """POST one point. Returns True on success, False on any failure."""
    http = session or requests
    try:
        response = http.post(
            metric_url(namespace, metric_id, base_url),
            params={"value": value},
            timeout=timeout,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to record %s/%s: %s", namespace, metric_id, exc)
        return False
    return True


@contextmanager
def timed(metric_id: str, namespace: str = METRICS_KEY, **kwargs):
    """Report the elapsed whole seconds of the block, even if it raises."""
    started = time.monotonic()
    try:
        yield
    finally:
        report(namespace, metric_id, int(time.monotonic() - started), **kwargs)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if len(sys.argv) == 4:
        ok = report(sys.argv[1], sys.argv[2], sys.argv[3])
        print("Metric recorded." if ok else "Metric not recorded.")
    elif len(sys.argv) == 3:
        ok = report(METRICS_KEY, sys.argv[1], sys.argv[2])
        print("Metric recorded." if ok else "Metric not recorded.")
    else:
        print("Usage: python -m scripts.report_metric [namespace] <metric_id> <value>")
    # exit 0 either way; callers treat metrics as non-fatal
