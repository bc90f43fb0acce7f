import requests

from scripts import report_metric


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response or FakeResponse()
        self.exc = exc
        self.calls = []

    def post(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.exc:
            raise self.exc
        return self.response


def test_report_posts_value_as_query_param():
    session = FakeSession()
    ok = report_metric.report(
        "deploy", "binary_size", 10485760, base_url="https://charts.example/", timeout=2, session=session
    )
    assert ok is True
    assert session.calls == [
        ("https://charts.example/deploy/binary_size", {"value": 10485760}, 2)
    ]


def test_report_quotes_path_components():
    assert (
        report_metric.metric_url("my team", "p95/latency", "http://h")
        == "http://h/my%20team/p95%2Flatency"
    )


def test_report_never_raises_on_http_error():
    session = FakeSession(response=FakeResponse(503))
    assert report_metric.report("deploy", "x", 1, session=session) is False


def test_report_never_raises_on_connection_error():
    session = FakeSession(exc=requests.ConnectionError("refused"))
    assert report_metric.report("deploy", "x", 1, session=session) is False


def test_timed_reports_elapsed_seconds_even_on_failure():
    session = FakeSession()
    try:
        with report_metric.timed("build_duration", namespace="deploy", session=session):
            raise RuntimeError("build broke")
    except RuntimeError:
        pass
    url, params, _ = session.calls[0]
    assert url.endswith("/deploy/build_duration")
    assert params == {"value": 0}
