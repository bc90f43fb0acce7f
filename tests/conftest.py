import pytest

from storage.sqlite_backend import SQLiteBackend


class FrozenClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "metrics.db"


@pytest.fixture
def backend(db_path):
    b = SQLiteBackend(db_path=db_path, busy_timeout=5.0)
    b.connect()
    yield b
    b.close()


@pytest.fixture
def clock():
    return FrozenClock()
