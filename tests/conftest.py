# ZenSync Test Fixtures
# Pytest fixtures and fakes shared by the ZenSync tests

import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any, Callable, Union

import pytest
import yaml

from zensync.errors import StorageFailure
from zensync.sync.store import MemorySnapshotStore, Snapshot
from zensync.transport.base import Transport

Scripted = Union[dict, Exception, Callable[[dict], dict]]


class FakeTransport(Transport):
    """Transport returning scripted responses and recording every request body."""

    def __init__(self, *responses: Scripted):
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def queue(self, *responses: Scripted) -> None:
        self.responses.extend(responses)

    def diff(self, body: dict[str, Any]) -> dict[str, Any]:
        self.requests.append(body)
        if not self.responses:
            raise AssertionError("FakeTransport has no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(body)
        return response

    @property
    def last_request(self) -> dict[str, Any]:
        return self.requests[-1]

    def close(self) -> None:
        self.closed = True


class FailingStore(MemorySnapshotStore):
    """Memory store whose commits fail once `fail` is set."""

    def __init__(self, initial: Snapshot = None):
        super().__init__(initial)
        self.fail = False

    def _persist(self, snapshot: Snapshot) -> None:
        if self.fail:
            raise StorageFailure("disk full")


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def tick(self, seconds: float = 1) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a temporary home directory."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("ZENSYNC_CONFIG", raising=False)
    monkeypatch.delenv("ZENMONEY_TOKEN", raising=False)
    return home


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sample_response() -> dict:
    """Diff response with a user, an account, a tag and two transactions."""
    return {
        "serverTimestamp": 100,
        "user": [{"id": 7, "login": "demo", "currency": 2}],
        "instrument": [{"id": 2, "title": "Russian ruble", "shortTitle": "RUB", "symbol": "₽", "rate": 1}],
        "account": [
            {"id": "a1", "title": "Cash", "type": "cash", "balance": 1500.0, "instrument": 2, "archive": False},
            {"id": "a2", "title": "Old card", "type": "ccard", "balance": 0, "instrument": 2, "archive": True},
        ],
        "tag": [
            {"id": "g1", "title": "Food"},
            {"id": "g2", "title": "Cafe", "parent": "g1"},
        ],
        "merchant": [{"id": "m1", "title": "Corner Shop"}],
        "transaction": [
            {
                "id": "t1",
                "date": "2024-03-01",
                "income": 0,
                "outcome": 250.0,
                "incomeAccount": "a1",
                "outcomeAccount": "a1",
                "tag": ["g1"],
                "merchant": "m1",
                "payee": "Corner Shop",
                "deleted": False,
            },
            {
                "id": "t2",
                "date": "2024-03-15",
                "income": 5000.0,
                "outcome": 0,
                "incomeAccount": "a1",
                "outcomeAccount": "a1",
                "payee": "Salary",
                "comment": "March",
            },
        ],
    }


@pytest.fixture
def config_file(temp_home: Path) -> Path:
    """Create a configuration file."""
    config_dir = temp_home / ".config" / "zensync"
    config_dir.mkdir(parents=True)
    config_path = config_dir / "config.yaml"

    data = {
        "api": {"token": "secret-token", "timeout": 10},
        "storage": {"backend": "file", "path": str(temp_home / "data")},
        "sync": {"concurrency": "block", "force_fetch": ["instrument"]},
        "output": {"verbose": False, "colored": False},
    }
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False)

    return config_path
