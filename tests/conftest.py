from __future__ import annotations

import pytest

from logslim.bench.datasets import connection_refused_lines, synthetic_log, toy_log
from logslim.cache.lru import RunCaches
from logslim.config import Config, load_config
from logslim.utils import Deadline


class ManualClockDeadline(Deadline):
    """Deadline whose clock only moves by `tick` after each check."""

    def __init__(self, seconds, tick=1.0):
        super().__init__(seconds)
        self.now = 0.0
        self.tick = tick

    @property
    def elapsed(self):
        return self.now

    def check(self, stage=""):
        super().check(stage)
        self.now += self.tick


@pytest.fixture
def toy_text() -> str:
    return toy_log()


@pytest.fixture
def refused_text() -> str:
    return "\n".join(connection_refused_lines())


@pytest.fixture(scope="session")
def synthetic_text() -> str:
    return synthetic_log(n_lines=10_000, n_templates=50)


@pytest.fixture
def config(monkeypatch) -> Config:
    monkeypatch.delenv("LOGSLIM_CONFIG_JSON", raising=False)
    return load_config()


@pytest.fixture
def caches(config) -> RunCaches:
    return RunCaches.from_config(config.caches)


@pytest.fixture
def manual_deadline():
    return ManualClockDeadline
