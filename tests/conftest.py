"""Shared pytest fixtures."""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.core.settings import Settings
from app.main import create_app


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cfg(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATA_DIR=str(tmp_path / "data"),
        LOCAL_UPLOAD_DIR=str(tmp_path / "uploads"),
        DOCS_BUCKET=None,
        MAX_UPLOAD_MB=1,
        START_SCHEDULER_WEB=False,
        PUBLIC_APP_HOST=None,
    )


@pytest.fixture
def app(cfg, clock):
    return create_app(cfg, clock=clock)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
