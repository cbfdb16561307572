"""Shared fixtures for quickconnect tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from quickconnect.pairing.devices import AuthorizedDeviceRegistry
from quickconnect.pairing.engine import QuickConnect


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def devices(tmp_path: Path) -> AuthorizedDeviceRegistry:
    return AuthorizedDeviceRegistry(tmp_path / "devices.json")


@pytest.fixture
def engine(devices: AuthorizedDeviceRegistry, clock: FakeClock) -> QuickConnect:
    return QuickConnect(devices=devices, clock=clock)
