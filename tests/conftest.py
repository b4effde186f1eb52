"""Shared fixtures for the sentinel tests."""

from datetime import datetime, timezone

import pytest

from service_sentinel.models import EventLogEntry, MonitoredService, ServiceStatus, ServiceType
from service_sentinel.storage import InMemoryRegistry

# A Wednesday, so weekday() == 2
NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def registry():
    """Create a fresh registry for each test."""
    return InMemoryRegistry()


@pytest.fixture
def make_service(registry):
    """Register services with sensible defaults."""
    counter = iter(range(1, 1000))

    def _make(**overrides) -> MonitoredService:
        service_id = overrides.pop("id", next(counter))
        fields = {
            "id": service_id,
            "name": f"service-{service_id}",
            "url": "app.example.com",
            "port": 3000 + service_id,
            "type": ServiceType.BACKEND,
            "status": ServiceStatus.RUNNING,
        }
        fields.update(overrides)
        return registry.add_service(MonitoredService(**fields))

    return _make


@pytest.fixture
def make_entry():
    """Build standalone event log entries."""
    counter = iter(range(1, 10000))

    def _make(action: str, timestamp: datetime, status=None, service_id: int = 1) -> EventLogEntry:
        return EventLogEntry(
            id=next(counter),
            service_id=service_id,
            action=action,
            status=status,
            timestamp=timestamp,
        )

    return _make
