"""Tests for the registry layer."""

from datetime import timedelta

from service_sentinel.models import (
    GlobalSettings,
    MonitoredService,
    PortStatus,
    ProcessStatus,
    ServiceStatus,
)
from service_sentinel.storage import InMemoryRegistry


def test_registry_initialization(registry):
    """Test registry initialization."""
    assert registry.get_service_count() == 0
    assert registry.list_services() == []
    assert registry.query_events() == []
    assert registry.get_settings() == GlobalSettings()


def test_registry_accepts_initial_settings():
    registry = InMemoryRegistry(settings=GlobalSettings(check_frequency=10))
    assert registry.get_settings().check_frequency == 10


def test_add_and_get_service(registry):
    service = MonitoredService(id=7, name="api", url="api.local", port=8080)
    registry.add_service(service)

    assert registry.get_service(7) == service
    assert registry.get_service_count() == 1


def test_get_missing_service(registry):
    assert registry.get_service(42) is None


def test_update_service_replaces_record(registry, make_service):
    """Test that updates leave earlier copies untouched."""
    original = make_service(status=ServiceStatus.RUNNING)

    updated = registry.update_service(original.id, status=ServiceStatus.ERROR)

    assert updated.status == ServiceStatus.ERROR
    assert registry.get_service(original.id).status == ServiceStatus.ERROR
    assert original.status == ServiceStatus.RUNNING


def test_update_missing_service(registry):
    assert registry.update_service(99, status=ServiceStatus.RUNNING) is None


def test_remove_service(registry, make_service):
    service = make_service()

    assert registry.remove_service(service.id) is True
    assert registry.remove_service(service.id) is False
    assert registry.get_service_count() == 0


def test_events_are_returned_newest_first(registry, now):
    registry.append_event(1, "Started", timestamp=now - timedelta(hours=2))
    registry.append_event(1, "Stopped", timestamp=now - timedelta(hours=1))
    registry.append_event(2, "Started", timestamp=now)

    actions = [entry.action for entry in registry.query_events(service_id=1)]
    assert actions == ["Stopped", "Started"]


def test_events_since_filter(registry, now):
    registry.append_event(1, "Old", timestamp=now - timedelta(days=10))
    registry.append_event(1, "Recent", timestamp=now - timedelta(days=1))

    entries = registry.query_events(service_id=1, since=now - timedelta(days=7))
    assert [entry.action for entry in entries] == ["Recent"]


def test_event_ids_are_unique(registry):
    first = registry.append_event(1, "Started")
    second = registry.append_event(1, "Stopped", status=ServiceStatus.STOPPED)

    assert first.id != second.id
    assert second.status == ServiceStatus.STOPPED


def test_update_settings(registry):
    settings = registry.update_settings(check_frequency=15, auto_restart=True)

    assert settings.check_frequency == 15
    assert settings.auto_restart is True
    assert registry.get_settings().check_frequency == 15


def test_tracked_ports(registry):
    port = registry.add_port(service_id=1, port=5432, service="Database")
    assert port.status == PortStatus.UNKNOWN

    registry.update_port(port.id, status=PortStatus.IN_USE)

    assert registry.list_ports()[0].status == PortStatus.IN_USE
    assert registry.update_port(99, status=PortStatus.IN_USE) is None


def test_tracked_processes(registry):
    first = registry.add_process(service_id=1, pid=100, command="node server.js")
    registry.add_process(service_id=2, pid=200, command="python app.py")

    assert len(registry.list_processes()) == 2
    assert [p.pid for p in registry.list_processes(service_id=1)] == [100]

    registry.update_process(first.id, status=ProcessStatus.TERMINATED)
    assert registry.list_processes(service_id=1)[0].status == ProcessStatus.TERMINATED
