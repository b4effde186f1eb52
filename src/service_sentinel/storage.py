"""Registry layer: the storage interface the sentinel consumes and an in-memory implementation."""

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from .models import (
    EventLogEntry,
    GlobalSettings,
    MonitoredService,
    ServiceStatus,
    TrackedPort,
    TrackedProcess,
)

logger = logging.getLogger(__name__)


class Registry(Protocol):
    """Persistent registry of services, settings, tracked resources and the event log."""

    def list_services(self) -> list[MonitoredService]: ...

    def get_service(self, service_id: int) -> Optional[MonitoredService]: ...

    def update_service(self, service_id: int, **changes: Any) -> Optional[MonitoredService]: ...

    def append_event(
        self,
        service_id: Optional[int],
        action: str,
        details: Optional[str] = None,
        status: Optional[ServiceStatus] = None,
    ) -> EventLogEntry: ...

    def query_events(
        self, service_id: Optional[int] = None, since: Optional[datetime] = None
    ) -> list[EventLogEntry]: ...

    def get_settings(self) -> GlobalSettings: ...

    def update_settings(self, **changes: Any) -> GlobalSettings: ...

    def list_ports(self) -> list[TrackedPort]: ...

    def update_port(self, port_id: int, **changes: Any) -> Optional[TrackedPort]: ...

    def list_processes(self, service_id: Optional[int] = None) -> list[TrackedProcess]: ...

    def update_process(self, process_id: int, **changes: Any) -> Optional[TrackedProcess]: ...


class InMemoryRegistry:
    """In-memory registry implementation.

    Records are replaced rather than mutated on update, so callers holding an
    earlier copy keep seeing the state they read.
    """

    def __init__(self, settings: Optional[GlobalSettings] = None) -> None:
        """Initialize the in-memory registry."""
        self._services: dict[int, MonitoredService] = {}
        self._events: list[EventLogEntry] = []
        self._ports: dict[int, TrackedPort] = {}
        self._processes: dict[int, TrackedProcess] = {}
        self._settings = settings or GlobalSettings()
        self._event_ids = itertools.count(1)
        self._port_ids = itertools.count(1)
        self._process_ids = itertools.count(1)
        logger.info("InMemoryRegistry initialized - storage_type: in_memory")

    # Services

    def add_service(self, service: MonitoredService) -> MonitoredService:
        """Register or replace a service."""
        self._services[service.id] = service
        logger.info(f"Service registered - service_id: {service.id}, name: {service.name}")
        return service

    def list_services(self) -> list[MonitoredService]:
        services = list(self._services.values())
        logger.debug(f"All services retrieved - count: {len(services)}")
        return services

    def get_service(self, service_id: int) -> Optional[MonitoredService]:
        service = self._services.get(service_id)
        if service is None:
            logger.warning(f"Service not found - service_id: {service_id}")
        return service

    def update_service(self, service_id: int, **changes: Any) -> Optional[MonitoredService]:
        """Apply changes to a service and return the new record."""
        service = self._services.get(service_id)
        if service is None:
            logger.warning(f"Service update failed - service_id: {service_id} not found")
            return None

        updated = service.model_copy(update=changes)
        self._services[service_id] = updated

        if "status" in changes and changes["status"] != service.status:
            logger.info(
                f"Service status changed - service_id: {service_id}, "
                f"previous: {service.status.value}, current: {updated.status.value}"
            )
        return updated

    def remove_service(self, service_id: int) -> bool:
        if service_id in self._services:
            del self._services[service_id]
            logger.info(f"Service removed - service_id: {service_id}")
            return True
        logger.warning(f"Service removal failed - service_id: {service_id} not found")
        return False

    def get_service_count(self) -> int:
        return len(self._services)

    # Event log

    def append_event(
        self,
        service_id: Optional[int],
        action: str,
        details: Optional[str] = None,
        status: Optional[ServiceStatus] = None,
        timestamp: Optional[datetime] = None,
    ) -> EventLogEntry:
        """Append an entry to the event log.

        Args:
            service_id: Owning service or None for a global event
            action: Entry category
            details: Optional human readable details
            status: Optional status recorded with the entry
            timestamp: Override for the entry time, defaults to now

        Returns:
            The stored entry
        """
        entry = EventLogEntry(
            id=next(self._event_ids),
            service_id=service_id,
            action=action,
            details=details,
            status=status,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        self._events.append(entry)
        logger.debug(f"Event appended - service_id: {service_id}, action: {action}")
        return entry

    def query_events(
        self, service_id: Optional[int] = None, since: Optional[datetime] = None
    ) -> list[EventLogEntry]:
        """Return entries, newest first, optionally filtered by service and start time."""
        entries = [
            entry
            for entry in self._events
            if (service_id is None or entry.service_id == service_id) and (since is None or entry.timestamp >= since)
        ]
        entries.sort(key=lambda entry: (entry.timestamp, entry.id), reverse=True)
        return entries

    # Settings

    def get_settings(self) -> GlobalSettings:
        return self._settings

    def update_settings(self, **changes: Any) -> GlobalSettings:
        self._settings = self._settings.model_copy(update=changes)
        logger.info(f"Settings updated - fields: {sorted(changes)}")
        return self._settings

    # Tracked ports

    def add_port(self, service_id: int, port: int, service: Optional[str] = None) -> TrackedPort:
        tracked = TrackedPort(id=next(self._port_ids), service_id=service_id, port=port, service=service)
        self._ports[tracked.id] = tracked
        return tracked

    def list_ports(self) -> list[TrackedPort]:
        return list(self._ports.values())

    def update_port(self, port_id: int, **changes: Any) -> Optional[TrackedPort]:
        tracked = self._ports.get(port_id)
        if tracked is None:
            return None
        self._ports[port_id] = tracked.model_copy(update=changes)
        return self._ports[port_id]

    # Tracked processes

    def add_process(self, service_id: int, pid: int, command: str) -> TrackedProcess:
        process = TrackedProcess(
            id=next(self._process_ids),
            service_id=service_id,
            pid=pid,
            command=command,
            started_at=datetime.now(timezone.utc),
        )
        self._processes[process.id] = process
        return process

    def list_processes(self, service_id: Optional[int] = None) -> list[TrackedProcess]:
        return [p for p in self._processes.values() if service_id is None or p.service_id == service_id]

    def update_process(self, process_id: int, **changes: Any) -> Optional[TrackedProcess]:
        process = self._processes.get(process_id)
        if process is None:
            return None
        self._processes[process_id] = process.model_copy(update=changes)
        return self._processes[process_id]
