"""Start, stop and restart control with port conflict checks and ghost process cleanup.

Control outcomes are simulated: no real infrastructure is started or
stopped, only the registry state and the audit log change.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlsplit

from .config import ControlConfig
from .inspector import ProcessInspector, ProcessInspectorError
from .models import (
    ControlResult,
    GhostCleanupResult,
    MonitoredService,
    PortStatus,
    ProcessStatus,
    ServiceStatus,
    TrackedProcess,
)
from .storage import Registry

logger = logging.getLogger(__name__)


class ServiceValidationError(ValueError):
    """Service record cannot be controlled as registered."""


def validate_service(service: MonitoredService) -> None:
    """Check the name, port and URL of a service before controlling it.

    Raises:
        ServiceValidationError: If any field is unusable
    """
    if not service.name or not service.name.strip():
        raise ServiceValidationError(f"Invalid service name for ID {service.id}")

    if not 1 <= service.port <= 65535:
        raise ServiceValidationError(f"Invalid port number {service.port}")

    url = service.url if "://" in service.url else f"http://{service.url}"
    try:
        parts = urlsplit(url)
        # Accessing .port validates the port component
        _ = parts.port
    except ValueError as e:
        raise ServiceValidationError(f"Invalid URL {service.url}") from e
    if not parts.hostname:
        raise ServiceValidationError(f"Invalid URL {service.url}")


class RestartController:
    """Validated control operations over registered services."""

    def __init__(
        self,
        registry: Registry,
        inspector: Optional[ProcessInspector] = None,
        control_config: Optional[ControlConfig] = None,
    ) -> None:
        self.registry = registry
        self.inspector = inspector
        self.config = control_config or ControlConfig()

    def _current(self, service: MonitoredService) -> MonitoredService:
        return self.registry.get_service(service.id) or service

    def _failure(self, service: MonitoredService, action: str, error: str) -> ControlResult:
        """Record a failed control attempt and build its result."""
        self.registry.append_event(service.id, action, error, status=service.status)
        return ControlResult(success=False, service=service, error=error)

    def check_port_conflicts(self, service: MonitoredService) -> Optional[str]:
        """Return a conflict message when another service holds one of this service's ports."""
        others = [
            other
            for other in self.registry.list_services()
            if other.id != service.id and other.status == ServiceStatus.RUNNING
        ]

        for port in service.all_ports:
            for other in others:
                if port not in other.all_ports:
                    continue
                owner = f'service "{other.name}" (ID: {other.id})'
                if port == service.port:
                    return f"Port conflict: Port {port} is already in use by {owner}"
                role = "primary" if port == other.port else "additional"
                return f"Additional port conflict: Port {port} is already in use as {role} port by {owner}"

        in_use = [
            tracked
            for tracked in self.registry.list_ports()
            if tracked.service_id != service.id and tracked.status == PortStatus.IN_USE
        ]
        for tracked in in_use:
            owner = self.registry.get_service(tracked.service_id)
            owner_name = f'service "{owner.name}"' if owner else f"service ID {tracked.service_id}"
            label = tracked.service or "unknown use"
            if tracked.port == service.port:
                return f"Port conflict: Port {service.port} is already in use by {owner_name} for {label}"
            if tracked.port in service.additional_ports:
                return f"Additional port conflict: Port {tracked.port} is already in use by {owner_name} for {label}"

        return None

    async def start(self, service: MonitoredService) -> ControlResult:
        """Start a service after validation and port conflict checks."""
        service = self._current(service)
        if service.status == ServiceStatus.RUNNING:
            return ControlResult(success=False, service=service, error=f"Service {service.name} is already running")

        try:
            self.registry.append_event(
                service.id,
                "Start Attempt",
                f"Attempting to start service {service.name}",
                status=service.status,
            )
            validate_service(service)

            conflict = self.check_port_conflicts(service)
            if conflict:
                logger.warning(f"Start blocked - service_id: {service.id}, reason: {conflict}")
                return self._failure(service, "Start Failed", f"Failed to start service: {conflict}")

            updated = self.registry.update_service(
                service.id, status=ServiceStatus.RUNNING, last_checked=datetime.now(timezone.utc)
            )
            self.registry.append_event(
                service.id,
                "Started",
                f"Service {service.name} started successfully (simulated)",
                status=ServiceStatus.RUNNING,
            )
            logger.info(f"Service started - service_id: {service.id}, name: {service.name}")
            return ControlResult(success=True, service=updated)

        except ServiceValidationError as e:
            logger.warning(f"Start validation failed - service_id: {service.id}, error: {e}")
            return self._failure(service, "Start Failed", f"Failed to start service: {e}")
        except Exception as e:
            logger.error(f"Start failed - service_id: {service.id}, error: {e}", exc_info=True)
            return self._failure(service, "Start Failed", f"Failed to start service: {e}")

    async def stop(self, service: MonitoredService) -> ControlResult:
        """Stop a service after validation."""
        service = self._current(service)
        if service.status == ServiceStatus.STOPPED:
            return ControlResult(success=False, service=service, error=f"Service {service.name} is already stopped")

        try:
            self.registry.append_event(
                service.id, "Stop Attempt", f"Attempting to stop service {service.name}", status=service.status
            )
            validate_service(service)

            await asyncio.sleep(self.config.stop_delay_seconds)

            updated = self.registry.update_service(
                service.id, status=ServiceStatus.STOPPED, last_checked=datetime.now(timezone.utc)
            )
            self.registry.append_event(
                service.id,
                "Stopped",
                f"Service {service.name} stopped successfully (simulated)",
                status=ServiceStatus.STOPPED,
            )
            logger.info(f"Service stopped - service_id: {service.id}, name: {service.name}")
            return ControlResult(success=True, service=updated)

        except ServiceValidationError as e:
            logger.warning(f"Stop validation failed - service_id: {service.id}, error: {e}")
            return self._failure(service, "Stop Failed", f"Failed to stop service: {e}")
        except Exception as e:
            logger.error(f"Stop failed - service_id: {service.id}, error: {e}", exc_info=True)
            return self._failure(service, "Stop Failed", f"Failed to stop service: {e}")

    async def restart(self, service: MonitoredService) -> ControlResult:
        """Restart a service.

        A service in Error or Unreachable skips the stop phase: it is forced
        to Stopped and started directly. Otherwise a best-effort stop is
        followed by the configured delay and a start.
        """
        service = self._current(service)
        try:
            if not service.name or not service.name.strip():
                raise ServiceValidationError(f"Invalid service name for ID {service.id}")

            self.registry.append_event(
                service.id, "Restart Attempt", f"Attempting to restart service {service.name}", status=service.status
            )

            if service.status in (ServiceStatus.ERROR, ServiceStatus.UNREACHABLE):
                return await self._restart_from_error(service)

            if service.status == ServiceStatus.RUNNING:
                stop_result = await self.stop(service)
                if not stop_result.success:
                    logger.warning(f"Stop failed during restart - service_id: {service.id}, error: {stop_result.error}")
                    self.registry.append_event(
                        service.id,
                        "Restart Warning",
                        f"Warning during restart: {stop_result.error}. Continuing with start.",
                        status=service.status,
                    )

            await asyncio.sleep(self.config.restart_delay_seconds)

            start_result = await self.start(service)
            if not start_result.success:
                error = f"Failed to start service during restart: {start_result.error}"
                return self._failure(start_result.service or service, "Restart Failed", error)

            self.registry.append_event(
                service.id,
                "Restarted",
                f"Service {service.name} restarted successfully (simulated)",
                status=ServiceStatus.RUNNING,
            )
            return start_result

        except ServiceValidationError as e:
            logger.warning(f"Restart validation failed - service_id: {service.id}, error: {e}")
            return self._failure(service, "Restart Failed", f"Failed to restart service: {e}")
        except Exception as e:
            logger.error(f"Restart failed - service_id: {service.id}, error: {e}", exc_info=True)
            return self._failure(service, "Restart Failed", f"Failed to restart service: {e}")

    async def _restart_from_error(self, service: MonitoredService) -> ControlResult:
        previous = service.status
        stopped = self.registry.update_service(service.id, status=ServiceStatus.STOPPED)
        if stopped is None:
            return ControlResult(success=False, service=service, error="Failed to update service status to Stopped")

        self.registry.append_event(
            service.id,
            "Status Change",
            f"Status forced from {previous.value} to Stopped before restart",
            status=ServiceStatus.STOPPED,
        )

        start_result = await self.start(stopped)
        if not start_result.success:
            error = f"Failed to start service from {previous.value} state: {start_result.error}"
            self.registry.append_event(service.id, "Restart Failed", error, status=ServiceStatus.STOPPED)
            return ControlResult(success=False, service=start_result.service, error=error)

        self.registry.append_event(
            service.id,
            "Restarted from Error",
            f"Service {service.name} restarted successfully from {previous.value} state",
            status=ServiceStatus.RUNNING,
        )
        return start_result

    def detect_ghost_processes(self, service: MonitoredService) -> list[TrackedProcess]:
        """Tracked processes still recorded Running while their service is not."""
        service = self._current(service)
        if not service.check_for_ghost_processes or service.status == ServiceStatus.RUNNING:
            return []
        return [
            process
            for process in self.registry.list_processes(service.id)
            if process.status == ProcessStatus.RUNNING
        ]

    async def terminate_ghost_processes(self, service: MonitoredService) -> GhostCleanupResult:
        """Flip every ghost process of a service to Terminated.

        With ``kill_ghost_processes`` enabled the real PID is killed through
        the inspector first. A PID that no longer exists counts as terminated.
        An inspector error leaves that process untouched.
        """
        service = self._current(service)
        if not service.check_for_ghost_processes:
            logger.debug(f"Ghost detection disabled - service_id: {service.id}")
            return GhostCleanupResult(success=True, terminated_count=0)

        try:
            ghosts = self.detect_ghost_processes(service)
            if not ghosts:
                return GhostCleanupResult(success=True, terminated_count=0)

            self.registry.append_event(
                service.id,
                "Ghost Process Cleanup Attempt",
                f"Attempting to clean up {len(ghosts)} ghost processes for service {service.name}",
                status=service.status,
            )

            terminated = 0
            for process in ghosts:
                try:
                    detail = f"Terminated ghost process PID {process.pid} ({process.command})"
                    if self.config.kill_ghost_processes and self.inspector is not None:
                        if not await self.inspector.kill_process(process.pid):
                            detail += ", process had already exited"

                    self.registry.update_process(
                        process.id, status=ProcessStatus.TERMINATED, last_checked=datetime.now(timezone.utc)
                    )
                    self.registry.append_event(service.id, "Process Terminated", detail)
                    terminated += 1
                except (ProcessInspectorError, ValueError) as e:
                    logger.warning(
                        f"Ghost termination failed - service_id: {service.id}, pid: {process.pid}, error: {e}"
                    )
                    self.registry.append_event(
                        service.id,
                        "Process Termination Failed",
                        f"Failed to terminate process {process.pid}: {e}",
                        status=service.status,
                    )

            self.registry.append_event(
                service.id,
                "Ghost Process Cleanup Complete",
                f"Terminated {terminated} of {len(ghosts)} ghost processes for service {service.name}",
                status=service.status,
            )
            logger.info(f"Ghost processes cleaned up - service_id: {service.id}, terminated: {terminated}")
            return GhostCleanupResult(success=True, terminated_count=terminated)

        except Exception as e:
            logger.error(f"Ghost cleanup failed - service_id: {service.id}, error: {e}", exc_info=True)
            self.registry.append_event(service.id, "Ghost Process Cleanup Failed", f"Error: {e}", status=service.status)
            return GhostCleanupResult(success=False, error=f"Failed to terminate ghost processes: {e}")
