"""Periodic monitoring of the registered fleet."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Optional

from .controller import RestartController
from .models import CheckKind, MonitoredService, ServiceStatus
from .ports import PortWatcher
from .probe import HTTP_SERVICE_TYPES, StatusProbe
from .storage import Registry

logger = logging.getLogger(__name__)

FREQUENCY_SETTINGS: dict[CheckKind, str] = {
    CheckKind.STATUS: "check_frequency",
    CheckKind.ENDPOINT: "endpoint_check_frequency",
    CheckKind.PORT: "port_check_frequency",
    CheckKind.PROCESS: "process_check_frequency",
}

AUTO_RESTART_STATUSES = (ServiceStatus.STOPPED, ServiceStatus.UNREACHABLE, ServiceStatus.ERROR)


class MonitorScheduler:
    """Owns one background task per check kind.

    Each task runs its tick to completion and then sleeps for the interval
    configured in the registry settings, so ticks of one kind never overlap.
    """

    def __init__(
        self,
        registry: Registry,
        probe: StatusProbe,
        controller: RestartController,
        port_watcher: Optional[PortWatcher] = None,
    ) -> None:
        self.registry = registry
        self.probe = probe
        self.controller = controller
        self.port_watcher = port_watcher
        self.check_tasks: dict[CheckKind, asyncio.Task] = {}
        self._endpoint_healthy: dict[int, bool] = {}

    @property
    def is_running(self) -> bool:
        return bool(self.check_tasks)

    async def start(self) -> None:
        """Run one status check immediately and start all timers."""
        if self.is_running:
            logger.warning("Monitor scheduler already running")
            return

        await self.check_all_services()

        ticks: dict[CheckKind, Callable[[], Awaitable[None]]] = {
            CheckKind.STATUS: self.check_all_services,
            CheckKind.ENDPOINT: self.check_endpoints,
            CheckKind.PORT: self.check_ports,
            CheckKind.PROCESS: self.check_processes,
        }
        for kind, tick in ticks.items():
            # The status check already ran once above
            run_first = kind != CheckKind.STATUS
            self.check_tasks[kind] = asyncio.create_task(self._loop(kind, tick, run_first))

        logger.info(f"Monitor scheduler started - timers: {[kind.value for kind in self.check_tasks]}")

    async def stop(self) -> None:
        """Cancel all timers and wait for them to finish."""
        tasks = list(self.check_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.check_tasks.clear()
        logger.info("Monitor scheduler stopped")

    async def close(self) -> None:
        await self.stop()
        await self.probe.close()

    def interval(self, kind: CheckKind) -> int:
        return getattr(self.registry.get_settings(), FREQUENCY_SETTINGS[kind])

    async def update_check_frequency(self, kind: CheckKind, seconds: int) -> None:
        """Persist a new interval for one check kind and restart all timers."""
        if seconds <= 0:
            raise ValueError(f"Check frequency must be positive, got {seconds}")

        was_running = self.is_running
        await self.stop()
        self.registry.update_settings(**{FREQUENCY_SETTINGS[kind]: seconds})
        logger.info(f"Check frequency updated - kind: {kind.value}, seconds: {seconds}")
        if was_running:
            await self.start()

    async def _loop(self, kind: CheckKind, tick: Callable[[], Awaitable[None]], run_first: bool) -> None:
        logger.info(f"Starting {kind.value} check loop - interval: {self.interval(kind)}s")

        if not run_first:
            await asyncio.sleep(self.interval(kind))

        while True:
            try:
                await tick()

            except asyncio.CancelledError:
                logger.info(f"{kind.value} check loop cancelled")
                raise

            except Exception as e:
                logger.error(f"Error in {kind.value} check loop: {e}", exc_info=True)

            await asyncio.sleep(self.interval(kind))

    # Status checks

    async def check_all_services(self) -> None:
        """Probe every registered service in turn."""
        services = self.registry.list_services()
        logger.debug(f"Status check started - services: {len(services)}")
        for service in services:
            await self.check_service(service)

    async def check_service(self, service: MonitoredService) -> None:
        try:
            status = await self.probe.probe(service)
            previous = service.status
            self.registry.update_service(service.id, status=status, last_checked=datetime.now(timezone.utc))

            if status != previous:
                self.registry.append_event(
                    service.id,
                    "Status Change",
                    f"Status changed from {previous.value} to {status.value}",
                    status=status,
                )

            settings = self.registry.get_settings()
            if settings.auto_restart and status in AUTO_RESTART_STATUSES:
                await self.auto_restart(service, status)

        except asyncio.CancelledError:
            raise

        except Exception as e:
            logger.error(f"Status check failed - service_id: {service.id}, error: {e}", exc_info=True)
            self.registry.update_service(
                service.id, status=ServiceStatus.ERROR, last_checked=datetime.now(timezone.utc)
            )
            self.registry.append_event(
                service.id, "Status Check Error", f"Error checking status: {e}", status=ServiceStatus.ERROR
            )

    async def auto_restart(self, service: MonitoredService, status: ServiceStatus) -> None:
        """Restart a downed service, retrying up to ``max_retries`` times."""
        settings = self.registry.get_settings()
        attempts = max(1, settings.max_retries)
        self.registry.append_event(
            service.id,
            "Auto-restart Attempt",
            f"Attempting automatic restart of {service.name} from {status.value}",
            status=status,
        )
        for attempt in range(1, attempts + 1):
            try:
                result = await self.controller.restart(service)
            except Exception as e:
                logger.error(f"Auto-restart error - service_id: {service.id}, error: {e}", exc_info=True)
                self.registry.append_event(
                    service.id, "Auto-restart Error", f"Error during automatic restart: {e}", status=status
                )
                return

            if result.success or attempt == attempts:
                break
            logger.warning(
                f"Auto-restart attempt failed - service_id: {service.id}, attempt: {attempt}/{attempts}, "
                f"error: {result.error}"
            )
            await asyncio.sleep(settings.retry_delay)

        if result.success:
            self.registry.append_event(
                service.id,
                "Auto-restart Success",
                f"Service {service.name} restarted automatically",
                status=ServiceStatus.RUNNING,
            )
        else:
            self.registry.append_event(
                service.id, "Auto-restart Failed", f"Automatic restart failed: {result.error}", status=status
            )

    # Endpoint checks

    async def check_endpoints(self) -> None:
        """Probe each HTTP service's health endpoint and log state flips.

        Endpoint entries carry no status so they never count as service errors.
        """
        timeout_seconds = self.registry.get_settings().endpoint_timeout / 1000
        for service in self.registry.list_services():
            if service.type not in HTTP_SERVICE_TYPES:
                continue
            try:
                status = await self.probe.probe_endpoint(service, timeout_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Endpoint check error - service_id: {service.id}, error: {e}", exc_info=True)
                status = ServiceStatus.ERROR

            healthy = status == ServiceStatus.RUNNING
            previous = self._endpoint_healthy.get(service.id)
            self._endpoint_healthy[service.id] = healthy

            if not healthy and previous in (None, True):
                self.registry.append_event(
                    service.id,
                    "Endpoint Unhealthy",
                    f"Health endpoint {service.health_check_path} returned {status.value}",
                )
            elif healthy and previous is False:
                self.registry.append_event(
                    service.id,
                    "Endpoint Recovered",
                    f"Health endpoint {service.health_check_path} is responding again",
                )

    # Port checks

    async def check_ports(self) -> None:
        if self.port_watcher is None:
            return
        refreshed = await self.port_watcher.sweep()
        logger.debug(f"Port check finished - refreshed: {refreshed}")

    # Process checks

    async def check_processes(self) -> None:
        """Detect ghost processes and terminate them when cleanup is enabled."""
        settings = self.registry.get_settings()
        if not settings.enable_ghost_process_detection:
            return

        for service in self.registry.list_services():
            ghosts = self.controller.detect_ghost_processes(service)
            if not ghosts:
                continue

            pids = ", ".join(str(process.pid) for process in ghosts)
            logger.warning(f"Ghost processes detected - service_id: {service.id}, pids: {pids}")
            self.registry.append_event(
                service.id,
                "Ghost Processes Detected",
                f"Found {len(ghosts)} ghost processes (PIDs: {pids}) for service {service.name}",
            )

            if settings.cleanup_ghost_processes:
                result = await self.controller.terminate_ghost_processes(service)
                logger.info(
                    f"Ghost cleanup finished - service_id: {service.id}, terminated: {result.terminated_count}"
                )
