"""Replay of a service's event log into quantitative health metrics."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .models import EventLogEntry, MonitoredService, ServiceStatus

logger = logging.getLogger(__name__)

STATUS_CHANGE_ACTION = "Status Change"
HISTORY_DAYS = 7

ERROR_STATUSES = (ServiceStatus.ERROR, ServiceStatus.UNREACHABLE)


def is_status_change(entry: EventLogEntry) -> bool:
    return entry.action == STATUS_CHANGE_ACTION


def is_restart_related(entry: EventLogEntry) -> bool:
    return "Restart" in entry.action or entry.action in ("Started", "Stopped")


def is_restart(entry: EventLogEntry) -> bool:
    return "Restart" in entry.action


def is_error(entry: EventLogEntry) -> bool:
    return "Error" in entry.action or "Failed" in entry.action or entry.status in ERROR_STATUSES


@dataclass(frozen=True)
class AggregatedLog:
    """Classified event log window plus the basic metrics derived from it."""

    entries: list[EventLogEntry]
    status_changes: list[EventLogEntry]
    restart_entries: list[EventLogEntry]
    errors: list[EventLogEntry]
    failure_rate: float
    status_transitions: int
    last_restarted: Optional[datetime]
    days_since_last_restart: float
    uptime_sessions: list[float] = field(default_factory=list)
    current_uptime: float = 0.0
    restart_frequency: float = 0.0

    @property
    def total_uptime(self) -> float:
        return sum(self.uptime_sessions)

    @property
    def average_uptime(self) -> float:
        if not self.uptime_sessions:
            return 0.0
        return self.total_uptime / len(self.uptime_sessions)


def recent_entries(
    entries: Iterable[EventLogEntry], now: datetime, history_days: int = HISTORY_DAYS
) -> list[EventLogEntry]:
    """Return entries of the analysis window sorted oldest first, in a new list."""
    cutoff = now - timedelta(days=history_days)
    return sorted(
        (entry for entry in entries if entry.timestamp >= cutoff),
        key=lambda entry: (entry.timestamp, entry.id),
    )


def count_transitions(status_changes: list[EventLogEntry]) -> int:
    """Count status changes whose status differs from the previous non-empty status."""
    transitions = 0
    previous: Optional[ServiceStatus] = None
    for entry in status_changes:
        if entry.status is None:
            continue
        if previous is not None and entry.status != previous:
            transitions += 1
        previous = entry.status
    return transitions


def reconstruct_sessions(
    status_changes: list[EventLogEntry], current_status: ServiceStatus, now: datetime
) -> tuple[list[float], float]:
    """Rebuild uptime sessions from chronologically ordered status changes.

    A session opens on a change into Running and closes on the first change
    to any other status. An open session is extended to ``now`` when the
    service is still Running.

    Returns:
        Tuple of (session lengths in minutes, minutes in the open session)
    """
    sessions: list[float] = []
    started_at: Optional[datetime] = None

    for entry in status_changes:
        if entry.status == ServiceStatus.RUNNING and started_at is None:
            started_at = entry.timestamp
        elif entry.status != ServiceStatus.RUNNING and started_at is not None:
            sessions.append((entry.timestamp - started_at).total_seconds() / 60)
            started_at = None

    current_uptime = 0.0
    if started_at is not None and current_status == ServiceStatus.RUNNING:
        current_uptime = (now - started_at).total_seconds() / 60
        sessions.append(current_uptime)

    return sessions, current_uptime


def aggregate(
    service: MonitoredService,
    entries: Iterable[EventLogEntry],
    now: datetime,
    history_days: int = HISTORY_DAYS,
) -> AggregatedLog:
    """Classify a service's recent event log and compute its basic metrics."""
    window = recent_entries(entries, now, history_days)
    status_changes = [entry for entry in window if is_status_change(entry)]
    restart_entries = [entry for entry in window if is_restart_related(entry)]
    errors = [entry for entry in window if is_error(entry)]

    failure_rate = len(errors) / len(status_changes) * 100 if status_changes else 0.0

    restarts = [entry for entry in restart_entries if is_restart(entry)]
    last_restarted = max((entry.timestamp for entry in restarts), default=None)
    if last_restarted is not None:
        days_since_last_restart = (now - last_restarted).total_seconds() / 86400
    else:
        days_since_last_restart = float(history_days)

    sessions, current_uptime = reconstruct_sessions(status_changes, service.status, now)

    span_days = (now - window[0].timestamp).total_seconds() / 86400 if window else 1.0
    restart_frequency = len(restarts) / span_days if span_days > 0 else 0.0

    logger.debug(
        f"Event log aggregated - service_id: {service.id}, entries: {len(window)}, "
        f"status_changes: {len(status_changes)}, errors: {len(errors)}, sessions: {len(sessions)}"
    )

    return AggregatedLog(
        entries=window,
        status_changes=status_changes,
        restart_entries=restart_entries,
        errors=errors,
        failure_rate=failure_rate,
        status_transitions=count_transitions(status_changes),
        last_restarted=last_restarted,
        days_since_last_restart=days_since_last_restart,
        uptime_sessions=sessions,
        current_uptime=current_uptime,
        restart_frequency=restart_frequency,
    )
