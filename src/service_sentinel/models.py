"""Data models for the service sentinel."""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ServiceStatus(str, Enum):
    """Enumeration of possible service statuses."""

    RUNNING = "Running"
    STOPPED = "Stopped"
    UNREACHABLE = "Unreachable"
    ERROR = "Error"


class ServiceType(str, Enum):
    """Kind of service; decides whether it is probed over HTTP or raw TCP."""

    FRONTEND = "Frontend"
    BACKEND = "Backend"
    DATABASE = "Database"
    OTHER = "Other"


class Trend(str, Enum):
    """Direction of the error frequency over the analysis window."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Urgency(str, Enum):
    """How urgently a restart is recommended."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskLevel(str, Enum):
    """Risk label attached to a high-risk prediction period."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class PortStatus(str, Enum):
    """Observed state of a tracked port."""

    AVAILABLE = "Available"
    IN_USE = "In use"
    BLOCKED = "Blocked"
    UNKNOWN = "Unknown"


class ProcessStatus(str, Enum):
    """Recorded state of a tracked process."""

    RUNNING = "Running"
    TERMINATED = "Terminated"
    ZOMBIE = "Zombie"


class CheckKind(str, Enum):
    """Timer kinds owned by the monitor scheduler."""

    STATUS = "status"
    ENDPOINT = "endpoint"
    PORT = "port"
    PROCESS = "process"


class MonitoredService(BaseModel):
    """A registered service watched by the sentinel."""

    id: int = Field(..., description="Registry identifier")
    name: str = Field(..., description="Human readable service name")
    url: str = Field(..., description="Service URL or host name")
    port: int = Field(..., description="Primary port")
    additional_ports: list[int] = Field(default_factory=list, description="Other ports the service binds")
    type: ServiceType = Field(default=ServiceType.OTHER, description="Service type")
    status: ServiceStatus = Field(default=ServiceStatus.STOPPED, description="Last recorded status")
    last_checked: Optional[datetime] = Field(None, description="Timestamp of the last status check")
    health_check_path: str = Field(default="/health", description="Path probed by endpoint checks")
    check_for_ghost_processes: bool = Field(default=True, description="Whether ghost detection applies")
    start_command: Optional[str] = Field(None, description="Command used to launch the service")
    average_response_time_ms: Optional[float] = Field(None, description="Observed average response time")

    @property
    def all_ports(self) -> list[int]:
        return [self.port, *self.additional_ports]


class EventLogEntry(BaseModel):
    """One immutable entry of the append-only event log."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Entry identifier")
    service_id: Optional[int] = Field(None, description="Owning service, None for global events")
    action: str = Field(..., description="Free text category, e.g. 'Status Change'")
    details: Optional[str] = Field(None, description="Human readable details")
    status: Optional[ServiceStatus] = Field(None, description="Status recorded with the entry")
    timestamp: datetime = Field(..., description="When the entry was written (UTC)")


class GlobalSettings(BaseModel):
    """Runtime settings owned by the registry."""

    check_frequency: int = Field(default=30, description="Status check interval in seconds")
    auto_restart: bool = Field(default=False, description="Restart services found down")
    max_retries: int = Field(default=3, description="Maximum restart retries")
    retry_delay: int = Field(default=5, description="Delay between retries in seconds")
    endpoint_check_frequency: int = Field(default=60, description="Endpoint check interval in seconds")
    port_check_frequency: int = Field(default=120, description="Port check interval in seconds")
    process_check_frequency: int = Field(default=300, description="Process check interval in seconds")
    enable_ghost_process_detection: bool = Field(default=True, description="Run ghost detection on process ticks")
    cleanup_ghost_processes: bool = Field(default=False, description="Terminate detected ghosts automatically")
    endpoint_timeout: int = Field(default=5000, description="Endpoint check timeout in milliseconds")


class TrackedPort(BaseModel):
    """A port the registry tracks for a service."""

    id: int
    service_id: int
    port: int
    service: Optional[str] = Field(None, description="What uses the port, e.g. 'HTTP Server'")
    status: PortStatus = PortStatus.UNKNOWN
    last_checked: Optional[datetime] = None


class TrackedProcess(BaseModel):
    """A process the registry tracks for a service."""

    id: int
    service_id: int
    pid: int
    command: str
    started_at: datetime
    status: ProcessStatus = ProcessStatus.RUNNING
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None
    last_checked: Optional[datetime] = None


class ProcessInfo(BaseModel):
    """Process found listening on a port."""

    pid: int
    name: Optional[str] = None


class TimeBasedPattern(BaseModel):
    """Recurring failure slot mined from the event log."""

    hour_of_day: int = Field(..., ge=0, le=23)
    day_of_week: int = Field(..., ge=0, le=6, description="0 is Monday")
    failure_rate: float
    confidence: float = Field(..., ge=0, le=100)


class HealthMetrics(BaseModel):
    """Health metrics derived from the recent event log of one service."""

    failure_rate: float = 0.0
    average_uptime: float = Field(0.0, description="Average uptime session length in minutes")
    restart_frequency: float = Field(0.0, description="Restarts per day")
    status_transitions: int = 0
    error_occurrences: int = 0
    last_restarted: Optional[datetime] = None
    error_frequency_trend: Trend = Trend.STABLE
    time_based_patterns: list[TimeBasedPattern] = Field(default_factory=list)
    error_density: float = Field(0.0, description="Errors per operating hour")
    uptime_stability: float = Field(0.0, description="Coefficient of variation of session lengths")
    performance_degradation: float = 0.0
    memory_leak_likelihood: float = Field(0.0, ge=0, le=100)
    days_since_last_restart: float = 0.0
    uptime_sessions: list[float] = Field(default_factory=list, description="Session lengths in minutes")
    current_uptime: float = Field(0.0, description="Minutes in the currently open session")


class RestartRecommendation(BaseModel):
    """Restart recommendation for one service."""

    service_id: int
    service_name: str
    recommendation_score: int = Field(..., ge=0, le=100)
    reason: str
    urgency: Urgency
    primary_factor: str
    predicted_issues: list[str] = Field(default_factory=list)
    recommended_time_window: str
    memory_leak_likelihood: int = Field(0, ge=0, le=100)
    last_restarted: Optional[datetime] = None
    status_history: list[str] = Field(default_factory=list)
    uptime: float = Field(0.0, description="Average uptime in minutes")


class PredictedMetrics(BaseModel):
    """Metrics projected for a risky prediction slot."""

    response_time: float
    error_rate: float
    availability_percent: float
    resource_utilization: float


class PredictionTimeSlot(BaseModel):
    """One hourly slot of a failure prediction."""

    start_time: datetime
    end_time: datetime
    failure_probability: float = Field(..., ge=0.0, le=1.0)
    confidence_score: float = Field(..., ge=0.0, le=100.0)
    predicted_metrics: Optional[PredictedMetrics] = None
    contributing_factors: list[str] = Field(default_factory=list)


class HighRiskPeriod(BaseModel):
    """A slot flagged for alerting."""

    start_time: datetime
    end_time: datetime
    risk: RiskLevel
    description: str


class ServicePrediction(BaseModel):
    """24 hour failure forecast for one service."""

    service_id: int
    service_name: str
    prediction_generated: datetime
    prediction_time_slots: list[PredictionTimeSlot]
    aggregated_failure_probability: float = Field(..., ge=0.0, le=1.0)
    recommended_actions: list[str] = Field(default_factory=list)
    high_risk_periods: list[HighRiskPeriod] = Field(default_factory=list)


class ControlResult(BaseModel):
    """Outcome of a start, stop or restart request."""

    success: bool
    service: Optional[MonitoredService] = None
    error: Optional[str] = None
    simulation: bool = Field(default=True, description="No real infrastructure was controlled")


class GhostCleanupResult(BaseModel):
    """Outcome of a ghost process cleanup."""

    success: bool
    terminated_count: int = 0
    error: Optional[str] = None
    simulation: bool = True


class HealthResponse(BaseModel):
    """Model for health check responses."""

    status: str = Field(..., description="Health status")
    timestamp: datetime = Field(..., description="Response timestamp")
    uptime_seconds: float = Field(..., description="Sentinel uptime in seconds")
    monitored_services: int = Field(..., description="Number of registered services")
    scheduler_running: bool = Field(..., description="Whether the monitor timers are active")
