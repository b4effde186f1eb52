"""Tests for the data models."""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError

from service_sentinel.models import (
    EventLogEntry,
    GlobalSettings,
    HealthResponse,
    MonitoredService,
    PortStatus,
    PredictionTimeSlot,
    RestartRecommendation,
    ServiceStatus,
    ServiceType,
    TimeBasedPattern,
    Urgency,
)


def test_service_status_enum():
    """Test ServiceStatus enum values."""
    assert ServiceStatus.RUNNING == "Running"
    assert ServiceStatus.STOPPED == "Stopped"
    assert ServiceStatus.UNREACHABLE == "Unreachable"
    assert ServiceStatus.ERROR == "Error"


def test_port_status_values():
    assert PortStatus.IN_USE.value == "In use"
    assert PortStatus("Available") == PortStatus.AVAILABLE


def test_monitored_service_defaults():
    """Test MonitoredService defaults."""
    service = MonitoredService(id=1, name="api", url="api.local", port=8080)

    assert service.type == ServiceType.OTHER
    assert service.status == ServiceStatus.STOPPED
    assert service.health_check_path == "/health"
    assert service.check_for_ghost_processes is True
    assert service.additional_ports == []
    assert service.last_checked is None


def test_monitored_service_all_ports():
    service = MonitoredService(id=1, name="api", url="api.local", port=8080, additional_ports=[9090, 9091])
    assert service.all_ports == [8080, 9090, 9091]


def test_event_log_entry_is_immutable():
    """Test that log entries cannot be modified once written."""
    entry = EventLogEntry(id=1, service_id=1, action="Started", timestamp=datetime.now(timezone.utc))

    with pytest.raises(ValidationError):
        entry.action = "Stopped"


def test_event_log_entry_global_event():
    entry = EventLogEntry(id=1, service_id=None, action="Settings Changed", timestamp=datetime.now(timezone.utc))
    assert entry.service_id is None
    assert entry.status is None


def test_global_settings_defaults():
    settings = GlobalSettings()

    assert settings.check_frequency == 30
    assert settings.endpoint_check_frequency == 60
    assert settings.port_check_frequency == 120
    assert settings.process_check_frequency == 300
    assert settings.auto_restart is False
    assert settings.enable_ghost_process_detection is True
    assert settings.cleanup_ghost_processes is False
    assert settings.endpoint_timeout == 5000


def test_time_based_pattern_bounds():
    """Test that pattern hours and weekdays are validated."""
    with pytest.raises(ValidationError):
        TimeBasedPattern(hour_of_day=24, day_of_week=0, failure_rate=50, confidence=70)

    with pytest.raises(ValidationError):
        TimeBasedPattern(hour_of_day=3, day_of_week=7, failure_rate=50, confidence=70)


def test_recommendation_score_bounds():
    """Test that recommendation scores outside [0, 100] are rejected."""
    with pytest.raises(ValidationError):
        RestartRecommendation(
            service_id=1,
            service_name="api",
            recommendation_score=101,
            reason="test",
            urgency=Urgency.LOW,
            primary_factor="test",
            recommended_time_window="later",
        )


def test_prediction_slot_probability_bounds():
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        PredictionTimeSlot(start_time=now, end_time=now, failure_probability=1.5, confidence_score=50)


def test_health_response_model():
    """Test HealthResponse model."""
    now = datetime.now(timezone.utc)
    response = HealthResponse(
        status="healthy",
        timestamp=now,
        uptime_seconds=12.5,
        monitored_services=3,
        scheduler_running=False,
    )

    assert response.status == "healthy"
    assert response.monitored_services == 3
    assert response.scheduler_running is False
