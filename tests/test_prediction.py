"""Tests for failure prediction."""

from datetime import timedelta

import pytest

from service_sentinel.models import (
    HealthMetrics,
    MonitoredService,
    PredictionTimeSlot,
    RiskLevel,
    ServiceStatus,
    ServiceType,
    TimeBasedPattern,
    Trend,
)
from service_sentinel.prediction import (
    MAX_RECOMMENDED_ACTIONS,
    aggregate_probability,
    classify_risk,
    generate_prediction,
    recommended_actions,
)


def build_service(status=ServiceStatus.RUNNING, service_type=ServiceType.BACKEND) -> MonitoredService:
    return MonitoredService(id=1, name="api", url="api.local", port=8080, status=status, type=service_type)


@pytest.fixture
def entries(make_entry, now):
    return [make_entry("Status Change", now - timedelta(hours=1), ServiceStatus.RUNNING)]


def test_no_prediction_without_history(now):
    assert generate_prediction(build_service(), HealthMetrics(), [], now) is None


def test_prediction_has_24_hourly_slots(entries, now):
    prediction = generate_prediction(build_service(), HealthMetrics(), entries, now)

    slots = prediction.prediction_time_slots
    assert len(slots) == 24
    assert slots[0].start_time == now + timedelta(hours=1)
    assert slots[-1].end_time == now + timedelta(hours=25)
    assert all(slot.end_time - slot.start_time == timedelta(hours=1) for slot in slots)


def test_healthy_service_prediction(entries, now):
    prediction = generate_prediction(build_service(), HealthMetrics(), entries, now)

    assert prediction.aggregated_failure_probability == 0.0
    assert all(slot.confidence_score == 50.0 for slot in prediction.prediction_time_slots)
    assert all(slot.predicted_metrics is None for slot in prediction.prediction_time_slots)
    assert prediction.high_risk_periods == []
    assert prediction.recommended_actions == ["No action needed, continue regular monitoring"]


def test_unreachable_service_is_high_risk(entries, now):
    metrics = HealthMetrics(failure_rate=100.0, error_occurrences=10, days_since_last_restart=7.0)
    prediction = generate_prediction(build_service(ServiceStatus.UNREACHABLE), metrics, entries, now)

    assert prediction.aggregated_failure_probability == 1.0
    assert len(prediction.high_risk_periods) == 24
    assert all(period.risk == RiskLevel.CRITICAL for period in prediction.high_risk_periods)

    slot = prediction.prediction_time_slots[0]
    assert slot.predicted_metrics is not None
    assert slot.predicted_metrics.response_time == pytest.approx(600.0)
    assert slot.predicted_metrics.availability_percent == pytest.approx(40.0)
    assert "Service currently Unreachable" in slot.contributing_factors


def test_probabilities_stay_in_bounds(entries, now):
    metrics = HealthMetrics(
        failure_rate=95.0,
        error_occurrences=40,
        memory_leak_likelihood=100.0,
        average_uptime=80 * 60,
        error_frequency_trend=Trend.INCREASING,
        performance_degradation=85.0,
        error_density=9.0,
        days_since_last_restart=30.0,
    )
    prediction = generate_prediction(build_service(ServiceStatus.ERROR), metrics, entries, now)

    assert 0.0 <= prediction.aggregated_failure_probability <= 1.0
    for slot in prediction.prediction_time_slots:
        assert 0.0 <= slot.failure_probability <= 1.0
        assert 0.0 <= slot.confidence_score <= 100.0


def test_time_pattern_only_affects_matching_slot(entries, now):
    target = now + timedelta(hours=3)
    pattern = TimeBasedPattern(
        hour_of_day=target.hour, day_of_week=target.weekday(), failure_rate=100.0, confidence=100
    )
    prediction = generate_prediction(
        build_service(), HealthMetrics(time_based_patterns=[pattern]), entries, now
    )

    probabilities = [slot.failure_probability for slot in prediction.prediction_time_slots]
    assert probabilities[2] == pytest.approx(0.5)
    assert sum(probabilities) == pytest.approx(0.5)
    assert prediction.prediction_time_slots[2].confidence_score == 100


def test_restart_age_grows_over_the_horizon(entries, now):
    metrics = HealthMetrics(days_since_last_restart=3.5)
    prediction = generate_prediction(build_service(), metrics, entries, now)

    probabilities = [slot.failure_probability for slot in prediction.prediction_time_slots]
    assert probabilities == sorted(probabilities)
    assert probabilities[-1] > probabilities[0] > 0


def test_aggregate_probability_is_confidence_weighted(now):
    slots = [
        PredictionTimeSlot(start_time=now, end_time=now, failure_probability=1.0, confidence_score=100),
        PredictionTimeSlot(start_time=now, end_time=now, failure_probability=0.0, confidence_score=50),
    ]
    assert aggregate_probability(slots) == pytest.approx(2 / 3)


def test_classify_risk():
    assert classify_risk(0.95) == RiskLevel.CRITICAL
    assert classify_risk(0.75) == RiskLevel.HIGH
    assert classify_risk(0.6) == RiskLevel.MEDIUM
    assert classify_risk(0.1) == RiskLevel.LOW


def test_recommended_actions_are_tailored_and_capped():
    metrics = HealthMetrics(
        memory_leak_likelihood=80.0,
        failure_rate=40.0,
        error_frequency_trend=Trend.INCREASING,
        days_since_last_restart=9.0,
        performance_degradation=50.0,
        uptime_stability=0.9,
    )
    actions = recommended_actions(build_service(ServiceStatus.ERROR, ServiceType.DATABASE), metrics, [])

    assert len(actions) == MAX_RECOMMENDED_ACTIONS
    assert len(set(actions)) == len(actions)
    assert actions[0].startswith("Restart api immediately")
    assert "database" in actions[1]


def test_prediction_is_repeatable(entries, now):
    metrics = HealthMetrics(failure_rate=20.0, error_occurrences=3, memory_leak_likelihood=45.0)
    service = build_service(ServiceStatus.STOPPED)

    assert generate_prediction(service, metrics, entries, now) == generate_prediction(service, metrics, entries, now)
