"""Tests for pattern mining."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from service_sentinel.metrics import AggregatedLog, aggregate
from service_sentinel.models import MonitoredService, ServiceStatus, Trend
from service_sentinel.patterns import (
    SyntheticUptimeCorrelation,
    error_density,
    error_frequency_trend,
    memory_leak_likelihood,
    mine,
    performance_degradation,
    time_based_patterns,
    uptime_stability,
)


def errors_at(make_entry, *timestamps):
    return [make_entry("Status Change", ts, ServiceStatus.ERROR) for ts in timestamps]


def aggregated_log(errors=None, sessions=None) -> AggregatedLog:
    return AggregatedLog(
        entries=[],
        status_changes=[],
        restart_entries=[],
        errors=errors or [],
        failure_rate=0.0,
        status_transitions=0,
        last_restarted=None,
        days_since_last_restart=7.0,
        uptime_sessions=sessions or [],
    )


def test_trend_needs_five_errors(make_entry, now):
    errors = errors_at(make_entry, *(now - timedelta(hours=h) for h in range(4, 0, -1)))
    assert error_frequency_trend(errors) == Trend.STABLE


def test_trend_increasing(make_entry, now):
    start = now - timedelta(hours=10)
    errors = errors_at(
        make_entry,
        start,
        start + timedelta(hours=1),
        start + timedelta(hours=2),
        start + timedelta(hours=3),
        start + timedelta(hours=3, minutes=10),
        start + timedelta(hours=3, minutes=20),
    )
    assert error_frequency_trend(errors) == Trend.INCREASING


def test_trend_decreasing(make_entry, now):
    start = now - timedelta(hours=10)
    errors = errors_at(
        make_entry,
        start,
        start + timedelta(minutes=10),
        start + timedelta(minutes=20),
        start + timedelta(hours=1),
        start + timedelta(hours=2),
        start + timedelta(hours=3),
    )
    assert error_frequency_trend(errors) == Trend.DECREASING


def test_error_density():
    assert error_density(6, 120) == 3.0
    assert error_density(5, 0) == 0.0


def test_uptime_stability():
    assert uptime_stability([60]) == 0.0
    assert uptime_stability([60, 60]) == 0.0
    assert uptime_stability([30, 90]) == pytest.approx(0.5)


def test_time_based_patterns(make_entry, now):
    service = MonitoredService(id=1, name="api", url="api.local", port=8080)
    # Three failures on Wednesday at 03:00 and seven healthy checks elsewhere
    night = datetime(2026, 3, 4, 3, 0, tzinfo=timezone.utc)
    entries = [
        make_entry("Status Change", night + timedelta(minutes=m), ServiceStatus.UNREACHABLE) for m in (0, 10, 20)
    ]
    entries += [
        make_entry("Status Change", datetime(2026, 3, 2, h, 0, tzinfo=timezone.utc), ServiceStatus.RUNNING)
        for h in range(1, 8)
    ]

    patterns = time_based_patterns(aggregate(service, entries, now))

    assert len(patterns) == 1
    assert patterns[0].day_of_week == 2
    assert patterns[0].hour_of_day == 3
    assert patterns[0].failure_rate == 100.0
    assert patterns[0].confidence == 70


def test_performance_degradation():
    assert performance_degradation(0, Trend.STABLE, 0.0) == 0.0
    assert performance_degradation(0, Trend.INCREASING, 0.6) == 35.0
    # 36h average uptime is 12h past the threshold
    assert performance_degradation(36 * 60, Trend.STABLE, 0.0) == pytest.approx(10 * math.log(2))


def test_synthetic_correlation_requires_data(make_entry, now):
    correlation = SyntheticUptimeCorrelation()
    assert correlation([10, 20], errors_at(make_entry, now, now, now)) == 0.0


def test_synthetic_correlation_does_not_sort_input(make_entry, now):
    correlation = SyntheticUptimeCorrelation()
    sessions = [30.0, 10.0, 20.0]

    coefficient = correlation(sessions, errors_at(make_entry, now, now, now))

    assert coefficient == -0.5
    assert sessions == [30.0, 10.0, 20.0]


def test_memory_leak_likelihood_components(make_entry, now):
    service = MonitoredService(id=1, name="api", url="api.local", port=8080, status=ServiceStatus.STOPPED)
    errors = errors_at(make_entry, now, now, now)
    aggregated = aggregated_log(errors=errors, sessions=[1500.0, 1500.0, 1500.0])

    # Strong correlation (40) + one hour past the threshold (0.8) + down after a long session (20)
    likelihood = memory_leak_likelihood(service, aggregated, lambda sessions, errs: 0.8)

    assert likelihood == pytest.approx(60.8)


def test_memory_leak_likelihood_is_clamped(make_entry, now):
    service = MonitoredService(id=1, name="api", url="api.local", port=8080, status=ServiceStatus.STOPPED)
    aggregated = aggregated_log(errors=errors_at(make_entry, now, now, now), sessions=[20000.0] * 3)

    assert memory_leak_likelihood(service, aggregated, lambda sessions, errs: 0.8) == 100.0


def test_mine_is_repeatable(make_entry, now):
    service = MonitoredService(id=1, name="api", url="api.local", port=8080, status=ServiceStatus.RUNNING)
    entries = [
        make_entry("Status Change", now - timedelta(hours=6), ServiceStatus.RUNNING),
        make_entry("Status Change", now - timedelta(hours=4), ServiceStatus.ERROR),
        make_entry("Status Change", now - timedelta(hours=3), ServiceStatus.RUNNING),
    ]
    aggregated = aggregate(service, entries, now)

    first = mine(service, aggregated)
    second = mine(service, aggregated)

    assert first == second
    assert first.failure_rate == pytest.approx(100 / 3)
    assert first.uptime_sessions == [120.0, 180.0]
    assert first.current_uptime == 180.0
