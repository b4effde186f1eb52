"""Pattern mining over aggregated event logs.

Turns the basic metrics of :mod:`service_sentinel.metrics` into the
advanced indicators used for scoring and prediction: error trend, error
density, uptime stability, recurring failure slots, performance
degradation and memory-leak likelihood.
"""

import logging
import math
import statistics
from collections import defaultdict
from typing import Optional, Protocol

from .metrics import AggregatedLog
from .models import EventLogEntry, HealthMetrics, MonitoredService, ServiceStatus, TimeBasedPattern, Trend

logger = logging.getLogger(__name__)

MEMORY_LEAK_THRESHOLD_HOURS = 24
TREND_MIN_ERRORS = 5
TREND_CHANGE_THRESHOLD = 0.2
PATTERN_MIN_ERRORS = 3
PATTERN_RATE_MULTIPLIER = 1.5


class CorrelationStrategy(Protocol):
    """Estimates whether errors cluster in longer uptime sessions.

    Returns a coefficient in [-1, 1]; positive means more errors the longer
    a session runs.
    """

    def __call__(self, sessions: list[float], errors: list[EventLogEntry]) -> float: ...


class SyntheticUptimeCorrelation:
    """Qualitative uptime/error correlation over short, medium and long sessions.

    Errors are not matched to real sessions: each error advances a synthetic
    uptime counter by ``step_minutes`` and is binned by that counter.
    """

    def __init__(self, step_minutes: float = 10.0) -> None:
        self.step_minutes = step_minutes

    def __call__(self, sessions: list[float], errors: list[EventLogEntry]) -> float:
        if len(sessions) < 3 or len(errors) < 3:
            return 0.0

        ordered = sorted(sessions)
        short_threshold = ordered[len(ordered) // 3]
        long_threshold = ordered[len(ordered) * 2 // 3]

        short_errors = medium_errors = long_errors = 0
        running_uptime = 0.0
        for _ in errors:
            if running_uptime < short_threshold:
                short_errors += 1
            elif running_uptime < long_threshold:
                medium_errors += 1
            else:
                long_errors += 1
            running_uptime += self.step_minutes

        short_periods = sum(1 for s in ordered if s <= short_threshold)
        medium_periods = sum(1 for s in ordered if short_threshold < s <= long_threshold)
        long_periods = sum(1 for s in ordered if s > long_threshold)

        short_density = short_errors / short_periods if short_periods else 0.0
        medium_density = medium_errors / medium_periods if medium_periods else 0.0
        long_density = long_errors / long_periods if long_periods else 0.0

        if short_density == medium_density == long_density == 0:
            return 0.0
        if long_density > medium_density > short_density:
            return 0.8
        if long_density > short_density:
            return 0.5
        if short_density > long_density:
            return -0.5
        return 0.0


def error_frequency_trend(errors: list[EventLogEntry]) -> Trend:
    """Compare errors per hour in the first and second half of the error list."""
    if len(errors) < TREND_MIN_ERRORS:
        return Trend.STABLE

    midpoint = len(errors) // 2
    first_half, second_half = errors[:midpoint], errors[midpoint:]

    def rate(half: list[EventLogEntry]) -> float:
        span_hours = (half[-1].timestamp - half[0].timestamp).total_seconds() / 3600
        return len(half) / span_hours if span_hours > 0 else 0.0

    first_rate, second_rate = rate(first_half), rate(second_half)
    change = (second_rate - first_rate) / first_rate if first_rate > 0 else 0.0

    if change > TREND_CHANGE_THRESHOLD:
        return Trend.INCREASING
    if change < -TREND_CHANGE_THRESHOLD:
        return Trend.DECREASING
    return Trend.STABLE


def error_density(error_count: int, total_uptime_minutes: float) -> float:
    operating_hours = total_uptime_minutes / 60
    return error_count / operating_hours if operating_hours > 0 else 0.0


def uptime_stability(sessions: list[float]) -> float:
    """Coefficient of variation of session lengths, 0 with fewer than two sessions."""
    if len(sessions) < 2:
        return 0.0
    mean = statistics.fmean(sessions)
    return statistics.pstdev(sessions) / mean if mean > 0 else 0.0


def time_based_patterns(aggregated: AggregatedLog) -> list[TimeBasedPattern]:
    """Find (weekday, hour) slots whose failure rate stands out from the overall rate."""
    errors_by_slot: dict[tuple[int, int], int] = defaultdict(int)
    for entry in aggregated.errors:
        errors_by_slot[(entry.timestamp.weekday(), entry.timestamp.hour)] += 1

    checks_by_slot: dict[tuple[int, int], int] = defaultdict(int)
    for entry in aggregated.status_changes:
        checks_by_slot[(entry.timestamp.weekday(), entry.timestamp.hour)] += 1

    patterns = []
    for (day, hour), count in errors_by_slot.items():
        checks = checks_by_slot.get((day, hour), 0)
        slot_rate = count / checks * 100 if checks else 0.0
        if count >= PATTERN_MIN_ERRORS and slot_rate > aggregated.failure_rate * PATTERN_RATE_MULTIPLIER:
            patterns.append(
                TimeBasedPattern(
                    hour_of_day=hour,
                    day_of_week=day,
                    failure_rate=slot_rate,
                    confidence=min(100, 40 + count * 10),
                )
            )

    patterns.sort(key=lambda p: p.confidence, reverse=True)
    return patterns


def performance_degradation(average_uptime: float, trend: Trend, stability: float) -> float:
    degradation = 0.0
    uptime_hours = average_uptime / 60
    if uptime_hours > MEMORY_LEAK_THRESHOLD_HOURS:
        hours_past = uptime_hours - MEMORY_LEAK_THRESHOLD_HOURS
        degradation += min(50, 10 * math.log(1 + hours_past / 12))
    if trend == Trend.INCREASING:
        degradation += 20
    if stability > 0.5:
        degradation += 15
    return degradation


def memory_leak_likelihood(
    service: MonitoredService,
    aggregated: AggregatedLog,
    correlation: CorrelationStrategy,
) -> float:
    likelihood = 0.0
    sessions = aggregated.uptime_sessions

    if len(sessions) >= 3 and len(aggregated.errors) >= 3:
        coefficient = correlation(sessions, aggregated.errors)
        if coefficient > 0.6:
            likelihood += 40
        elif coefficient > 0.3:
            likelihood += 20

    threshold_minutes = MEMORY_LEAK_THRESHOLD_HOURS * 60
    if aggregated.average_uptime > threshold_minutes:
        hours_over = aggregated.average_uptime / 60 - MEMORY_LEAK_THRESHOLD_HOURS
        likelihood += min(40, hours_over * 0.8)

    # Down now after a session that itself ran past the threshold
    if service.status != ServiceStatus.RUNNING and sessions and sessions[-1] > threshold_minutes:
        likelihood += 20

    return max(0.0, min(100.0, likelihood))


def mine(
    service: MonitoredService,
    aggregated: AggregatedLog,
    correlation: Optional[CorrelationStrategy] = None,
) -> HealthMetrics:
    """Derive the full health metrics of a service from its aggregated log."""
    correlation = correlation or SyntheticUptimeCorrelation()

    trend = error_frequency_trend(aggregated.errors)
    stability = uptime_stability(aggregated.uptime_sessions)

    metrics = HealthMetrics(
        failure_rate=aggregated.failure_rate,
        average_uptime=aggregated.average_uptime,
        restart_frequency=aggregated.restart_frequency,
        status_transitions=aggregated.status_transitions,
        error_occurrences=len(aggregated.errors),
        last_restarted=aggregated.last_restarted,
        error_frequency_trend=trend,
        time_based_patterns=time_based_patterns(aggregated),
        error_density=error_density(len(aggregated.errors), aggregated.total_uptime),
        uptime_stability=stability,
        performance_degradation=performance_degradation(aggregated.average_uptime, trend, stability),
        memory_leak_likelihood=memory_leak_likelihood(service, aggregated, correlation),
        days_since_last_restart=aggregated.days_since_last_restart,
        uptime_sessions=list(aggregated.uptime_sessions),
        current_uptime=aggregated.current_uptime,
    )

    logger.debug(
        f"Patterns mined - service_id: {service.id}, trend: {trend.value}, "
        f"patterns: {len(metrics.time_based_patterns)}, memory_leak: {metrics.memory_leak_likelihood:.0f}"
    )
    return metrics
