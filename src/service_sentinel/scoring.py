"""Restart recommendation scoring.

The score is the sum of independent factors. Each factor is an ordered
tuple of tiers and only its first matching tier counts, so a factor never
contributes more than its top tier. Reasons and primary factors are chosen
by a separate priority-ordered rule list.
"""

import calendar
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .models import (
    EventLogEntry,
    HealthMetrics,
    MonitoredService,
    RestartRecommendation,
    ServiceStatus,
    TimeBasedPattern,
    Trend,
    Urgency,
)
from .patterns import MEMORY_LEAK_THRESHOLD_HOURS

logger = logging.getLogger(__name__)

HIGH_FAILURE_RATE = 15
MEDIUM_FAILURE_RATE = 8
LOW_FAILURE_RATE = 3
PERIODIC_RESTART_INTERVAL_DAYS = 3
HIGH_CONFIDENCE_PATTERN = 80
UPCOMING_PATTERN_HOURS = 3
MIN_RECOMMENDATION_SCORE = 20
MAX_SCORE = 100
STATUS_HISTORY_LENGTH = 5

CRITICAL_STATUSES = (ServiceStatus.UNREACHABLE, ServiceStatus.ERROR)


@dataclass(frozen=True)
class ScoringContext:
    """Everything a scoring or reason rule may look at."""

    service: MonitoredService
    metrics: HealthMetrics
    now: datetime

    @property
    def in_critical_state(self) -> bool:
        return self.service.status in CRITICAL_STATUSES

    @property
    def uptime_hours(self) -> float:
        return self.metrics.average_uptime / 60

    @property
    def high_confidence_patterns(self) -> list[TimeBasedPattern]:
        return [p for p in self.metrics.time_based_patterns if p.confidence > HIGH_CONFIDENCE_PATTERN]

    def current_pattern(self) -> Optional[TimeBasedPattern]:
        """High confidence pattern covering the current weekday and hour."""
        return next(
            (
                p
                for p in self.high_confidence_patterns
                if p.day_of_week == self.now.weekday() and p.hour_of_day == self.now.hour
            ),
            None,
        )

    def upcoming_pattern(self) -> Optional[TimeBasedPattern]:
        """High confidence pattern later today within the look-ahead window."""
        return next(
            (
                p
                for p in self.high_confidence_patterns
                if p.day_of_week == self.now.weekday()
                and self.now.hour < p.hour_of_day <= self.now.hour + UPCOMING_PATTERN_HOURS
            ),
            None,
        )


Predicate = Callable[[ScoringContext], bool]


@dataclass(frozen=True)
class ScoringRule:
    predicate: Predicate
    points: int
    label: str


@dataclass(frozen=True)
class ScoringFactor:
    """A capped score factor made of mutually exclusive tiers."""

    name: str
    tiers: tuple[ScoringRule, ...]

    def evaluate(self, ctx: ScoringContext) -> Optional[ScoringRule]:
        return next((rule for rule in self.tiers if rule.predicate(ctx)), None)


def _tiers(value: Callable[[ScoringContext], float], *steps: tuple[float, int], label: str) -> tuple[ScoringRule, ...]:
    """Build descending "greater than threshold" tiers for a numeric metric."""
    return tuple(
        ScoringRule(
            predicate=lambda ctx, threshold=threshold: value(ctx) > threshold,
            points=points,
            label=f"{label} > {threshold:g}",
        )
        for threshold, points in steps
    )


SCORING_FACTORS: tuple[ScoringFactor, ...] = (
    ScoringFactor(
        "failure_rate",
        _tiers(
            lambda ctx: ctx.metrics.failure_rate,
            (HIGH_FAILURE_RATE, 20),
            (MEDIUM_FAILURE_RATE, 10),
            (LOW_FAILURE_RATE, 5),
            label="failure rate %",
        ),
    ),
    ScoringFactor(
        "average_uptime",
        _tiers(
            lambda ctx: ctx.uptime_hours,
            (MEMORY_LEAK_THRESHOLD_HOURS * 2, 15),
            (MEMORY_LEAK_THRESHOLD_HOURS, 10),
            label="average uptime hours",
        ),
    ),
    ScoringFactor(
        "status_transitions",
        _tiers(lambda ctx: ctx.metrics.status_transitions, (10, 15), (5, 10), (2, 5), label="status transitions"),
    ),
    ScoringFactor(
        "current_status",
        (
            ScoringRule(lambda ctx: ctx.service.status == ServiceStatus.UNREACHABLE, 25, "service unreachable"),
            ScoringRule(lambda ctx: ctx.service.status == ServiceStatus.ERROR, 20, "service in error"),
        ),
    ),
    ScoringFactor(
        "error_occurrences",
        _tiers(lambda ctx: ctx.metrics.error_occurrences, (5, 10), (2, 5), label="error occurrences"),
    ),
    ScoringFactor(
        "memory_leak",
        _tiers(lambda ctx: ctx.metrics.memory_leak_likelihood, (70, 25), (40, 15), (20, 5), label="memory leak %"),
    ),
    ScoringFactor(
        "error_trend",
        (ScoringRule(lambda ctx: ctx.metrics.error_frequency_trend == Trend.INCREASING, 20, "error trend increasing"),),
    ),
    ScoringFactor(
        "performance_degradation",
        _tiers(
            lambda ctx: ctx.metrics.performance_degradation,
            (50, 20),
            (25, 10),
            (10, 5),
            label="performance degradation %",
        ),
    ),
    ScoringFactor(
        "time_patterns",
        (
            ScoringRule(lambda ctx: bool(ctx.high_confidence_patterns), 15, "high confidence failure pattern"),
            ScoringRule(lambda ctx: bool(ctx.metrics.time_based_patterns), 10, "failure pattern"),
        ),
    ),
    ScoringFactor(
        "time_pattern_active",
        (ScoringRule(lambda ctx: ctx.current_pattern() is not None, 15, "inside high risk time slot"),),
    ),
    ScoringFactor(
        "days_since_restart",
        _tiers(
            lambda ctx: ctx.metrics.days_since_last_restart,
            (PERIODIC_RESTART_INTERVAL_DAYS * 2, 15),
            (PERIODIC_RESTART_INTERVAL_DAYS, 10),
            label="days since restart",
        ),
    ),
    ScoringFactor(
        "error_density",
        _tiers(lambda ctx: ctx.metrics.error_density, (2.0, 15), (1.0, 10), (0.5, 5), label="errors per hour"),
    ),
    ScoringFactor(
        "uptime_stability",
        _tiers(lambda ctx: ctx.metrics.uptime_stability, (0.8, 10), (0.5, 5), label="uptime variation"),
    ),
)


def explain_score(
    ctx: ScoringContext, factors: Sequence[ScoringFactor] = SCORING_FACTORS
) -> list[tuple[str, ScoringRule]]:
    """Return the (factor name, fired tier) pairs that make up the score."""
    fired = []
    for factor in factors:
        rule = factor.evaluate(ctx)
        if rule is not None:
            fired.append((factor.name, rule))
    return fired


def calculate_recommendation_score(
    service: MonitoredService,
    metrics: HealthMetrics,
    now: Optional[datetime] = None,
    factors: Sequence[ScoringFactor] = SCORING_FACTORS,
) -> int:
    """Sum the fired factor tiers and clamp the result to [0, 100]."""
    ctx = ScoringContext(service, metrics, now or datetime.now(timezone.utc))
    score = sum(rule.points for _, rule in explain_score(ctx, factors))
    return max(0, min(MAX_SCORE, score))


def determine_urgency(score: int, status: ServiceStatus) -> Urgency:
    if score >= 80 or status in CRITICAL_STATUSES:
        return Urgency.CRITICAL
    if score >= 60:
        return Urgency.HIGH
    if score >= 40:
        return Urgency.MEDIUM
    return Urgency.LOW


RECOMMENDED_TIME_WINDOWS: dict[Urgency, str] = {
    Urgency.CRITICAL: "Immediate restart recommended",
    Urgency.HIGH: "Within the next hour",
    Urgency.MEDIUM: "Within the next 24 hours",
    Urgency.LOW: "During the next scheduled maintenance",
}


@dataclass(frozen=True)
class ReasonRule:
    """Priority-ordered rule picking the primary factor and reason text."""

    primary_factor: str
    predicate: Predicate
    describe: Callable[[ScoringContext], str]


def _pattern_reason(ctx: ScoringContext) -> str:
    current = ctx.current_pattern()
    if current is not None:
        return (
            f"Service is currently in a high-risk time period ({calendar.day_name[current.day_of_week]} at "
            f"{current.hour_of_day}:00) with historical failure rate of {current.failure_rate:.1f}%. "
            "Preemptive restart is recommended to prevent likely failures."
        )
    upcoming = ctx.upcoming_pattern()
    return (
        f"Service shows a pattern of failures approaching soon ({calendar.day_name[upcoming.day_of_week]} at "
        f"{upcoming.hour_of_day}:00). Recommended preemptive restart to prevent likely issues."
    )


def _extended_uptime_reason(ctx: ScoringContext) -> str:
    if ctx.metrics.days_since_last_restart > PERIODIC_RESTART_INTERVAL_DAYS * 2:
        return (
            f"Service has been running for {int(ctx.metrics.days_since_last_restart)} days without restart "
            f"(recommended maximum is {PERIODIC_RESTART_INTERVAL_DAYS} days). "
            "Preventative restart will help avoid resource depletion issues."
        )
    return (
        f"Service has been running for {ctx.uptime_hours:.1f} hours without restart, which may lead to memory "
        "leaks or resource exhaustion. Preventative restart recommended."
    )


REASON_RULES: tuple[ReasonRule, ...] = (
    ReasonRule(
        "Current Error State",
        lambda ctx: ctx.in_critical_state,
        lambda ctx: (
            f"Service is in {ctx.service.status.value} state and requires immediate attention. "
            "A restart is recommended to restore functionality."
        ),
    ),
    ReasonRule(
        "Probable Memory Leak",
        lambda ctx: ctx.metrics.memory_leak_likelihood > 70,
        lambda ctx: (
            f"High likelihood of memory leak detected ({ctx.metrics.memory_leak_likelihood:.0f}%). "
            f"Service has been running for {ctx.uptime_hours:.1f} hours and shows increasing error rates over "
            "time. A restart will free up memory resources."
        ),
    ),
    ReasonRule(
        "Time-based Failure Pattern",
        lambda ctx: ctx.current_pattern() is not None or ctx.upcoming_pattern() is not None,
        _pattern_reason,
    ),
    ReasonRule(
        "Performance Degradation",
        lambda ctx: ctx.metrics.performance_degradation > 40,
        lambda ctx: (
            f"Service performance has degraded by approximately {ctx.metrics.performance_degradation:.0f}% based "
            "on error patterns and uptime. A restart will likely restore optimal performance."
        ),
    ),
    ReasonRule(
        "Increasing Error Rate",
        lambda ctx: ctx.metrics.failure_rate > HIGH_FAILURE_RATE
        and ctx.metrics.error_frequency_trend == Trend.INCREASING,
        lambda ctx: (
            f"Service is showing increasing error rates, currently at {ctx.metrics.failure_rate:.1f}%. "
            "This trend suggests worsening conditions that a restart may resolve."
        ),
    ),
    ReasonRule(
        "Extended Uptime",
        lambda ctx: ctx.metrics.days_since_last_restart > PERIODIC_RESTART_INTERVAL_DAYS * 2,
        _extended_uptime_reason,
    ),
    ReasonRule(
        "High Failure Rate",
        lambda ctx: ctx.metrics.failure_rate > HIGH_FAILURE_RATE,
        lambda ctx: (
            f"High failure rate detected ({ctx.metrics.failure_rate:.1f}%) indicating service instability. "
            "A restart may resolve underlying issues."
        ),
    ),
    # Long average sessions rank below an unstable failure rate
    ReasonRule(
        "Extended Uptime",
        lambda ctx: ctx.uptime_hours > MEMORY_LEAK_THRESHOLD_HOURS,
        _extended_uptime_reason,
    ),
    ReasonRule(
        "Erratic Behavior",
        lambda ctx: ctx.metrics.status_transitions > 5 and ctx.metrics.uptime_stability > 0.5,
        lambda ctx: (
            f"Service has shown unstable behavior with {ctx.metrics.status_transitions} status transitions and "
            "irregular uptime patterns. A restart may help stabilize operation."
        ),
    ),
    ReasonRule(
        "High Error Density",
        lambda ctx: ctx.metrics.error_density > 1.0,
        lambda ctx: (
            f"Service is experiencing a high error density of {ctx.metrics.error_density:.1f} errors per hour "
            "of operation. A restart may clear temporary error conditions."
        ),
    ),
)


def determine_reason(ctx: ScoringContext, score: int) -> tuple[str, str]:
    """Return (primary factor, reason) from the first matching reason rule."""
    for rule in REASON_RULES:
        if rule.predicate(ctx):
            return rule.primary_factor, rule.describe(ctx)
    return (
        "General Stability",
        f"System analysis indicates a restart may improve performance (Score: {score}/100). "
        "Periodic restarts are recommended even for stable services.",
    )


def predict_issues(ctx: ScoringContext) -> list[str]:
    issues = []
    if ctx.metrics.memory_leak_likelihood > 50:
        issues.append("Potential service crash due to memory exhaustion")
    if ctx.metrics.error_frequency_trend == Trend.INCREASING:
        issues.append("Progressively degrading user experience as errors increase")
    if ctx.metrics.performance_degradation > 20:
        issues.append("Slowed response times and reduced throughput")
    if ctx.service.status != ServiceStatus.RUNNING:
        issues.append("Continued service unavailability")
    return issues or ["Potential periodic instability"]


def status_history(entries: Sequence[EventLogEntry]) -> list[str]:
    """Most recent status, start and restart entries rendered as text."""
    relevant = [
        entry
        for entry in entries
        if entry.action == "Status Change" or "Restart" in entry.action or "Start" in entry.action
    ]
    relevant.sort(key=lambda entry: (entry.timestamp, entry.id), reverse=True)
    return [
        f"{entry.timestamp.isoformat(timespec='seconds')}: {entry.action} - "
        f"{entry.status.value if entry.status else 'n/a'}"
        for entry in relevant[:STATUS_HISTORY_LENGTH]
    ]


def build_recommendation(
    service: MonitoredService,
    metrics: HealthMetrics,
    entries: Sequence[EventLogEntry],
    now: Optional[datetime] = None,
) -> Optional[RestartRecommendation]:
    """Score a service and build its recommendation, or None below the threshold."""
    ctx = ScoringContext(service, metrics, now or datetime.now(timezone.utc))
    score = calculate_recommendation_score(service, metrics, ctx.now)
    if score < MIN_RECOMMENDATION_SCORE:
        logger.debug(f"No recommendation - service_id: {service.id}, score: {score}")
        return None

    urgency = determine_urgency(score, service.status)
    primary_factor, reason = determine_reason(ctx, score)

    logger.info(
        f"Restart recommendation built - service_id: {service.id}, score: {score}, "
        f"urgency: {urgency.value}, primary_factor: {primary_factor}"
    )

    return RestartRecommendation(
        service_id=service.id,
        service_name=service.name,
        recommendation_score=score,
        reason=reason,
        urgency=urgency,
        primary_factor=primary_factor,
        predicted_issues=predict_issues(ctx),
        recommended_time_window=RECOMMENDED_TIME_WINDOWS[urgency],
        memory_leak_likelihood=round(metrics.memory_leak_likelihood),
        last_restarted=metrics.last_restarted,
        status_history=status_history(entries),
        uptime=metrics.average_uptime,
    )
