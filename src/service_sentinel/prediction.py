"""Failure prediction over a rolling 24 hour horizon."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import (
    EventLogEntry,
    HealthMetrics,
    HighRiskPeriod,
    MonitoredService,
    PredictedMetrics,
    PredictionTimeSlot,
    RiskLevel,
    ServicePrediction,
    ServiceStatus,
    ServiceType,
    Trend,
)
from .patterns import MEMORY_LEAK_THRESHOLD_HOURS
from .scoring import HIGH_FAILURE_RATE, MEDIUM_FAILURE_RATE, PERIODIC_RESTART_INTERVAL_DAYS

logger = logging.getLogger(__name__)

PREDICTION_HOURS = 24
HISTORY_WEIGHT = 0.7
DEFAULT_CONFIDENCE = 50.0
DEFAULT_RESPONSE_TIME_MS = 200.0
PREDICTED_METRICS_THRESHOLD = 0.3
HIGH_RISK_THRESHOLD = 0.7
MAX_RECOMMENDED_ACTIONS = 5

# (baseline probability, confidence) by current status
STATUS_BASELINES: dict[ServiceStatus, tuple[float, float]] = {
    ServiceStatus.ERROR: (0.8, 90.0),
    ServiceStatus.UNREACHABLE: (0.9, 95.0),
    ServiceStatus.STOPPED: (0.1, 80.0),
}


@dataclass
class SlotEstimate:
    """Accumulates weighted contributions for one prediction slot."""

    probability: float = 0.0
    confidences: list[float] = field(default_factory=list)
    factors: list[str] = field(default_factory=list)

    def add(self, contribution: float, confidence: float, factor: str) -> None:
        self.probability += contribution
        self.confidences.append(confidence)
        self.factors.append(factor)

    @property
    def clamped_probability(self) -> float:
        return max(0.0, min(1.0, self.probability))

    @property
    def confidence(self) -> float:
        if not self.confidences:
            return DEFAULT_CONFIDENCE
        return max(0.0, min(100.0, sum(self.confidences) / len(self.confidences)))


def projected_uptime_hours(service: MonitoredService, metrics: HealthMetrics, hours_ahead: float) -> float:
    """Uptime the service will have reached ``hours_ahead`` from now."""
    if service.status == ServiceStatus.RUNNING and metrics.current_uptime > 0:
        base_minutes = metrics.current_uptime
    else:
        base_minutes = metrics.average_uptime
    return base_minutes / 60 + hours_ahead


def estimate_slot(
    service: MonitoredService, metrics: HealthMetrics, slot_start: datetime, hours_ahead: float
) -> SlotEstimate:
    """Sum the weighted failure contributions for a slot starting at ``slot_start``."""
    estimate = SlotEstimate()

    baseline = STATUS_BASELINES.get(service.status)
    if baseline is not None:
        probability, confidence = baseline
        estimate.add(probability, confidence, f"Service currently {service.status.value}")

    history_confidence = min(90.0, 50.0 + 5.0 * metrics.error_occurrences)
    if metrics.failure_rate > HIGH_FAILURE_RATE:
        estimate.add(0.3 * HISTORY_WEIGHT, history_confidence, f"High failure rate ({metrics.failure_rate:.1f}%)")
    elif metrics.failure_rate > MEDIUM_FAILURE_RATE:
        estimate.add(0.15 * HISTORY_WEIGHT, history_confidence, f"Elevated failure rate ({metrics.failure_rate:.1f}%)")

    if metrics.memory_leak_likelihood > 20:
        leak = metrics.memory_leak_likelihood / 100 * 0.4
        uptime_hours = projected_uptime_hours(service, metrics, hours_ahead)
        if uptime_hours <= MEMORY_LEAK_THRESHOLD_HOURS * 1.5:
            leak *= 0.7
        estimate.add(
            leak,
            metrics.memory_leak_likelihood,
            f"Memory leak likelihood {metrics.memory_leak_likelihood:.0f}% at {uptime_hours:.0f}h uptime",
        )

    for pattern in metrics.time_based_patterns:
        if pattern.day_of_week == slot_start.weekday() and pattern.hour_of_day == slot_start.hour:
            estimate.add(
                pattern.failure_rate / 100 * (pattern.confidence / 100) * 0.5,
                pattern.confidence,
                f"Historical failure pattern at {pattern.hour_of_day}:00",
            )

    if metrics.error_frequency_trend == Trend.INCREASING:
        estimate.add(0.15, 65.0, "Increasing error trend")

    if metrics.performance_degradation > 10:
        estimate.add(
            metrics.performance_degradation / 100 * 0.3,
            60.0,
            f"Performance degradation ({metrics.performance_degradation:.0f}%)",
        )

    if metrics.error_density > 0.5:
        estimate.add(
            min(0.2, 0.05 * metrics.error_density),
            55.0,
            f"Error density {metrics.error_density:.1f}/hour",
        )

    projected_days = metrics.days_since_last_restart + hours_ahead / 24
    if projected_days > PERIODIC_RESTART_INTERVAL_DAYS:
        estimate.add(
            min(0.15, 0.03 * (projected_days - PERIODIC_RESTART_INTERVAL_DAYS)),
            60.0,
            f"{projected_days:.1f} days since last restart",
        )

    return estimate


def predict_metrics(service: MonitoredService, metrics: HealthMetrics, probability: float) -> PredictedMetrics:
    baseline = service.average_response_time_ms or DEFAULT_RESPONSE_TIME_MS
    return PredictedMetrics(
        response_time=baseline * min(3.0, 1 + 2 * probability),
        error_rate=min(100.0, probability * 100 * 0.5 + metrics.failure_rate * 0.1),
        availability_percent=max(0.0, 100 - probability * 60),
        resource_utilization=min(100.0, 40 + probability * 60),
    )


def build_time_slots(
    service: MonitoredService, metrics: HealthMetrics, now: datetime
) -> list[PredictionTimeSlot]:
    """Build hourly slots starting one hour from ``now``."""
    slots = []
    for offset in range(1, PREDICTION_HOURS + 1):
        start_time = now + timedelta(hours=offset)
        estimate = estimate_slot(service, metrics, start_time, offset)
        probability = estimate.clamped_probability

        slots.append(
            PredictionTimeSlot(
                start_time=start_time,
                end_time=start_time + timedelta(hours=1),
                failure_probability=probability,
                confidence_score=estimate.confidence,
                predicted_metrics=(
                    predict_metrics(service, metrics, probability)
                    if probability > PREDICTED_METRICS_THRESHOLD
                    else None
                ),
                contributing_factors=estimate.factors,
            )
        )
    return slots


def aggregate_probability(slots: Sequence[PredictionTimeSlot]) -> float:
    """Confidence-weighted mean of the slot probabilities."""
    total_confidence = sum(slot.confidence_score for slot in slots)
    if total_confidence <= 0:
        return 0.0
    weighted = sum(slot.failure_probability * slot.confidence_score for slot in slots)
    return max(0.0, min(1.0, weighted / total_confidence))


def classify_risk(probability: float) -> RiskLevel:
    if probability >= 0.9:
        return RiskLevel.CRITICAL
    if probability >= 0.7:
        return RiskLevel.HIGH
    # Unreachable from high_risk_periods, which only passes slots >= 0.7
    if probability >= 0.5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def high_risk_periods(slots: Sequence[PredictionTimeSlot]) -> list[HighRiskPeriod]:
    periods = []
    for slot in slots:
        if slot.failure_probability < HIGH_RISK_THRESHOLD:
            continue
        risk = classify_risk(slot.failure_probability)
        cause = slot.contributing_factors[0] if slot.contributing_factors else "combined risk factors"
        periods.append(
            HighRiskPeriod(
                start_time=slot.start_time,
                end_time=slot.end_time,
                risk=risk,
                description=f"{risk.value.capitalize()} failure risk ({slot.failure_probability:.0%}), mainly: {cause}",
            )
        )
    return periods


@dataclass(frozen=True)
class ActionContext:
    service: MonitoredService
    metrics: HealthMetrics
    periods: Sequence[HighRiskPeriod]


@dataclass(frozen=True)
class ActionRule:
    predicate: Callable[[ActionContext], bool]
    actions: Callable[[ActionContext], list[str]]


LEAK_ACTIONS: dict[ServiceType, str] = {
    ServiceType.FRONTEND: "Restart the frontend and audit client-side caches and long-lived connections",
    ServiceType.BACKEND: "Schedule a backend restart and profile heap usage for unreleased objects",
    ServiceType.DATABASE: "Restart the database in a low traffic window and review cache and connection pool sizes",
    ServiceType.OTHER: "Schedule a restart to release accumulated memory",
}

FAILURE_RATE_ACTIONS: dict[ServiceType, str] = {
    ServiceType.FRONTEND: "Verify that upstream APIs the frontend depends on are available",
    ServiceType.BACKEND: "Review backend error logs and dependency health checks",
    ServiceType.DATABASE: "Check database disk space, replication and slow query logs",
    ServiceType.OTHER: "Review recent logs for recurring failures",
}


ACTION_RULES: tuple[ActionRule, ...] = (
    ActionRule(
        lambda ctx: ctx.service.status in (ServiceStatus.ERROR, ServiceStatus.UNREACHABLE),
        lambda ctx: [f"Restart {ctx.service.name} immediately to restore availability"],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.memory_leak_likelihood > 50,
        lambda ctx: [LEAK_ACTIONS[ctx.service.type]],
    ),
    ActionRule(
        lambda ctx: bool(ctx.periods),
        lambda ctx: [
            f"Schedule a preemptive restart before {ctx.periods[0].start_time.strftime('%a %H:%M')} UTC"
        ],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.error_frequency_trend == Trend.INCREASING,
        lambda ctx: ["Investigate the source of the increasing error rate"],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.failure_rate > HIGH_FAILURE_RATE,
        lambda ctx: [FAILURE_RATE_ACTIONS[ctx.service.type]],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.days_since_last_restart > PERIODIC_RESTART_INTERVAL_DAYS,
        lambda ctx: [
            f"Plan a routine restart, last restart was {ctx.metrics.days_since_last_restart:.0f} days ago"
        ],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.performance_degradation > 20,
        lambda ctx: ["Monitor response times and scale resources if latency keeps rising"],
    ),
    ActionRule(
        lambda ctx: ctx.metrics.uptime_stability > 0.5,
        lambda ctx: ["Check for external dependencies causing irregular uptime"],
    ),
)


def recommended_actions(
    service: MonitoredService, metrics: HealthMetrics, periods: Sequence[HighRiskPeriod]
) -> list[str]:
    """Collect actions from the ordered rules, de-duplicated and capped."""
    ctx = ActionContext(service, metrics, periods)
    actions: list[str] = []
    for rule in ACTION_RULES:
        if not rule.predicate(ctx):
            continue
        for action in rule.actions(ctx):
            if action not in actions:
                actions.append(action)

    if not actions:
        actions.append("No action needed, continue regular monitoring")
    return actions[:MAX_RECOMMENDED_ACTIONS]


def generate_prediction(
    service: MonitoredService,
    metrics: HealthMetrics,
    entries: Sequence[EventLogEntry],
    now: Optional[datetime] = None,
) -> Optional[ServicePrediction]:
    """Forecast failure probability for the next 24 hours.

    Returns:
        The prediction, or None when the service has no log entries
    """
    if not entries:
        logger.debug(f"No prediction without history - service_id: {service.id}")
        return None

    now = now or datetime.now(timezone.utc)
    slots = build_time_slots(service, metrics, now)
    periods = high_risk_periods(slots)
    aggregated = aggregate_probability(slots)

    logger.info(
        f"Prediction generated - service_id: {service.id}, "
        f"aggregated_probability: {aggregated:.2f}, high_risk_periods: {len(periods)}"
    )

    return ServicePrediction(
        service_id=service.id,
        service_name=service.name,
        prediction_generated=now,
        prediction_time_slots=slots,
        aggregated_failure_probability=aggregated,
        recommended_actions=recommended_actions(service, metrics, periods),
        high_risk_periods=periods,
    )
