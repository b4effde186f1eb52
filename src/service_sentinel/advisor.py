"""Health analysis facade over the registry.

Fetches the analysis window of a service's event log and runs it through
aggregation, pattern mining, scoring and prediction.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import SentinelConfig
from .metrics import aggregate
from .models import EventLogEntry, HealthMetrics, MonitoredService, RestartRecommendation, ServicePrediction
from .patterns import CorrelationStrategy, mine
from .prediction import generate_prediction
from .scoring import build_recommendation
from .storage import Registry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HealthAdvisor:
    """Produces restart recommendations and failure predictions for registered services."""

    def __init__(
        self,
        registry: Registry,
        sentinel_config: Optional[SentinelConfig] = None,
        clock: Callable[[], datetime] = utc_now,
        correlation: Optional[CorrelationStrategy] = None,
    ) -> None:
        self.registry = registry
        self.config = sentinel_config or SentinelConfig()
        self.clock = clock
        self.correlation = correlation

    def history(self, service: MonitoredService, now: datetime) -> list[EventLogEntry]:
        since = now - timedelta(days=self.config.history_days)
        return self.registry.query_events(service_id=service.id, since=since)

    def analyze(
        self, service: MonitoredService, now: Optional[datetime] = None
    ) -> tuple[Optional[HealthMetrics], list[EventLogEntry]]:
        """Compute health metrics for a service.

        Returns:
            Tuple of (metrics or None when the window is empty, window entries)
        """
        now = now or self.clock()
        entries = self.history(service, now)
        if not entries:
            return None, entries

        aggregated = aggregate(service, entries, now, self.config.history_days)
        return mine(service, aggregated, self.correlation), entries

    def get_recommendation(self, service_id: int) -> Optional[RestartRecommendation]:
        service = self.registry.get_service(service_id)
        if service is None:
            return None

        now = self.clock()
        metrics, entries = self.analyze(service, now)
        if metrics is None:
            return None
        return build_recommendation(service, metrics, entries, now)

    def get_all_recommendations(self) -> list[RestartRecommendation]:
        """Recommendations for every service, highest score first."""
        recommendations = []
        for service in self.registry.list_services():
            try:
                recommendation = self.get_recommendation(service.id)
            except Exception as e:
                logger.error(f"Recommendation failed - service_id: {service.id}, error: {e}", exc_info=True)
                continue
            if recommendation is not None:
                recommendations.append(recommendation)

        recommendations.sort(key=lambda r: r.recommendation_score, reverse=True)
        return recommendations

    def generate_prediction(self, service_id: int) -> Optional[ServicePrediction]:
        service = self.registry.get_service(service_id)
        if service is None:
            return None

        now = self.clock()
        metrics, entries = self.analyze(service, now)
        if metrics is None:
            return None
        return generate_prediction(service, metrics, entries, now)

    def generate_all_predictions(self) -> list[ServicePrediction]:
        """Predictions for every service with history, riskiest first."""
        predictions = []
        for service in self.registry.list_services():
            try:
                prediction = self.generate_prediction(service.id)
            except Exception as e:
                logger.error(f"Prediction failed - service_id: {service.id}, error: {e}", exc_info=True)
                continue
            if prediction is not None:
                predictions.append(prediction)

        predictions.sort(key=lambda p: p.aggregated_failure_probability, reverse=True)
        return predictions
