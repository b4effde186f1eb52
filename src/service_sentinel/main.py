"""Main FastAPI application for the service sentinel."""

import logging
import time
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .advisor import HealthAdvisor
from .config import config
from .controller import RestartController
from .inspector import PsutilProcessInspector
from .models import (
    CheckKind,
    ControlResult,
    GhostCleanupResult,
    GlobalSettings,
    HealthResponse,
    MonitoredService,
    RestartRecommendation,
    ServicePrediction,
)
from .ports import PortEventChannel, PortWatcher
from .probe import StatusProbe
from .scheduler import MonitorScheduler
from .storage import InMemoryRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Service Sentinel",
    description="Health intelligence and restart control for a fleet of services",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


class CheckFrequencyUpdate(BaseModel):
    """Request body for changing a check interval."""

    kind: CheckKind = Field(default=CheckKind.STATUS, description="Which timer to reconfigure")
    seconds: int = Field(..., gt=0, description="New interval in seconds")


def build_components(registry: InMemoryRegistry) -> None:
    """Wire the sentinel components around a registry."""
    global advisor, controller, inspector, port_channel, port_watcher, probe, scheduler

    inspector = PsutilProcessInspector(timeout_seconds=config.inspector_timeout_seconds)
    probe = StatusProbe(config.probe)
    advisor = HealthAdvisor(registry, config)
    controller = RestartController(registry, inspector, config.control)
    port_channel = PortEventChannel()
    port_watcher = PortWatcher(registry, inspector, port_channel)
    scheduler = MonitorScheduler(registry, probe, controller, port_watcher)


# Initialize registry and components
registry = InMemoryRegistry()
build_components(registry)


def reset_registry() -> None:
    """Reset the registry and components for testing purposes."""
    global registry
    registry = InMemoryRegistry()
    build_components(registry)


# Track application start time for uptime calculation
app_start_time = time.time()

logger.info("Service Sentinel application starting - version: 0.1.0")


def get_service_or_404(service_id: int) -> MonitoredService:
    service = registry.get_service(service_id)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Service '{service_id}' not found",
        )
    return service


@app.on_event("startup")
async def startup_event() -> None:
    """Handle application startup."""
    logger.info("Starting monitor scheduler")
    await scheduler.start()


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Handle application shutdown."""
    logger.info("Service Sentinel shutting down")
    await scheduler.close()


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint for the sentinel itself.

    Returns:
        HealthResponse: Current health status and metrics
    """
    current_time = datetime.now(timezone.utc)
    uptime = time.time() - app_start_time
    monitored_services = registry.get_service_count()

    logger.debug(f"Health check requested - uptime: {uptime:.2f}s, monitored_services: {monitored_services}")

    return HealthResponse(
        status="healthy",
        timestamp=current_time,
        uptime_seconds=uptime,
        monitored_services=monitored_services,
        scheduler_running=scheduler.is_running,
    )


@app.get("/services", response_model=list[MonitoredService])
async def get_all_services() -> list[MonitoredService]:
    """Get all registered services."""
    return registry.list_services()


@app.post("/services", response_model=MonitoredService, status_code=status.HTTP_201_CREATED)
async def register_service(service: MonitoredService) -> MonitoredService:
    """Register or replace a service."""
    if not service.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Service name cannot be empty",
        )
    registered = registry.add_service(service)
    registry.append_event(service.id, "Registered", f"Service {service.name} registered", status=service.status)
    return registered


@app.delete("/services/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(service_id: int) -> None:
    """Unregister a service. Its event log is kept."""
    service = get_service_or_404(service_id)
    registry.remove_service(service_id)
    registry.append_event(None, "Unregistered", f"Service {service.name} (ID: {service_id}) unregistered")


@app.get("/services/{service_id}", response_model=MonitoredService)
async def get_service(service_id: int) -> MonitoredService:
    return get_service_or_404(service_id)


@app.get("/recommendations", response_model=list[RestartRecommendation])
async def get_recommendations() -> list[RestartRecommendation]:
    """Restart recommendations for all services, highest score first."""
    recommendations = advisor.get_all_recommendations()
    logger.info(f"Recommendations retrieved - count: {len(recommendations)}")
    return recommendations


@app.get("/services/{service_id}/recommendation")
async def get_service_recommendation(service_id: int) -> dict:
    """Restart recommendation for one service.

    The recommendation is null when the service has no history or scores
    below the recommendation threshold.
    """
    get_service_or_404(service_id)
    recommendation = advisor.get_recommendation(service_id)
    return {
        "service_id": service_id,
        "recommendation": recommendation.model_dump(mode="json") if recommendation else None,
    }


@app.get("/predictions", response_model=list[ServicePrediction])
async def get_predictions() -> list[ServicePrediction]:
    """Failure predictions for all services with history."""
    predictions = advisor.generate_all_predictions()
    logger.info(f"Predictions retrieved - count: {len(predictions)}")
    return predictions


@app.get("/services/{service_id}/prediction")
async def get_service_prediction(service_id: int) -> dict:
    """Failure prediction for one service, null without history."""
    get_service_or_404(service_id)
    prediction = advisor.generate_prediction(service_id)
    return {
        "service_id": service_id,
        "prediction": prediction.model_dump(mode="json") if prediction else None,
    }


@app.post("/services/{service_id}/start", response_model=ControlResult)
async def start_service(service_id: int) -> ControlResult:
    service = get_service_or_404(service_id)
    logger.info(f"Start requested - service_id: {service_id}")
    return await controller.start(service)


@app.post("/services/{service_id}/stop", response_model=ControlResult)
async def stop_service(service_id: int) -> ControlResult:
    service = get_service_or_404(service_id)
    logger.info(f"Stop requested - service_id: {service_id}")
    return await controller.stop(service)


@app.post("/services/{service_id}/restart", response_model=ControlResult)
async def restart_service(service_id: int) -> ControlResult:
    service = get_service_or_404(service_id)
    logger.info(f"Restart requested - service_id: {service_id}")
    return await controller.restart(service)


@app.post("/services/{service_id}/terminate-ghost-processes", response_model=GhostCleanupResult)
async def terminate_ghost_processes(service_id: int) -> GhostCleanupResult:
    service = get_service_or_404(service_id)
    logger.info(f"Ghost process cleanup requested - service_id: {service_id}")
    return await controller.terminate_ghost_processes(service)


@app.get("/settings", response_model=GlobalSettings)
async def get_settings() -> GlobalSettings:
    return registry.get_settings()


@app.put("/settings/check-frequency", response_model=GlobalSettings)
async def update_check_frequency(update: CheckFrequencyUpdate) -> GlobalSettings:
    """Change one check interval; running timers are stopped and restarted."""
    logger.info(f"Check frequency update requested - kind: {update.kind.value}, seconds: {update.seconds}")
    await scheduler.update_check_frequency(update.kind, update.seconds)
    return registry.get_settings()


@app.exception_handler(Exception)
async def global_exception_handler(request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Error response
    """
    logger.error(
        f"Unhandled exception - path: {request.url.path}, method: {request.method}, error: {str(exc)}",
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Service Sentinel server - host: 0.0.0.0, port: 8000")
    uvicorn.run(app, host="0.0.0.0", port=8000)
