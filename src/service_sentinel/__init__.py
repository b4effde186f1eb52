"""Service Sentinel - health intelligence and restart control for a fleet of services.

The sentinel infers service health from event logs, scores services for
restart urgency and forecasts failure windows for the next 24 hours. A
scheduler probes the fleet periodically and can restart services or clean
up ghost processes automatically.

Example:
    Running the HTTP surface:

    ```python
    import uvicorn
    from service_sentinel.main import app

    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```
"""

__version__ = "0.1.0"

from .advisor import HealthAdvisor
from .controller import RestartController
from .models import MonitoredService, ServiceStatus
from .scheduler import MonitorScheduler
from .storage import InMemoryRegistry

__all__ = [
    "HealthAdvisor",
    "InMemoryRegistry",
    "MonitorScheduler",
    "MonitoredService",
    "RestartController",
    "ServiceStatus",
]
