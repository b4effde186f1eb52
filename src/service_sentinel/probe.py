"""Status probing for monitored services."""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from .config import ProbeConfig
from .models import MonitoredService, ServiceStatus, ServiceType

logger = logging.getLogger(__name__)

HTTP_SERVICE_TYPES = (ServiceType.FRONTEND, ServiceType.BACKEND)
STANDARD_PORTS = (80, 443)


def normalize_url(url: str, port: int) -> str:
    """Add a scheme when missing and append the port when it is non-standard.

    Args:
        url: URL or host as registered
        port: Primary port of the service

    Returns:
        URL suitable for an HTTP probe
    """
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    parts = urlsplit(url)
    if parts.port is None and port not in STANDARD_PORTS:
        parts = parts._replace(netloc=f"{parts.netloc}:{port}")
    return urlunsplit(parts)


def extract_host(url: str) -> str:
    """Strip scheme, path and port from a service URL."""
    host = url.split("//", 1)[1] if "//" in url else url
    host = host.split("/", 1)[0]
    return host.rsplit(":", 1)[0] if host.count(":") == 1 else host


class StatusProbe:
    """Checks the reachability of a single service without side effects."""

    def __init__(self, probe_config: Optional[ProbeConfig] = None) -> None:
        self.config = probe_config or ProbeConfig()
        self._client: Optional[httpx.AsyncClient] = None

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=False)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def probe(self, service: MonitoredService) -> ServiceStatus:
        """Probe a service over HTTP or TCP depending on its type."""
        if service.type in HTTP_SERVICE_TYPES:
            url = normalize_url(service.url, service.port)
            return await self.check_http(service, url, self.config.http_timeout_seconds)
        return await self.check_tcp(service)

    async def probe_endpoint(self, service: MonitoredService, timeout_seconds: Optional[float] = None) -> ServiceStatus:
        """Probe the health check endpoint of a service."""
        base = normalize_url(service.url, service.port).rstrip("/")
        path = service.health_check_path
        if not path.startswith("/"):
            path = f"/{path}"
        return await self.check_http(service, f"{base}{path}", timeout_seconds or self.config.http_timeout_seconds)

    async def check_http(self, service: MonitoredService, url: str, timeout_seconds: float) -> ServiceStatus:
        """Classify the outcome of an HTTP GET into a service status."""
        try:
            client = await self.get_client()
            logger.debug(f"Checking HTTP status of {service.name} at {url}")

            try:
                response = await client.get(url, timeout=timeout_seconds)
            except httpx.TimeoutException:
                logger.warning(f"HTTP probe timeout for {service.name} after {timeout_seconds}s")
                return ServiceStatus.UNREACHABLE
            except httpx.TransportError as e:
                logger.warning(f"Connection error probing {service.name}: {e}")
                return ServiceStatus.STOPPED

            if 200 <= response.status_code < 400:
                return ServiceStatus.RUNNING

            logger.warning(f"Service {service.name} returned status code {response.status_code}")
            return ServiceStatus.UNREACHABLE

        except Exception as e:
            logger.error(f"Unexpected error probing {service.name}: {e}", exc_info=True)
            return ServiceStatus.ERROR

    async def check_tcp(self, service: MonitoredService) -> ServiceStatus:
        """Classify a raw TCP connect attempt into a service status."""
        host = extract_host(service.url)
        timeout_seconds = self.config.tcp_timeout_seconds
        logger.debug(f"Checking TCP port of {service.name} at {host}:{service.port}")

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(host, service.port), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"TCP probe timeout for {service.name} after {timeout_seconds}s")
            return ServiceStatus.UNREACHABLE
        except OSError as e:
            logger.warning(f"TCP connection error probing {service.name}: {e}")
            return ServiceStatus.STOPPED

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            logger.debug(f"Socket for {service.name} closed with an error")
        return ServiceStatus.RUNNING
