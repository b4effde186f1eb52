"""OS process inspection behind a small capability interface."""

import asyncio
import logging
from typing import Optional, Protocol

import psutil

from .models import ProcessInfo

logger = logging.getLogger(__name__)


class ProcessInspectorError(Exception):
    """The operating system could not be inspected, as opposed to nothing being found."""


class ProcessInspector(Protocol):
    """Maps ports to listening processes and kills processes by PID."""

    async def find_process_by_port(self, port: int) -> Optional[ProcessInfo]: ...

    async def kill_process(self, pid: int) -> bool: ...


def _find_listener(port: int) -> Optional[ProcessInfo]:
    """Find the process listening on a TCP port."""
    for conn in psutil.net_connections(kind="inet"):
        if conn.laddr and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN and conn.pid:
            try:
                name = psutil.Process(conn.pid).name()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                name = None
            return ProcessInfo(pid=conn.pid, name=name)
    return None


def _kill(pid: int) -> bool:
    try:
        proc = psutil.Process(pid)
        proc.kill()
    except psutil.NoSuchProcess:
        logger.warning(f"Process {pid} no longer exists")
        return False
    return True


class PsutilProcessInspector:
    """Process inspector backed by psutil.

    psutil calls are blocking, so each one runs in a worker thread bounded by
    ``timeout_seconds``. Failures to inspect raise ProcessInspectorError;
    a port with no listener yields None.
    """

    def __init__(self, timeout_seconds: float = 10.0) -> None:
        self.timeout_seconds = timeout_seconds

    async def find_process_by_port(self, port: int) -> Optional[ProcessInfo]:
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid port number {port}")

        try:
            info = await asyncio.wait_for(asyncio.to_thread(_find_listener, port), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ProcessInspectorError(f"Timed out inspecting port {port}") from e
        except (psutil.AccessDenied, OSError) as e:
            raise ProcessInspectorError(f"Cannot inspect port {port}: {e}") from e

        if info is None:
            logger.debug(f"No process found on port {port}")
        return info

    async def kill_process(self, pid: int) -> bool:
        if pid <= 0:
            raise ValueError(f"Invalid PID {pid}")

        try:
            killed = await asyncio.wait_for(asyncio.to_thread(_kill, pid), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ProcessInspectorError(f"Timed out killing process {pid}") from e
        except (psutil.AccessDenied, OSError) as e:
            raise ProcessInspectorError(f"Cannot kill process {pid}: {e}") from e

        if killed:
            logger.info(f"Process {pid} killed successfully")
        return killed
