"""Tracked port watching with an explicit pub/sub channel for port events."""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .inspector import ProcessInspector, ProcessInspectorError
from .models import PortStatus, ProcessInfo
from .storage import Registry

logger = logging.getLogger(__name__)

RECENT_EVENT_LIMIT = 100


class PortEventType(str, Enum):
    PROCESS_DETECTED = "process-detected"
    PROCESS_GONE = "process-gone"


class PortEvent(BaseModel):
    """A process appearing on or leaving a tracked port."""

    type: PortEventType
    port: int
    service_id: int
    process: ProcessInfo
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PortEventChannel:
    """Simple pub/sub channel; each subscriber gets its own queue of PortEvent."""

    def __init__(self, maxsize: int = 100) -> None:
        self._subscribers: set[asyncio.Queue] = set()
        self._maxsize = maxsize
        self.recent: deque[PortEvent] = deque(maxlen=RECENT_EVENT_LIMIT)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: PortEvent) -> None:
        self.recent.appendleft(event)
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Drop the oldest event for slow subscribers
                queue.get_nowait()
                queue.put_nowait(event)


class PortWatcher:
    """Keeps tracked port state in sync with what the inspector observes."""

    def __init__(
        self,
        registry: Registry,
        inspector: ProcessInspector,
        channel: Optional[PortEventChannel] = None,
    ) -> None:
        self.registry = registry
        self.inspector = inspector
        self.channel = channel or PortEventChannel()
        self._known: dict[int, ProcessInfo] = {}

    async def sweep(self) -> int:
        """Inspect every tracked port once.

        Returns:
            Number of ports whose state was refreshed
        """
        refreshed = 0
        for tracked in self.registry.list_ports():
            try:
                info = await self.inspector.find_process_by_port(tracked.port)
            except (ProcessInspectorError, ValueError) as e:
                logger.warning(f"Port inspection failed - port: {tracked.port}, error: {e}")
                continue

            now = datetime.now(timezone.utc)
            status = PortStatus.IN_USE if info is not None else PortStatus.AVAILABLE
            self.registry.update_port(tracked.id, status=status, last_checked=now)
            refreshed += 1

            previous = self._known.get(tracked.port)
            if info is not None and (previous is None or previous.pid != info.pid):
                if previous is not None:
                    self._publish(PortEventType.PROCESS_GONE, tracked.port, tracked.service_id, previous)
                self._known[tracked.port] = info
                self._publish(PortEventType.PROCESS_DETECTED, tracked.port, tracked.service_id, info)
            elif info is None and previous is not None:
                del self._known[tracked.port]
                self._publish(PortEventType.PROCESS_GONE, tracked.port, tracked.service_id, previous)

        return refreshed

    def _publish(self, event_type: PortEventType, port: int, service_id: int, process: ProcessInfo) -> None:
        logger.info(f"Port event - type: {event_type.value}, port: {port}, pid: {process.pid}")
        self.channel.publish(PortEvent(type=event_type, port=port, service_id=service_id, process=process))
