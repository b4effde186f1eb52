"""Tests for port watching and the port event channel."""

from unittest.mock import AsyncMock

import pytest

from service_sentinel.inspector import ProcessInspectorError
from service_sentinel.models import PortStatus, ProcessInfo
from service_sentinel.ports import PortEvent, PortEventChannel, PortEventType, PortWatcher


@pytest.fixture
def inspector():
    inspector = AsyncMock()
    inspector.find_process_by_port.return_value = None
    return inspector


@pytest.fixture
def channel():
    return PortEventChannel()


@pytest.fixture
def watcher(registry, inspector, channel):
    return PortWatcher(registry, inspector, channel)


def test_channel_delivers_to_subscribers(channel):
    first = channel.subscribe()
    second = channel.subscribe()
    event = PortEvent(type=PortEventType.PROCESS_DETECTED, port=3000, service_id=1, process=ProcessInfo(pid=42))

    channel.publish(event)

    assert first.get_nowait() == event
    assert second.get_nowait() == event
    assert channel.recent[0] == event


def test_channel_unsubscribe(channel):
    queue = channel.subscribe()
    channel.unsubscribe(queue)

    channel.publish(PortEvent(type=PortEventType.PROCESS_GONE, port=3000, service_id=1, process=ProcessInfo(pid=42)))

    assert queue.empty()
    assert channel.subscriber_count == 0


def test_channel_drops_oldest_for_full_queue():
    channel = PortEventChannel(maxsize=1)
    queue = channel.subscribe()
    old = PortEvent(type=PortEventType.PROCESS_DETECTED, port=3000, service_id=1, process=ProcessInfo(pid=1))
    new = PortEvent(type=PortEventType.PROCESS_DETECTED, port=3000, service_id=1, process=ProcessInfo(pid=2))

    channel.publish(old)
    channel.publish(new)

    assert queue.get_nowait() == new


@pytest.mark.asyncio
async def test_sweep_marks_port_in_use(watcher, registry, inspector, channel):
    tracked = registry.add_port(1, 3000, service="HTTP Server")
    inspector.find_process_by_port.return_value = ProcessInfo(pid=42, name="node")
    queue = channel.subscribe()

    refreshed = await watcher.sweep()

    assert refreshed == 1
    port = registry.list_ports()[0]
    assert port.id == tracked.id
    assert port.status == PortStatus.IN_USE
    assert port.last_checked is not None
    event = queue.get_nowait()
    assert event.type == PortEventType.PROCESS_DETECTED
    assert event.process.pid == 42


@pytest.mark.asyncio
async def test_sweep_publishes_process_gone(watcher, registry, inspector, channel):
    registry.add_port(1, 3000)
    inspector.find_process_by_port.return_value = ProcessInfo(pid=42)
    await watcher.sweep()

    queue = channel.subscribe()
    inspector.find_process_by_port.return_value = None
    await watcher.sweep()

    assert registry.list_ports()[0].status == PortStatus.AVAILABLE
    event = queue.get_nowait()
    assert event.type == PortEventType.PROCESS_GONE
    assert event.process.pid == 42


@pytest.mark.asyncio
async def test_sweep_without_change_publishes_nothing(watcher, registry, inspector, channel):
    registry.add_port(1, 3000)
    inspector.find_process_by_port.return_value = ProcessInfo(pid=42)
    await watcher.sweep()

    queue = channel.subscribe()
    await watcher.sweep()

    assert queue.empty()


@pytest.mark.asyncio
async def test_sweep_inspector_failure_leaves_port_untouched(watcher, registry, inspector, channel):
    registry.add_port(1, 3000)
    inspector.find_process_by_port.side_effect = ProcessInspectorError("access denied")
    queue = channel.subscribe()

    refreshed = await watcher.sweep()

    assert refreshed == 0
    assert registry.list_ports()[0].status == PortStatus.UNKNOWN
    assert queue.empty()
