import pytest

from serversync.messaging.reducer import EventReducer
from serversync.registry.manager import ServerRegistry
from serversync.tests.helpers import FakeClock, RecordingHostAdapter

MAX_ALIVE_TIME = 30.0
SCHEDULER_DELAY = 5.0


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def host_adapter():
    return RecordingHostAdapter()


@pytest.fixture
def registry(host_adapter, clock):
    return ServerRegistry(
        host_adapter,
        heartbeat_scheduler_delay=SCHEDULER_DELAY,
        max_alive_time=MAX_ALIVE_TIME,
        clock=clock,
    )


@pytest.fixture
def reducer(registry):
    return EventReducer(registry)
