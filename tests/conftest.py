"""
Pytest configuration and shared fixtures.

Provides:
- A service command table backed by small Python scripts
- Connected stream pairs for driving tasks without a listener
- Common utilities
"""

import asyncio
import logging
import socket
import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from mcremote.config import ServiceConfig  # noqa: E402


# Configure logging
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that open real sockets and processes"
    )


# Scripts standing in for the container tool
LOGS_SCRIPT = "print('line 1'); print('line 2')"
FOLLOW_SCRIPT = (
    "import sys, time\n"
    "for line in ('A', 'B'):\n"
    "    sys.stdout.write(line + '\\n'); sys.stdout.flush()\n"
    "time.sleep(60)\n"
)
FINITE_FOLLOW_SCRIPT = "import sys; sys.stdout.write('only\\n')"
START_SCRIPT = "import sys; print('to stdout'); sys.stderr.write('starting {service}\\n')"
SLOW_START_SCRIPT = "import sys, time; time.sleep(1.0); sys.stderr.write('started\\n')"
STOP_SCRIPT = "import sys; sys.stderr.write('stopped\\n')"
RESTART_SCRIPT = "import sys; sys.stderr.write('restarted\\n')"


def make_service(**overrides) -> ServiceConfig:
    """ServiceConfig that runs the Python interpreter instead of docker."""
    params = dict(
        program=sys.executable,
        service_name='test-svc',
        logs_args=['-c', LOGS_SCRIPT],
        follow_args=['-u', '-c', FOLLOW_SCRIPT],
        start_args=['-c', START_SCRIPT],
        stop_args=['-c', STOP_SCRIPT],
        restart_args=['-c', RESTART_SCRIPT],
    )
    params.update(overrides)
    return ServiceConfig(**params)


@pytest.fixture
def service():
    return make_service()


@pytest_asyncio.fixture
async def stream_pair():
    """Two connected (reader, writer) pairs: server side first, client side second."""
    server_sock, client_sock = socket.socketpair()
    server_reader, server_writer = await asyncio.open_connection(sock=server_sock)
    client_reader, client_writer = await asyncio.open_connection(sock=client_sock)

    yield (server_reader, server_writer), (client_reader, client_writer)

    for writer in (server_writer, client_writer):
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
