"""
End-to-end tests for the mcremote server over real TCP sockets.
"""

import asyncio
import time

import pytest
import pytest_asyncio

from mcremote.config import McRemoteConfig, NetworkConfig
from mcremote.core.protocol import Command, encode_cancel, encode_command
from mcremote.server.server import McRemoteServer

from conftest import SLOW_START_SCRIPT, make_service, wait_until

pytestmark = pytest.mark.integration


def make_config(**service_overrides) -> McRemoteConfig:
    return McRemoteConfig(
        network=NetworkConfig(host="127.0.0.1", port=0),
        service=make_service(**service_overrides),
    )


@pytest_asyncio.fixture
async def server():
    """Running server on an ephemeral port."""
    srv = await McRemoteServer.bind(make_config())
    serve_task = asyncio.create_task(srv.serve())

    yield srv

    await srv.stop()
    assert serve_task.done()


async def connect(srv: McRemoteServer, payload: bytes = b""):
    host, port = srv.address
    reader, writer = await asyncio.open_connection(host, port)
    if payload:
        writer.write(payload)
        await writer.drain()
    return reader, writer


async def request(srv: McRemoteServer, command: Command) -> bytes:
    reader, writer = await connect(srv, encode_command(command))
    try:
        return await asyncio.wait_for(reader.read(), timeout=10)
    finally:
        writer.close()


class TestServerLifecycle:

    @pytest.mark.asyncio
    async def test_binds_ephemeral_port(self, server):
        host, port = server.address
        assert host == "127.0.0.1"
        assert port > 0

    @pytest.mark.asyncio
    async def test_bind_failure_raises(self, server):
        _, port = server.address
        with pytest.raises(OSError):
            await McRemoteServer.bind(McRemoteConfig(network=NetworkConfig(port=port)))

    @pytest.mark.asyncio
    async def test_stop_without_serve(self):
        srv = await McRemoteServer.bind(make_config())
        await srv.stop()
        assert srv.server is None


class TestOneShotCommands:

    @pytest.mark.asyncio
    async def test_start_reply(self, server):
        assert await request(server, Command.START) == b"starting test-svc\n"

    @pytest.mark.asyncio
    async def test_logs_once_reply(self, server):
        assert await request(server, Command.LOGS_ONCE) == b"line 1\nline 2\n"

    @pytest.mark.asyncio
    async def test_stop_and_restart(self, server):
        assert await request(server, Command.STOP) == b"stopped\n"
        assert await request(server, Command.RESTART) == b"restarted\n"

    @pytest.mark.asyncio
    async def test_finished_tasks_are_reaped(self, server):
        await request(server, Command.STOP)
        assert await wait_until(lambda: len(server.tasks) == 0)
        assert server.tasks.next_id == 1
        assert await wait_until(lambda: server.stats.deletions_requested == 1)


class TestDecodeErrors:

    @pytest.mark.asyncio
    async def test_invalid_option(self, server):
        reader, writer = await connect(server, b"\x09")
        reply = await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()

        assert reply == b"invalid option: 9"
        assert server.tasks.next_id == 0
        assert len(server.tasks) == 0
        assert server.stats.decode_errors == 1

    @pytest.mark.asyncio
    async def test_cancel_byte_first_is_invalid(self, server):
        reader, writer = await connect(server, encode_cancel())
        reply = await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()
        assert reply == b"invalid option: 255"

    @pytest.mark.asyncio
    async def test_empty_connection(self, server):
        reader, writer = await connect(server)
        writer.write_eof()
        reply = await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()

        assert reply == b"empty message"
        assert server.tasks.next_id == 0

    @pytest.mark.asyncio
    async def test_server_keeps_serving_after_error(self, server):
        reader, writer = await connect(server, b"\x7f")
        await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()

        assert await request(server, Command.STOP) == b"stopped\n"


class TestFollow:

    @pytest.mark.asyncio
    async def test_follow_then_cancel(self, server):
        reader, writer = await connect(server, encode_command(Command.LOGS_FOLLOW))
        assert await asyncio.wait_for(reader.readline(), timeout=10) == b"A\n"
        assert await asyncio.wait_for(reader.readline(), timeout=10) == b"B\n"

        assert await wait_until(lambda: 0 in server.tasks)
        process = await server.tasks.get(0).maybe_proc.receive()
        assert process is not None
        assert process.returncode is None

        writer.write(encode_cancel())
        await writer.drain()

        assert await asyncio.wait_for(reader.read(), timeout=5) == b""
        writer.close()

        assert await wait_until(lambda: len(server.tasks) == 0)
        await asyncio.wait_for(server.tasks.wait_teardowns(), timeout=10)
        assert process.returncode is not None

    @pytest.mark.asyncio
    async def test_client_disconnect_kills_child(self, server):
        reader, writer = await connect(server, encode_command(Command.LOGS_FOLLOW))
        assert await asyncio.wait_for(reader.readline(), timeout=10) == b"A\n"
        assert await wait_until(lambda: 0 in server.tasks)
        process = await server.tasks.get(0).maybe_proc.receive()

        writer.close()

        assert await wait_until(lambda: len(server.tasks) == 0)
        await asyncio.wait_for(server.tasks.wait_teardowns(), timeout=10)
        assert process.returncode is not None

    @pytest.mark.asyncio
    async def test_stop_kills_followers(self):
        srv = await McRemoteServer.bind(make_config())
        serve_task = asyncio.create_task(srv.serve())

        reader, writer = await connect(srv, encode_command(Command.LOGS_FOLLOW))
        assert await asyncio.wait_for(reader.readline(), timeout=10) == b"A\n"
        assert await wait_until(lambda: 0 in srv.tasks)
        process = await srv.tasks.get(0).maybe_proc.receive()

        await asyncio.wait_for(srv.stop(), timeout=10)
        writer.close()

        assert serve_task.done()
        assert process.returncode is not None
        assert len(srv.tasks) == 0


class TestConcurrency:

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_slow_start_does_not_block_stop(self):
        srv = await McRemoteServer.bind(make_config(start_args=['-c', SLOW_START_SCRIPT]))
        serve_task = asyncio.create_task(srv.serve())
        try:
            slow = asyncio.create_task(request(srv, Command.START))
            await asyncio.sleep(0.1)

            began = time.monotonic()
            assert await request(srv, Command.STOP) == b"stopped\n"
            elapsed = time.monotonic() - began

            assert not slow.done()
            assert elapsed < 1.0
            assert await slow == b"started\n"
        finally:
            await srv.stop()
            assert serve_task.done()

    @pytest.mark.asyncio
    async def test_silent_client_does_not_stall_dispatch(self, server):
        _, silent_writer = await connect(server)
        try:
            assert await request(server, Command.STOP) == b"stopped\n"
        finally:
            silent_writer.close()

    @pytest.mark.asyncio
    async def test_stats(self, server):
        await request(server, Command.STOP)
        reader, writer = await connect(server, b"\x09")
        await asyncio.wait_for(reader.read(), timeout=5)
        writer.close()

        assert await wait_until(lambda: server.stats.connections_total == 2)
        assert server.stats.tasks_started == 1
        assert server.stats.decode_errors == 1
