from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import socket
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest

from badnet.util.badnet_logging import initialize_logging


def pytest_configure(config: pytest.Config) -> None:
    # BADNET_TEST_LOG_LEVEL=DEBUG streams the proxy's own logs while the tests run
    log_level = os.environ.get("BADNET_TEST_LOG_LEVEL")
    if log_level is not None:
        initialize_logging("badnet_tests", {"log_stdout": True, "log_level": log_level}, Path(config.rootpath))


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


# if you have a system that has an unusual hostname for localhost and you want
# to run the tests, change the `self_hostname` fixture
@pytest.fixture(scope="session")
def self_hostname() -> str:
    return "127.0.0.1"


@pytest.fixture(name="unused_port")
def unused_port_fixture(self_hostname: str) -> int:
    """A port that nothing listens on once the fixture returns."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((self_hostname, 0))
        port: int = sock.getsockname()[1]
    return port


async def handle_echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        while True:
            data = await reader.read(65536)
            if not data:
                break
            writer.write(data)
            await writer.drain()
    except (ConnectionResetError, BrokenPipeError, OSError):
        pass
    finally:
        # Do not await writer.wait_closed() - can raise in selector callback when peer resets
        writer.close()


@pytest.fixture(name="echo_server")
async def echo_server_fixture(self_hostname: str) -> AsyncIterator[asyncio.Server]:
    server = await asyncio.start_server(handle_echo, self_hostname, 0)
    try:
        yield server
    finally:
        server.close()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(server.wait_closed(), timeout=5)


@pytest.fixture(name="echo_address")
def echo_address_fixture(echo_server: asyncio.Server, self_hostname: str) -> str:
    port = echo_server.sockets[0].getsockname()[1]
    return f"{self_hostname}:{port}"


@pytest.fixture(name="restore_root_logger")
def restore_root_logger_fixture() -> Iterator[logging.Logger]:
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    try:
        yield root_logger
    finally:
        for handler in list(root_logger.handlers):
            if handler not in handlers:
                root_logger.removeHandler(handler)
                handler.close()
        root_logger.setLevel(level)
