from __future__ import annotations

import asyncio
import contextlib
import socket
from dataclasses import dataclass
from typing import Optional, Protocol

from badnet.server.throttle import Throttle


class Connection(Protocol):
    """The streaming contract every leg of a proxied session implements."""

    @property
    def peername(self) -> str: ...

    async def read(self, n: int) -> bytes: ...

    async def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


def set_nodelay(writer: asyncio.StreamWriter) -> None:
    sock: Optional[socket.socket] = writer.get_extra_info("socket")
    if sock is not None and sock.family in {socket.AF_INET, socket.AF_INET6}:
        # Disable Nagle's algorithm so injected latency is the only latency
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


@dataclass
class StreamConnection:
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter

    @classmethod
    async def open(cls, host: str, port: int) -> StreamConnection:
        reader, writer = await asyncio.open_connection(host, port)
        set_nodelay(writer)
        return cls(reader=reader, writer=writer)

    @property
    def peername(self) -> str:
        return str(self.writer.get_extra_info("peername"))

    async def read(self, n: int) -> bytes:
        return await self.reader.read(n)

    async def write(self, data: bytes) -> int:
        self.writer.write(data)
        await self.writer.drain()
        return len(data)

    def close(self) -> None:
        if not self.writer.is_closing():
            self.writer.close()

    async def wait_closed(self) -> None:
        # the peer may already have reset the connection
        with contextlib.suppress(OSError):
            await self.writer.wait_closed()


@dataclass
class ShapedConnection(StreamConnection):
    """A stream whose reads and writes are delayed by per-direction throttles."""

    read_throttle: Optional[Throttle] = None
    write_throttle: Optional[Throttle] = None

    async def read(self, n: int) -> bytes:
        data = await super().read(n)
        if data and self.read_throttle is not None:
            await self.read_throttle.wait(len(data))
        return data

    async def write(self, data: bytes) -> int:
        if self.write_throttle is not None:
            await self.write_throttle.wait(len(data))
        return await super().write(data)
