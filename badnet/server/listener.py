from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from typing_extensions import final

from badnet.server.connection import Connection, ShapedConnection, StreamConnection, set_nodelay
from badnet.server.throttle import Throttle
from badnet.types.proxy_config import Direction
from badnet.util.errors import ListenError, ListenerClosedError
from badnet.util.network import bound_address, join_host_port, resolve

log = logging.getLogger(__name__)

_Accepted = Optional[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]


@final
@dataclass
class ShapedListener:
    """
    A TCP listener with an explicit `accept()`. Every accepted connection is
    throttled according to the read and write directions; when neither direction
    is shaped the raw stream is handed out unchanged.

    Closing the listener wakes any pending `accept()` with `ListenerClosedError`.
    """

    read: Direction
    write: Direction
    host: str = ""
    port: int = 0
    _server: Optional[asyncio.Server] = None
    _pending: asyncio.Queue[_Accepted] = field(default_factory=asyncio.Queue)
    _closed: bool = False

    @classmethod
    async def create(cls, host: str, port: int, read: Direction, write: Direction) -> ShapedListener:
        self = cls(read=read, write=write)
        try:
            bind_host = await resolve(host)
            self._server = await asyncio.start_server(
                self._handle_client,
                bind_host if bind_host != "" else None,
                port,
                reuse_address=True,
            )
        except (OSError, ValueError) as e:
            # ValueError covers names that cannot be resolved or encoded
            raise ListenError(join_host_port(host, port), e) from e

        self.host, self.port = bound_address(self._server.sockets)
        log.debug(f"Listening on {self.bind_addr} (read: {read}, write: {write})")
        return self

    @property
    def bind_addr(self) -> str:
        return join_host_port(self.host, self.port)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def shaped(self) -> bool:
        return self.read.is_shaped or self.write.is_shaped

    def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if self._closed:
            writer.close()
            return
        self._pending.put_nowait((reader, writer))

    async def accept(self) -> Connection:
        if self._closed:
            raise ListenerClosedError()

        accepted = await self._pending.get()
        if accepted is None:
            # pass the wakeup on to any other waiter
            self._pending.put_nowait(None)
            raise ListenerClosedError()

        reader, writer = accepted
        set_nodelay(writer)
        if not self.shaped:
            return StreamConnection(reader=reader, writer=writer)

        return ShapedConnection(
            reader=reader,
            writer=writer,
            read_throttle=Throttle.for_direction(self.read) if self.read.is_shaped else None,
            write_throttle=Throttle.for_direction(self.write) if self.write.is_shaped else None,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._server is not None:
            self._server.close()

        # connections that were never handed out are dropped
        while not self._pending.empty():
            accepted = self._pending.get_nowait()
            if accepted is not None:
                accepted[1].close()

        self._pending.put_nowait(None)
        log.debug(f"Listener on {self.bind_addr} closed")

    async def wait_closed(self) -> None:
        if self._server is None:
            return
        await self._server.wait_closed()
