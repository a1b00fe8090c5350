from __future__ import annotations

import asyncio
import contextlib
import logging
import traceback
import types
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Optional, Set

import anyio
from typing_extensions import final

from badnet.server.connection import Connection, StreamConnection
from badnet.server.fault_connection import FaultInjectingConnection
from badnet.server.host_rewrite import HostHeaderRewriter, ReadTransform
from badnet.server.listener import ShapedListener
from badnet.server.statistics import ProxyStatistics
from badnet.types.proxy_config import Direction, ProxyConfig
from badnet.util.errors import InjectedFaultError, ListenerClosedError, PartialReadError, ProxyFailedError
from badnet.util.network import parse_host_port

log = logging.getLogger(__name__)


@final
@dataclass
class Proxy:
    """
    Forwards every connection accepted on `config.listen` to `config.target`,
    degrading the accepted side according to the read and write directions.

    Each accepted connection becomes a session: the target is dialed and two
    relay tasks copy bytes in both directions until the first of them ends, at
    which point both legs are closed.
    """

    config: ProxyConfig
    listener: ShapedListener
    statistics: ProxyStatistics = field(default_factory=ProxyStatistics)
    shut_down_event: asyncio.Event = field(default_factory=asyncio.Event)
    accept_task: Optional[asyncio.Task[None]] = None
    sessions: Set[asyncio.Task[None]] = field(default_factory=set)
    read_transform: Optional[ReadTransform] = None
    _close_task: Optional[asyncio.Task[None]] = None

    @classmethod
    async def start(cls, config: ProxyConfig) -> Proxy:
        listener = await ShapedListener.create(
            host=config.listen_host,
            port=config.listen_port,
            read=config.read,
            write=config.write,
        )
        self = cls(config=config, listener=listener)
        if config.rewrite_host_header:
            self.read_transform = HostHeaderRewriter.for_target(config.target_address)

        self.accept_task = asyncio.create_task(self._accept_loop(), name=f"badnet accept {self.bind_addr()}")
        log.info(
            f"badnet proxy listening on {self.bind_addr()}, forwarding to {config.target_address}, "
            f"read: {config.read}, write: {config.write}"
        )
        return self

    def bind_addr(self) -> str:
        return self.listener.bind_addr

    def port(self) -> int:
        return self.listener.port

    def failure_ratio(self) -> float:
        """
        Injected faults plus failed dials to the target, divided by the number of
        connections accepted so far.
        """
        return self.statistics.failure_ratio()

    @property
    def active_sessions(self) -> int:
        return len(self.sessions)

    async def _next_connection(self) -> Optional[Connection]:
        accept = asyncio.ensure_future(self.listener.accept())
        stop = asyncio.ensure_future(self.shut_down_event.wait())
        try:
            await asyncio.wait({accept, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not accept.done():
                accept.cancel()

        if not accept.done() or accept.cancelled():
            return None
        # raises ListenerClosedError once the listener is closed
        return accept.result()

    async def _accept_loop(self) -> None:
        try:
            while not self.shut_down_event.is_set():
                try:
                    inbound = await self._next_connection()
                except ListenerClosedError:
                    break
                if inbound is None:
                    break
                if self.shut_down_event.is_set():
                    inbound.close()
                    break

                self.statistics.record_connection()
                session = asyncio.create_task(self._run_session(inbound))
                self.sessions.add(session)
                session.add_done_callback(self.sessions.discard)
        except Exception as e:
            log.error(f"badnet accept loop on {self.bind_addr()} failed: {e}\n{traceback.format_exc()}")
            self.listener.close()
            raise

        log.debug(f"badnet accept loop on {self.bind_addr()} exited")

    async def _run_session(self, inbound: Connection) -> None:
        peer = inbound.peername
        target_address = self.config.target_address
        host, port = parse_host_port(target_address)

        try:
            outbound = await StreamConnection.open(host, port)
        except (OSError, UnicodeError) as e:
            # UnicodeError comes from hostnames the resolver cannot encode
            self.statistics.record_dial_failure()
            log.warning(f"Connecting to {target_address} for {peer} failed: {type(e).__name__}: {e}")
            inbound.close()
            await inbound.wait_closed()
            return
        except asyncio.CancelledError:
            inbound.close()
            raise

        local = FaultInjectingConnection(
            inner=inbound,
            read_failure_ratio=self.config.read.failure_ratio,
            write_failure_ratio=self.config.write.failure_ratio,
            read_transform=self.read_transform,
        )
        log.debug(f"Session {peer} -> {target_address} started")

        relays = [
            asyncio.create_task(self._relay(local, outbound, f"{peer} -> {target_address}")),
            asyncio.create_task(self._relay(outbound, local, f"{target_address} -> {peer}")),
        ]
        try:
            await asyncio.wait(relays, return_when=asyncio.FIRST_COMPLETED)
        finally:
            local.close()
            outbound.close()
            for relay in relays:
                relay.cancel()
            with anyio.CancelScope(shield=True):
                await asyncio.gather(*relays, return_exceptions=True)
                await local.wait_closed()
                await outbound.wait_closed()
            log.debug(f"Session {peer} -> {target_address} ended")

    async def _relay(self, source: Connection, destination: Connection, label: str) -> None:
        while True:
            try:
                data = await source.read(self.config.chunk_size)
            except InjectedFaultError as fault:
                self.statistics.record_fault(fault)
                log.debug(f"{label}: {fault}")
                if isinstance(fault, PartialReadError) and len(fault.partial) > 0:
                    with contextlib.suppress(OSError):
                        await destination.write(fault.partial)
                return
            except OSError as e:
                log.debug(f"{label}: read failed: {type(e).__name__}: {e}")
                return

            if len(data) == 0:
                log.debug(f"{label}: end of stream")
                return

            try:
                await destination.write(data)
            except InjectedFaultError as fault:
                self.statistics.record_fault(fault)
                log.debug(f"{label}: {fault}")
                return
            except OSError as e:
                log.debug(f"{label}: write failed: {type(e).__name__}: {e}")
                return

    async def close(self) -> None:
        """
        Stop accepting, wait for the accept loop to exit, then end every open
        session. Every caller, concurrent or later, waits for the same teardown
        and sees its outcome.
        """
        if self._close_task is None:
            self.listener.close()
            self.shut_down_event.set()
            self._close_task = asyncio.create_task(self._close(), name=f"badnet close {self.bind_addr()}")
        await asyncio.shield(self._close_task)

    async def _close(self) -> None:
        # runs in its own task, callers only ever await it through asyncio.shield
        error: Optional[BaseException] = None
        if self.accept_task is not None:
            try:
                await self.accept_task
            except Exception as e:
                error = e

        sessions = list(self.sessions)
        for session in sessions:
            session.cancel()
        await asyncio.gather(*sessions, return_exceptions=True)
        await self.listener.wait_closed()

        log.info(f"badnet proxy on {self.bind_addr()} stopped: {self.statistics.snapshot()}")
        if error is not None:
            raise ProxyFailedError(error) from error

    async def __aenter__(self) -> Proxy:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[types.TracebackType],
    ) -> None:
        await self.close()


@contextlib.asynccontextmanager
async def badnet_proxy(
    target: str,
    listen: str = "127.0.0.1:0",
    read: Optional[Direction] = None,
    write: Optional[Direction] = None,
    rewrite_host_header: bool = True,
) -> AsyncIterator[Proxy]:
    """Start a proxy for the duration of the block.

    Args:
        target: Where to forward to, as `host`, `host:port` or `scheme://host[:port]`
        listen: Local `host:port` to bind, port 0 picks a free port
        read: Shaping and failure ratio for reads from accepted connections
        write: Shaping and failure ratio for writes to accepted connections
        rewrite_host_header: Rewrite the Host header of HTTP requests for hostname targets

    Example:
        async with badnet_proxy("127.0.0.1:8444", read=Direction(failure_ratio=10)) as proxy:
            reader, writer = await asyncio.open_connection("127.0.0.1", proxy.port())
    """
    config = ProxyConfig(
        target=target,
        listen=listen,
        read=read if read is not None else Direction(),
        write=write if write is not None else Direction(),
        rewrite_host_header=rewrite_host_header,
    )
    proxy = await Proxy.start(config)
    try:
        yield proxy
    finally:
        await proxy.close()
