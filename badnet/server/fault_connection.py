from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from badnet.server.connection import Connection
from badnet.server.host_rewrite import ReadTransform
from badnet.util.errors import PartialReadError, PartialWriteError
from badnet.util.fault_coin import should_fail

log = logging.getLogger(__name__)


@dataclass
class FaultInjectingConnection:
    """
    Wraps a connection and cuts a fraction of reads and writes short. A faulted
    call transfers only the first half of the requested size and then raises a
    `PartialReadError` or `PartialWriteError`, also when the half transfer
    itself fails. Nothing is remembered between calls, every read and write
    rolls again.
    """

    inner: Connection
    read_failure_ratio: int = 0
    write_failure_ratio: int = 0
    read_transform: Optional[ReadTransform] = None

    @property
    def peername(self) -> str:
        return self.inner.peername

    async def read(self, n: int) -> bytes:
        if should_fail(self.read_failure_ratio):
            partial = n // 2
            try:
                data = await self.inner.read(partial) if partial > 0 else b""
            except OSError as e:
                # still one injected fault, the transport error stays on __cause__
                raise PartialReadError(partial=b"", expected=n) from e
            log.debug(f"Injected partial read from {self.peername}: {len(data)} of {n} bytes")
            raise PartialReadError(partial=data, expected=n)

        data = await self.inner.read(n)
        if data and self.read_transform is not None:
            return self._transform(data)
        return data

    def _transform(self, data: bytes) -> bytes:
        assert self.read_transform is not None
        try:
            return self.read_transform(data)
        except Exception as e:
            log.debug(f"Read transform failed for {self.peername}, passing data through: {type(e).__name__}: {e}")
            return data

    async def write(self, data: bytes) -> int:
        if should_fail(self.write_failure_ratio):
            partial = len(data) // 2
            if partial > 0:
                try:
                    await self.inner.write(data[:partial])
                except OSError as e:
                    raise PartialWriteError(written=0, expected=len(data)) from e
            log.debug(f"Injected partial write to {self.peername}: {partial} of {len(data)} bytes")
            raise PartialWriteError(written=partial, expected=len(data))

        return await self.inner.write(data)

    def close(self) -> None:
        self.inner.close()

    async def wait_closed(self) -> None:
        await self.inner.wait_closed()
