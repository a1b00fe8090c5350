from __future__ import annotations

from enum import Enum
from typing import Optional


class Err(Enum):
    UNKNOWN = 1

    # setup and lifecycle errors
    LISTEN_FAILED = 2
    LISTENER_CLOSED = 3
    ACCEPT_FAILED = 4

    # session errors, counted in the proxy statistics
    TARGET_DIAL_FAILED = 5
    PARTIAL_READ = 6
    PARTIAL_WRITE = 7


class BadnetError(Exception):
    def __init__(self, code: Err, error_msg: str = ""):
        super().__init__(f"Error code: {code.name} {error_msg}")
        self.code = code
        self.error_msg = error_msg


class ListenError(BadnetError):
    def __init__(self, address: str, error: Exception) -> None:
        super().__init__(Err.LISTEN_FAILED, f"listening on {address!r} failed: {error}")
        self.address = address
        self.error = error


class ListenerClosedError(BadnetError):
    def __init__(self) -> None:
        super().__init__(Err.LISTENER_CLOSED, "listener is closed")


class ProxyFailedError(BadnetError):
    def __init__(self, error: BaseException) -> None:
        super().__init__(Err.ACCEPT_FAILED, f"accept loop failed: {type(error).__name__}: {error}")
        self.error = error


##
#  Injected faults
##


class InjectedFaultError(ConnectionError):
    """
    A transfer that was deliberately cut short. Derives from ConnectionError so
    that code reading or writing through the proxy sees it the same way it would
    see a flaky network.
    """

    code: Err = Err.UNKNOWN

    def __init__(self, expected: int, transferred: int, message: Optional[str] = None) -> None:
        if message is None:
            message = f"{self.code.name}: transferred {transferred} of {expected} bytes"
        super().__init__(message)
        self.expected = expected
        self.transferred = transferred


class PartialReadError(InjectedFaultError):
    code = Err.PARTIAL_READ

    def __init__(self, partial: bytes, expected: int) -> None:
        super().__init__(expected=expected, transferred=len(partial))
        self.partial = partial


class PartialWriteError(InjectedFaultError):
    code = Err.PARTIAL_WRITE

    def __init__(self, written: int, expected: int) -> None:
        super().__init__(expected=expected, transferred=written)
        self.written = written
