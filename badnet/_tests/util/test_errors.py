from __future__ import annotations

import pytest

from badnet.util.errors import (
    BadnetError,
    Err,
    InjectedFaultError,
    ListenError,
    ListenerClosedError,
    PartialReadError,
    PartialWriteError,
    ProxyFailedError,
)


def test_error_codes_are_unique() -> None:
    values = [err.value for err in Err]
    assert len(values) == len(set(values))


def test_badnet_error_message() -> None:
    error = BadnetError(Err.UNKNOWN, "something broke")
    assert str(error) == "Error code: UNKNOWN something broke"
    assert error.code is Err.UNKNOWN
    assert error.error_msg == "something broke"


def test_listen_error() -> None:
    cause = OSError(98, "Address already in use")
    error = ListenError("127.0.0.1:8444", cause)
    assert error.code is Err.LISTEN_FAILED
    assert error.address == "127.0.0.1:8444"
    assert error.error is cause
    assert "127.0.0.1:8444" in str(error)
    assert "Address already in use" in str(error)


def test_listener_closed_error() -> None:
    error = ListenerClosedError()
    assert isinstance(error, BadnetError)
    assert error.code is Err.LISTENER_CLOSED


def test_proxy_failed_error() -> None:
    cause = RuntimeError("boom")
    error = ProxyFailedError(cause)
    assert error.code is Err.ACCEPT_FAILED
    assert error.error is cause
    assert "RuntimeError: boom" in str(error)


class TestInjectedFaults:
    """Injected faults look like ordinary connection errors to callers."""

    def test_partial_read(self) -> None:
        error = PartialReadError(b"abc", expected=7)
        assert isinstance(error, InjectedFaultError)
        assert isinstance(error, ConnectionError)
        assert isinstance(error, OSError)
        assert error.code is Err.PARTIAL_READ
        assert error.partial == b"abc"
        assert error.transferred == 3
        assert error.expected == 7
        assert str(error) == "PARTIAL_READ: transferred 3 of 7 bytes"

    def test_partial_write(self) -> None:
        error = PartialWriteError(written=2, expected=5)
        assert isinstance(error, ConnectionError)
        assert error.code is Err.PARTIAL_WRITE
        assert error.written == 2
        assert error.transferred == 2
        assert error.expected == 5
        assert str(error) == "PARTIAL_WRITE: transferred 2 of 5 bytes"

    def test_caught_as_connection_error(self) -> None:
        with pytest.raises(ConnectionError):
            raise PartialWriteError(written=0, expected=1)

    def test_custom_message(self) -> None:
        error = InjectedFaultError(expected=4, transferred=1, message="cut short")
        assert str(error) == "cut short"
        assert error.code is Err.UNKNOWN
