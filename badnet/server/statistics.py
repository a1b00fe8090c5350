from __future__ import annotations

import threading
from dataclasses import dataclass, field

from typing_extensions import final

from badnet.util.errors import InjectedFaultError, PartialReadError, PartialWriteError


@final
@dataclass
class AtomicCounter:
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value


@final
@dataclass(frozen=True)
class StatisticsSnapshot:
    connections: int
    read_faults: int
    write_faults: int
    dial_failures: int

    @property
    def failures(self) -> int:
        return self.read_faults + self.write_faults + self.dial_failures

    @property
    def failure_ratio(self) -> float:
        if self.connections == 0:
            return 0.0
        return self.failures / self.connections


@final
@dataclass
class ProxyStatistics:
    """
    Counters for a single proxy instance. They only ever grow, start a new proxy
    to start from zero.
    """

    connections: AtomicCounter = field(default_factory=AtomicCounter)
    read_faults: AtomicCounter = field(default_factory=AtomicCounter)
    write_faults: AtomicCounter = field(default_factory=AtomicCounter)
    dial_failures: AtomicCounter = field(default_factory=AtomicCounter)

    def record_connection(self) -> None:
        self.connections.increment()

    def record_dial_failure(self) -> None:
        self.dial_failures.increment()

    def record_fault(self, fault: InjectedFaultError) -> None:
        if isinstance(fault, PartialReadError):
            self.read_faults.increment()
        elif isinstance(fault, PartialWriteError):
            self.write_faults.increment()
        else:
            raise TypeError(f"Unknown injected fault: {type(fault).__name__}")

    def snapshot(self) -> StatisticsSnapshot:
        return StatisticsSnapshot(
            connections=self.connections.value,
            read_faults=self.read_faults.value,
            write_faults=self.write_faults.value,
            dial_failures=self.dial_failures.value,
        )

    def failure_ratio(self) -> float:
        """(read faults + write faults + dial failures) / accepted connections, 0.0 before any connection."""
        return self.snapshot().failure_ratio
