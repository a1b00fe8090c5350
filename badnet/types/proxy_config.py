from __future__ import annotations

from dataclasses import dataclass, field

from badnet.util.network import normalize_target_address, parse_host_port

DEFAULT_CHUNK_SIZE = 8192


@dataclass(frozen=True)
class Direction:
    """Shaping and fault injection for one side of a proxied connection."""

    max_bytes_per_sec: int = 0  # 0 for unlimited
    latency_ms: float = 0.0  # Added to every read or write
    failure_ratio: int = 0  # Percentage of calls cut short, 0-100

    def __post_init__(self) -> None:
        if self.max_bytes_per_sec < 0:
            raise ValueError("max_bytes_per_sec must be non-negative")
        if self.latency_ms < 0:
            raise ValueError("latency_ms must be non-negative")
        if not 0 <= self.failure_ratio <= 100:
            raise ValueError("failure_ratio must be between 0 and 100")

    @property
    def is_shaped(self) -> bool:
        return self.max_bytes_per_sec > 0 or self.latency_ms > 0


@dataclass(frozen=True)
class ProxyConfig:
    target: str
    listen: str = "127.0.0.1:0"
    read: Direction = field(default_factory=Direction)
    write: Direction = field(default_factory=Direction)
    rewrite_host_header: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        # both raise ValueError for malformed addresses
        parse_host_port(self.listen)
        normalize_target_address(self.target)

    @property
    def target_address(self) -> str:
        return normalize_target_address(self.target)

    @property
    def listen_host(self) -> str:
        return parse_host_port(self.listen)[0]

    @property
    def listen_port(self) -> int:
        return parse_host_port(self.listen)[1]
