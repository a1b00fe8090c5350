from __future__ import annotations

import asyncio
import socket
from ipaddress import ip_address
from typing import Any, Optional
from urllib.parse import urlsplit

DEFAULT_TARGET_PORT = 80


def is_ip_address(host: str) -> bool:
    try:
        ip_address(host)
        return True
    except ValueError:
        return False


def _parse_port(port: str, address: str) -> int:
    if not (port.isascii() and port.isdigit()):
        raise ValueError(f"Invalid port {port!r} in {address!r}")
    value = int(port)
    if value > 65535:
        raise ValueError(f"Port out of range in {address!r}")
    return value


def split_host_port(address: str) -> tuple[str, Optional[int]]:
    """
    Split `host`, `host:port`, `[v6]`, `[v6]:port` or a bare IPv6 address into
    its host and optional port.
    """
    if address.startswith("["):
        end = address.find("]")
        if end == -1:
            raise ValueError(f"Missing ']' in address {address!r}")
        host = address[1:end]
        rest = address[end + 1 :]
        if rest == "":
            return host, None
        if not rest.startswith(":"):
            raise ValueError(f"Unexpected characters after ']' in {address!r}")
        return host, _parse_port(rest[1:], address)

    if address.count(":") > 1:
        # unbracketed IPv6 cannot carry a port
        if not is_ip_address(address):
            raise ValueError(f"Invalid address {address!r}")
        return address, None

    host, sep, port = address.partition(":")
    if sep == "":
        return host, None
    return host, _parse_port(port, address)


def parse_host_port(address: str) -> tuple[str, int]:
    host, port = split_host_port(address)
    if port is None:
        raise ValueError(f"Missing port in address {address!r}")
    return host, port


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def normalize_target_address(target: str, default_port: int = DEFAULT_TARGET_PORT) -> str:
    """
    Turn a bare host, `host:port` or `scheme://host[:port]/...` into a canonical
    `host:port`. Normalizing an already normalized address returns it unchanged.
    """
    target = target.strip()
    if target == "":
        raise ValueError("Empty target address")

    if "://" in target:
        parsed = urlsplit(target)
        if parsed.hostname is None:
            raise ValueError(f"No host in target address {target!r}")
        host = parsed.hostname
        # raises ValueError for out of range ports
        port: Optional[int] = parsed.port
    else:
        host, port = split_host_port(target.split("/", 1)[0])

    if host == "":
        raise ValueError(f"No host in target address {target!r}")

    return join_host_port(host, default_port if port is None else port)


def bound_address(sockets: Any) -> tuple[str, int]:
    """Host and port of the first listening socket, picking IPv4 over IPv6 when both are bound."""
    names = [sock.getsockname() for sock in sockets]
    if len(names) == 0:
        raise RuntimeError("Server started but no sockets available")
    for sock, name in zip(sockets, names):
        if sock.family == socket.AF_INET:
            return name[0], name[1]
    return names[0][0], names[0][1]


async def resolve(host: str) -> str:
    """
    Pick one address for `host`, IPv4 first. Binding a hostname that resolves to
    several addresses would put each of them on its own ephemeral port.
    IP literals and the empty wildcard host are returned unchanged.
    """
    if host == "" or is_ip_address(host):
        return host
    addrset = await asyncio.get_event_loop().getaddrinfo(host, None, type=socket.SOCK_STREAM)
    # getaddrinfo raises instead of returning an empty list
    ips_v4 = [ip_port[0] for family, _, _, _, ip_port in addrset if family == socket.AF_INET]
    ips_v6 = [ip_port[0] for family, _, _, _, ip_port in addrset if family == socket.AF_INET6]
    for ips in (ips_v4, ips_v6):
        if len(ips) > 0:
            return str(ips[0])
    raise ValueError(f"failed to resolve {host} into an IP address")
