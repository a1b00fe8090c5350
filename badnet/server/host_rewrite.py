from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

from typing_extensions import final

from badnet.util.network import DEFAULT_TARGET_PORT, is_ip_address, parse_host_port

# A stage applied to the bytes of a successful read before they are relayed.
ReadTransform = Callable[[bytes], bytes]

_REQUEST_LINE = re.compile(rb"[A-Z]+ [^ \r\n]+ HTTP/1\.[01]\r\n")
_HEADER_NAME = re.compile(rb"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")


@final
@dataclass(frozen=True)
class HostHeaderRewriter:
    """
    Rewrites the `Host` header of HTTP/1.x requests so that a target reached by
    hostname sees its own name instead of the proxy's bind address. Chunks that
    do not start with a complete request head are returned untouched.
    """

    host_header: bytes

    @classmethod
    def for_target(cls, target_address: str) -> Optional[HostHeaderRewriter]:
        host, port = parse_host_port(target_address)
        if is_ip_address(host):
            return None
        value = host if port == DEFAULT_TARGET_PORT else f"{host}:{port}"
        try:
            return cls(host_header=value.encode("ascii"))
        except UnicodeEncodeError:
            return None

    def __call__(self, data: bytes) -> bytes:
        request_line = _REQUEST_LINE.match(data)
        if request_line is None:
            return data
        head_end = data.find(b"\r\n\r\n")
        if head_end == -1:
            return data

        start = request_line.end()
        header_lines = data[start : head_end + 2].split(b"\r\n")[:-1]

        rewritten = []
        found = False
        for line in header_lines:
            name, sep, _ = line.partition(b":")
            if sep == b"" or _HEADER_NAME.fullmatch(name) is None:
                return data
            if name.lower() == b"host":
                if found:
                    continue
                found = True
                line = b"Host: " + self.host_header
            rewritten.append(line)

        if not found:
            rewritten.insert(0, b"Host: " + self.host_header)

        return data[:start] + b"".join(line + b"\r\n" for line in rewritten) + data[head_end + 2 :]
