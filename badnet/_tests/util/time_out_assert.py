from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

log = logging.getLogger(__name__)


async def time_out_assert_custom_interval(
    timeout: float, interval: float, function: Callable[..., Any], value: object = True, *args: object, **kwargs: object
) -> None:
    __tracebackhide__ = True

    start = time.monotonic()
    while True:
        if asyncio.iscoroutinefunction(function):
            f_res = await function(*args, **kwargs)
        else:
            f_res = function(*args, **kwargs)

        if value == f_res:
            return None

        duration = time.monotonic() - start
        if duration > timeout:
            assert False, f"Timed assertion timed out after {timeout} seconds: expected {value!r}, got {f_res!r}"

        await asyncio.sleep(min(interval, timeout - duration))


async def time_out_assert(
    timeout: float, function: Callable[..., Any], value: object = True, *args: object, **kwargs: object
) -> None:
    __tracebackhide__ = True
    await time_out_assert_custom_interval(timeout, 0.05, function, value, *args, **kwargs)
