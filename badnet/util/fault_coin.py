from __future__ import annotations

import secrets

# draws are taken uniformly from range(MAX_CHOICE)
MAX_CHOICE = 100


def should_fail(ratio: int) -> bool:
    """
    Decide whether a single I/O call should be faulted. `ratio` is a percentage,
    a draw in [0, 100) fires when it is strictly below `ratio`, so exactly
    `ratio` out of every hundred outcomes fire.
    """
    if ratio <= 0:
        return False
    if ratio >= MAX_CHOICE:
        return True
    return secrets.randbelow(MAX_CHOICE) < ratio
