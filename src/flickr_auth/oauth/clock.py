"""Clock abstraction for testable time handling in the OAuth flow.

This module defines a `Clock` protocol representing callables that return the
current UNIX timestamp as ``float``.  Every ``oauth_timestamp`` produced by the
flow MUST come from an injected ``Clock`` instance rather than calling
``time.time()`` directly, so signed requests can be reproduced in tests.

Example
-------
>>> from flickr_auth.oauth.clock import timestamp_ms
>>> timestamp_ms(lambda: 1_453_612_345.678)
'1453612345678'
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Wall-clock seconds from ``time.time()``."""
    return time.time()


def timestamp_ms(clock: Clock = default_clock) -> str:
    """Return the current UNIX time in *milliseconds* as a decimal string."""
    return str(int(round(clock() * 1000)))
