"""Nonce helpers for signed OAuth 1.0a requests.

Flickr only requires the ``oauth_nonce`` to be unique per timestamp; the flow
uses a fixed-length string of decimal digits drawn from :pymod:`secrets`.

This module intentionally performs **no logging** of generated nonces.
"""

from __future__ import annotations

import secrets
from typing import Callable, Final

_NONCE_LEN: Final[int] = 15
_DIGITS: Final[str] = "0123456789"

NonceFactory = Callable[[], str]


def _random_digits(length: int) -> str:
    """Return a cryptographically secure string of decimal digits."""
    return "".join(secrets.choice(_DIGITS) for _ in range(length))


def generate_nonce(length: int = _NONCE_LEN) -> str:
    """Generate a random decimal nonce.

    Parameters
    ----------
    length:
        Number of digits, between 8 and 64 (default 15).

    Returns
    -------
    str
        The generated nonce.
    """
    if not 8 <= length <= 64:
        raise ValueError("nonce length must be 8-64 digits")
    return _random_digits(length)
