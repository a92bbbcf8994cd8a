"""HMAC-SHA1 request signing for OAuth 1.0a (RFC 5849 §3.4).

Every call the flow makes to Flickr is a ``GET`` whose query string carries the
``oauth_*`` parameters and a trailing ``oauth_signature``.  The signature is
computed over the *signature base string*::

    GET&<encoded url>&<encoded parameter string>

where the parameter string is ``key=value`` pairs sorted by key and joined by
``&``.  Because the parameter string is itself encoded as a single value, its
``&`` and ``=`` separators end up as ``%26`` and ``%3D``.

The functions below are pure: they never read the clock or generate nonces.
Callers pass those in as ordinary parameters.
"""

from __future__ import annotations

import base64
import hmac
from hashlib import sha1
from typing import Final, Mapping
from urllib.parse import quote, urlsplit

from flickr_auth.oauth.errors import SignatureError

HTTP_METHOD: Final[str] = "GET"
SIGNATURE_METHOD: Final[str] = "HMAC-SHA1"
OAUTH_VERSION: Final[str] = "1.0"

# RFC 3986 unreserved characters; everything else is percent-encoded.
_UNRESERVED: Final[str] = "-._~"


def percent_encode(value: str) -> str:
    """Percent-encode *value* as required by RFC 5849 §3.6."""
    return quote(str(value), safe=_UNRESERVED)


def build_signing_key(consumer_secret: str, token_secret: str = "") -> str:
    """Return ``consumer_secret&token_secret`` (token secret may be empty)."""
    return f"{consumer_secret}&{token_secret}"


def _check_url(url: str) -> None:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise SignatureError(f"cannot sign request for malformed URL {url!r}")
    if parts.query or parts.fragment:
        raise SignatureError("base URL must not carry a query string or fragment")


def parameter_string(params: Mapping[str, str]) -> str:
    """Return the sorted, ``&``-joined ``key=value`` parameter string."""
    pairs = sorted((percent_encode(k), percent_encode(v)) for k, v in params.items())
    return "&".join(f"{k}={v}" for k, v in pairs)


def signature_base_string(url: str, params: Mapping[str, str]) -> str:
    """Build the signature base string for a ``GET`` to *url*."""
    _check_url(url)
    return "&".join(
        (
            HTTP_METHOD,
            percent_encode(url),
            percent_encode(parameter_string(params)),
        )
    )


def sign(url: str, params: Mapping[str, str], signing_key: str) -> str:
    """Compute the base64 HMAC-SHA1 ``oauth_signature`` for a ``GET`` request.

    Parameters
    ----------
    url:
        Absolute endpoint URL without query string.
    params:
        All request parameters except ``oauth_signature``.  Order is irrelevant.
    signing_key:
        ``consumer_secret&token_secret`` as returned by :pyfunc:`build_signing_key`.

    Raises
    ------
    SignatureError
        If *url* is not an absolute http(s) URL or *signing_key* is empty.
    """
    if not signing_key or signing_key == "&":
        raise SignatureError("signing key must not be empty")
    base_string = signature_base_string(url, params)
    digest = hmac.new(
        signing_key.encode("utf-8"), base_string.encode("utf-8"), sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def signed_url(url: str, params: Mapping[str, str], key: str) -> str:
    """Return *url* with *params* and the freshly computed signature appended."""
    signature = sign(url, params, key)
    query = "&".join(
        f"{percent_encode(k)}={percent_encode(v)}" for k, v in params.items()
    )
    return f"{url}?{query}&oauth_signature={percent_encode(signature)}"
