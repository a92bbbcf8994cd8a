"""HTTP capability used by the flow to talk to Flickr.

The flow only ever issues ``GET`` requests with everything in the query string,
so the contract is a single method returning the response body.  Transport
level failures (DNS, TLS, timeouts, refused connections) are raised as
:class:`~flickr_auth.oauth.errors.TransportError`; provider error bodies
(``oauth_problem=...`` with a 401) are returned like any other body because
the parsers reject them.

Signed URLs carry signatures and tokens, so only the path is logged.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit

import requests

from flickr_auth.oauth.errors import TransportError

_LOG = logging.getLogger("flickr-auth.oauth.transport")


@runtime_checkable
class HttpTransport(Protocol):
    """Fetch *url* with ``GET`` and return the decoded body."""

    def get(self, url: str) -> str: ...


def _redacted(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


class RequestsTransport(HttpTransport):
    """:class:`HttpTransport` backed by a :class:`requests.Session`."""

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: tuple[float, float] = (5, 20),
    ) -> None:
        self._session = session or requests.Session()
        self._owns_session = session is None
        self.timeout = timeout

    def get(self, url: str) -> str:
        _LOG.debug("GET %s", _redacted(url))
        try:
            resp = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            # requests embeds the full signed URL in its messages; keep only the path
            message = f"{type(exc).__name__} while requesting {_redacted(url)}"
            _LOG.warning("%s", message)
            raise TransportError(message) from None

        if not resp.ok:
            _LOG.info(
                "%s answered %s: %s", _redacted(url), resp.status_code, resp.text[:200]
            )
        return resp.text

    def close(self) -> None:
        """Close the underlying session if this transport created it."""
        if self._owns_session:
            self._session.close()
