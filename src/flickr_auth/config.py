"""Consumer configuration for the Flickr OAuth client.

The consumer key/secret pair is issued by Flickr's App Garden.  It is held in
an immutable :class:`FlickrConfig` that callers construct once and pass to the
flow, so independent flows (e.g. in tests) never share hidden state.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final

_LOG = logging.getLogger("flickr-auth.config")

DEFAULT_REQUEST_TOKEN_URL: Final[str] = "https://www.flickr.com/services/oauth/request_token"
DEFAULT_AUTHORIZE_URL: Final[str] = "https://www.flickr.com/services/oauth/authorize"
DEFAULT_ACCESS_TOKEN_URL: Final[str] = "https://www.flickr.com/services/oauth/access_token"
DEFAULT_REST_URL: Final[str] = "https://api.flickr.com/services/rest"

TEST_LOGIN_METHOD: Final[str] = "flickr.test.login"


class ConfigError(ValueError):
    """Raised when the consumer configuration is incomplete."""


@dataclass(frozen=True, slots=True)
class FlickrConfig:
    """Consumer credentials and provider endpoints."""

    consumer_key: str
    consumer_secret: str
    request_token_url: str = DEFAULT_REQUEST_TOKEN_URL
    authorize_url: str = DEFAULT_AUTHORIZE_URL
    access_token_url: str = DEFAULT_ACCESS_TOKEN_URL
    rest_url: str = DEFAULT_REST_URL
    request_timeout: tuple[float, float] = (5, 20)

    def __post_init__(self) -> None:
        if not (self.consumer_key or "").strip():
            raise ConfigError("consumer_key must not be empty")
        if not (self.consumer_secret or "").strip():
            raise ConfigError("consumer_secret must not be empty")

    def __repr__(self) -> str:
        return (
            f"FlickrConfig(consumer_key={self.consumer_key[:4]}****, "
            f"consumer_secret=****, rest_url={self.rest_url!r})"
        )

    @classmethod
    def from_env(cls, prefix: str = "FLICKR_") -> "FlickrConfig | None":
        """Create a FlickrConfig from environment variables.

        Required environment variables:
            ``{prefix}CONSUMER_KEY``, ``{prefix}CONSUMER_SECRET``

        Optional environment variables:
            ``{prefix}REQUEST_TOKEN_URL``, ``{prefix}AUTHORIZE_URL``,
            ``{prefix}ACCESS_TOKEN_URL``, ``{prefix}REST_URL``

        Returns:
            FlickrConfig if key and secret are configured, None otherwise
        """
        consumer_key = os.getenv(f"{prefix}CONSUMER_KEY")
        consumer_secret = os.getenv(f"{prefix}CONSUMER_SECRET")
        if not consumer_key or not consumer_secret:
            _LOG.debug("Flickr consumer not configured: %sCONSUMER_KEY/SECRET unset", prefix)
            return None

        return cls(
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            request_token_url=os.getenv(
                f"{prefix}REQUEST_TOKEN_URL", DEFAULT_REQUEST_TOKEN_URL
            ),
            authorize_url=os.getenv(f"{prefix}AUTHORIZE_URL", DEFAULT_AUTHORIZE_URL),
            access_token_url=os.getenv(
                f"{prefix}ACCESS_TOKEN_URL", DEFAULT_ACCESS_TOKEN_URL
            ),
            rest_url=os.getenv(f"{prefix}REST_URL", DEFAULT_REST_URL),
        )
