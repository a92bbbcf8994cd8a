"""Flickr OAuth 1.0a client.

Quick start::

    from flickr_auth import AccessLevel, FlickrConfig, FlickrSession

    session = FlickrSession(
        FlickrConfig(consumer_key="...", consumer_secret="..."),
        "myapp://callback",
        AccessLevel.WRITE,
        presenter=my_presenter,
    )
    future = session.start_authentication()
"""

from __future__ import annotations

from .config import ConfigError, FlickrConfig  # noqa: F401
from .oauth import (  # noqa: F401
    AccessLevel,
    Credentials,
    ErrorKind,
    FlowFailure,
    FlowResult,
    FlowState,
    FlowSuccess,
    OAuthFlowController,
)
from .session import FlickrSession  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "ConfigError",
    "FlickrConfig",
    "FlickrSession",
    "OAuthFlowController",
    "AccessLevel",
    "Credentials",
    "ErrorKind",
    "FlowFailure",
    "FlowResult",
    "FlowState",
    "FlowSuccess",
]
