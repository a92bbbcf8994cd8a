"""OAuth 1.0a core package.

This namespace hosts the **UI-agnostic** building blocks of Flickr's
three-legged authorization flow.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
nonce
    Random ``oauth_nonce`` generation.
signature
    HMAC-SHA1 signature base string & signing.
parsing
    Token response / callback query parsers.
models
    Immutable dataclasses & enums for credentials, states and results.
errors
    Exception types used by the OAuth logic.
store
    Key-value credential persistence.
transport
    HTTP capability used for the signed ``GET`` requests.
flow
    The request-token → authorize → access-token state machine.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock, timestamp_ms  # noqa: F401
from .nonce import generate_nonce  # noqa: F401
from .signature import build_signing_key, percent_encode, sign, signature_base_string  # noqa: F401
from .parsing import KeyedResponseParser, PositionalResponseParser, ResponseParser  # noqa: F401
from .models import (  # noqa: F401
    COMMUNICATION_ERROR_MESSAGE,
    AccessLevel,
    Credentials,
    ErrorKind,
    FlowFailure,
    FlowResult,
    FlowState,
    FlowSuccess,
    RequestTokenPair,
)
from .errors import MalformedResponseError, OAuthError, SignatureError, TransportError  # noqa: F401
from .store import (  # noqa: F401
    CredentialStore,
    DiskCredentialStore,
    MemoryCredentialStore,
    clear_credentials,
    load_credentials,
    save_credentials,
)
from .transport import HttpTransport, RequestsTransport  # noqa: F401
from .flow import AuthorizationPresenter, OAuthFlowController  # noqa: F401
from .log_utils import get_flow_logger, mask_sensitive  # noqa: F401

__all__ = [
    # clock / nonce
    "Clock",
    "default_clock",
    "timestamp_ms",
    "generate_nonce",
    # signature
    "build_signing_key",
    "percent_encode",
    "sign",
    "signature_base_string",
    # parsing
    "ResponseParser",
    "KeyedResponseParser",
    "PositionalResponseParser",
    # models
    "COMMUNICATION_ERROR_MESSAGE",
    "AccessLevel",
    "Credentials",
    "ErrorKind",
    "FlowFailure",
    "FlowResult",
    "FlowState",
    "FlowSuccess",
    "RequestTokenPair",
    # errors
    "OAuthError",
    "TransportError",
    "MalformedResponseError",
    "SignatureError",
    # store
    "CredentialStore",
    "MemoryCredentialStore",
    "DiskCredentialStore",
    "load_credentials",
    "save_credentials",
    "clear_credentials",
    # transport
    "HttpTransport",
    "RequestsTransport",
    # flow
    "AuthorizationPresenter",
    "OAuthFlowController",
    # logging helpers
    "get_flow_logger",
    "mask_sensitive",
]
