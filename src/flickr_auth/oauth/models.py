"""Typed, immutable records used by the Flickr OAuth flow."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, Literal, Union

COMMUNICATION_ERROR_MESSAGE: Final[str] = (
    "An error occurred while communicating with server. Please try again later."
)


class AccessLevel(Enum):
    """Permission label forwarded to Flickr's authorize page.

    Levels are strictly ordered: ``DELETE`` implies ``WRITE`` implies ``READ``.
    Flickr enforces the permissions; the client only forwards the label.
    """

    READ = "read"
    WRITE = "write"
    DELETE = "delete"

    @property
    def rank(self) -> int:
        return _ACCESS_RANK[self]

    def includes(self, other: "AccessLevel") -> bool:
        """Return *True* if this level grants everything *other* grants."""
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: "str | AccessLevel") -> "AccessLevel":
        """Return the level for a label such as ``"write"`` (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown access level: {value!r}") from None


_ACCESS_RANK: dict[AccessLevel, int] = {
    AccessLevel.READ: 0,
    AccessLevel.WRITE: 1,
    AccessLevel.DELETE: 2,
}


class FlowState(Enum):
    """States of a single authorization attempt."""

    IDLE = "idle"
    AWAITING_REQUEST_TOKEN = "awaiting_request_token"
    AWAITING_USER_AUTHORIZATION = "awaiting_user_authorization"
    AWAITING_ACCESS_TOKEN = "awaiting_access_token"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.COMPLETE, FlowState.FAILED)


class ErrorKind(Enum):
    """Why an authorization attempt failed."""

    COMMUNICATION = "communication"  # malformed provider response
    TRANSPORT = "transport"  # the HTTP request itself failed
    CANCELLED = "cancelled"  # abandoned or superseded by a new attempt


@dataclass(frozen=True, slots=True)
class Credentials:
    """Long-lived access credentials for one Flickr user."""

    access_token: str
    access_secret: str
    user_id: str

    def __repr__(self) -> str:
        # Keep the secret out of logs and tracebacks.
        return (
            f"Credentials(access_token={self.access_token[:4]}****, "
            f"access_secret=****, user_id={self.user_id!r})"
        )


@dataclass(frozen=True, slots=True)
class RequestTokenPair:
    """Short-lived token pair used only to obtain user authorization."""

    token: str
    secret: str


@dataclass(frozen=True, slots=True)
class FlowSuccess:
    """Terminal result of a completed authorization."""

    credentials: Credentials
    ok: Literal[True] = True


@dataclass(frozen=True, slots=True)
class FlowFailure:
    """Terminal result of a failed authorization."""

    kind: ErrorKind
    message: str
    ok: Literal[False] = False


FlowResult = Union[FlowSuccess, FlowFailure]
