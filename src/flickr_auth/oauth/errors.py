"""Exception types raised by the OAuth core.

Only lightweight, **data-carrying** exceptions live here so that session/CLI
layers can transform them into flow results or user-friendly messages.
"""

from __future__ import annotations


class OAuthError(Exception):
    """Base class for errors raised by the Flickr OAuth core."""


class TransportError(OAuthError):
    """Raised by an HTTP transport when the request itself could not complete.

    The message is surfaced verbatim to callers of the flow, so it must never
    contain secrets or signed URLs.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code: int | None = status_code


class MalformedResponseError(OAuthError):
    """Raised when a provider response or callback query cannot be parsed."""

    def __init__(self, message: str, *, part_count: int | None = None) -> None:
        super().__init__(message)
        self.part_count: int | None = part_count


class SignatureError(OAuthError, ValueError):
    """Raised for signing input that would silently produce a wrong signature."""
