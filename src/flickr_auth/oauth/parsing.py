"""Parsers for Flickr's ``&``/``=`` delimited token responses.

Flickr answers the request-token and access-token calls with a form-encoded
body, and the authorization redirect carries the verifier in its query string.
The expected shapes are::

    request token   oauth_callback_confirmed=true&oauth_token=..&oauth_token_secret=..
    access token    fullname=..&oauth_token=..&oauth_token_secret=..&user_nsid=..&username=..
    callback query  oauth_token=..&oauth_verifier=..

Both parsers below insist on the exact number of ``&``-separated parts; they
differ only in how fields are located.  The state machine depends on the
:class:`ResponseParser` protocol so the policy can be swapped freely.
"""

from __future__ import annotations

from typing import Final, Protocol, runtime_checkable
from urllib.parse import parse_qsl

from flickr_auth.oauth.errors import MalformedResponseError
from flickr_auth.oauth.models import Credentials, RequestTokenPair

REQUEST_TOKEN_PARTS: Final[int] = 3
ACCESS_TOKEN_PARTS: Final[int] = 5
CALLBACK_PARTS: Final[int] = 2


def _split_parts(body: str | None, expected: int, what: str) -> list[str]:
    parts = (body or "").strip().split("&")
    if len(parts) != expected:
        raise MalformedResponseError(
            f"{what} has {len(parts)} parts, expected {expected}",
            part_count=len(parts),
        )
    return parts


@runtime_checkable
class ResponseParser(Protocol):
    """Extracts flow values from raw provider bodies and callback queries."""

    def parse_request_token(self, body: str) -> RequestTokenPair: ...
    def parse_access_token(self, body: str) -> Credentials: ...
    def parse_verifier(self, query: str) -> str: ...


class KeyedResponseParser(ResponseParser):
    """Look fields up by name once the part count has been validated."""

    def _fields(self, body: str, expected: int, what: str) -> dict[str, str]:
        parts = _split_parts(body, expected, what)
        return dict(parse_qsl("&".join(parts), keep_blank_values=True))

    @staticmethod
    def _require(fields: dict[str, str], key: str, what: str) -> str:
        value = fields.get(key)
        if not value:
            raise MalformedResponseError(f"{what} is missing {key}")
        return value

    def parse_request_token(self, body: str) -> RequestTokenPair:
        what = "request token response"
        fields = self._fields(body, REQUEST_TOKEN_PARTS, what)
        return RequestTokenPair(
            token=self._require(fields, "oauth_token", what),
            secret=self._require(fields, "oauth_token_secret", what),
        )

    def parse_access_token(self, body: str) -> Credentials:
        what = "access token response"
        fields = self._fields(body, ACCESS_TOKEN_PARTS, what)
        return Credentials(
            access_token=self._require(fields, "oauth_token", what),
            access_secret=self._require(fields, "oauth_token_secret", what),
            user_id=self._require(fields, "user_nsid", what),
        )

    def parse_verifier(self, query: str) -> str:
        what = "callback query"
        fields = self._fields(query, CALLBACK_PARTS, what)
        return self._require(fields, "oauth_verifier", what)


class PositionalResponseParser(ResponseParser):
    """Legacy policy: trust Flickr's field order and strip known prefixes.

    Positions follow Flickr's alphabetical ordering of response fields, so
    the first part (``oauth_callback_confirmed`` / ``fullname`` /
    ``oauth_token``) is skipped.
    """

    def parse_request_token(self, body: str) -> RequestTokenPair:
        parts = _split_parts(body, REQUEST_TOKEN_PARTS, "request token response")
        return RequestTokenPair(
            token=parts[1].removeprefix("oauth_token="),
            secret=parts[2].removeprefix("oauth_token_secret="),
        )

    def parse_access_token(self, body: str) -> Credentials:
        parts = _split_parts(body, ACCESS_TOKEN_PARTS, "access token response")
        return Credentials(
            access_token=parts[1].removeprefix("oauth_token="),
            access_secret=parts[2].removeprefix("oauth_token_secret="),
            user_id=parts[3].removeprefix("user_nsid="),
        )

    def parse_verifier(self, query: str) -> str:
        parts = _split_parts(query, CALLBACK_PARTS, "callback query")
        return parts[1].removeprefix("oauth_verifier=")


default_parser: Final[ResponseParser] = KeyedResponseParser()
