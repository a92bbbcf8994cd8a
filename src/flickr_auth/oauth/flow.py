"""OAuthFlowController – Flickr's three-legged OAuth 1.0a exchange.

One authorization attempt walks through::

    IDLE -> AWAITING_REQUEST_TOKEN -> AWAITING_USER_AUTHORIZATION
         -> AWAITING_ACCESS_TOKEN -> COMPLETE | FAILED

1. :meth:`OAuthFlowController.start` fetches a request token (signed with
   ``consumer_secret&``) and hands the authorize URL to the presenter.
2. The presenter shows Flickr's authorize page.  When the application later
   receives the redirect it calls :meth:`~OAuthFlowController.callback_received`.
3. The verifier from the callback is exchanged for the access token (signed
   with ``consumer_secret&request_secret``), which is persisted and delivered.

Each attempt returns a :class:`concurrent.futures.Future` that is resolved
exactly once with a :data:`~flickr_auth.oauth.models.FlowResult`.  Network
steps run on the injected executor (inline when none is given); the controller
continues on whatever thread finished the request.

Credential verification (``flickr.test.login``) is independent of the state
machine and reports a plain ``bool``.

SECURITY NOTE
-------------
Consumer/token secrets, verifiers and signatures are never logged; tokens are
masked with :func:`~flickr_auth.oauth.log_utils.mask_sensitive`.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable
from urllib.parse import urlencode, urlsplit

from flickr_auth.config import TEST_LOGIN_METHOD, FlickrConfig
from flickr_auth.oauth.clock import Clock, default_clock, timestamp_ms
from flickr_auth.oauth.errors import MalformedResponseError, TransportError
from flickr_auth.oauth.log_utils import get_flow_logger, mask_sensitive
from flickr_auth.oauth.models import (
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
from flickr_auth.oauth.nonce import NonceFactory, generate_nonce
from flickr_auth.oauth.parsing import ResponseParser, default_parser
from flickr_auth.oauth.signature import (
    OAUTH_VERSION,
    SIGNATURE_METHOD,
    build_signing_key,
    signed_url,
)
from flickr_auth.oauth.store import CredentialStore, load_credentials, save_credentials
from flickr_auth.oauth.transport import HttpTransport

_LOG = logging.getLogger("flickr-auth.oauth.flow")

SUPERSEDED_MESSAGE = "Authorization was superseded by a new attempt."
ABANDONED_MESSAGE = "Authorization was cancelled by the user."


@runtime_checkable
class AuthorizationPresenter(Protocol):
    """UI collaborator that shows and hides Flickr's authorize page."""

    def present(self, url: str) -> None: ...
    def dismiss(self) -> None: ...


@dataclass(eq=False)
class _Attempt:
    """Mutable bookkeeping for one authorization attempt."""

    redirect_url: str
    redirect_scheme: str
    access_level: AccessLevel
    flow_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    future: "Future[FlowResult]" = field(default_factory=Future)
    request_token: RequestTokenPair | None = None
    authorization_url: str | None = None
    resolved: bool = False


class OAuthFlowController:
    """Drives the request-token → authorize → access-token exchange."""

    def __init__(
        self,
        config: FlickrConfig,
        transport: HttpTransport,
        presenter: AuthorizationPresenter,
        *,
        store: CredentialStore | None = None,
        parser: ResponseParser | None = None,
        clock: Clock = default_clock,
        nonce_factory: NonceFactory = generate_nonce,
        executor: Executor | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._presenter = presenter
        self._store = store
        self._parser = parser or default_parser
        self._clock = clock
        self._nonce_factory = nonce_factory
        self._executor = executor

        self._lock = threading.Lock()
        self._state = FlowState.IDLE
        self._attempt: _Attempt | None = None

    # ------------------------------------------------------------------ #
    # Introspection                                                      #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def authorization_url(self) -> str | None:
        """URL handed to the presenter for the current attempt, if any."""
        attempt = self._attempt
        return attempt.authorization_url if attempt else None

    @property
    def request_token(self) -> RequestTokenPair | None:
        attempt = self._attempt
        return attempt.request_token if attempt else None

    # ------------------------------------------------------------------ #
    # Authorization flow                                                 #
    # ------------------------------------------------------------------ #
    def start(
        self, redirect_url: str, access_level: AccessLevel | str
    ) -> "Future[FlowResult]":
        """Begin a new attempt and return the future of its terminal result.

        A still-unresolved previous attempt is resolved with
        :attr:`ErrorKind.CANCELLED` and all request-token state is rebuilt.
        """
        redirect_scheme = urlsplit(redirect_url).scheme
        if not redirect_scheme:
            raise ValueError(f"redirect URL must be absolute: {redirect_url!r}")

        attempt = _Attempt(
            redirect_url=redirect_url,
            redirect_scheme=redirect_scheme,
            access_level=AccessLevel.parse(access_level),
        )
        with self._lock:
            previous = self._attempt
            self._attempt = attempt
            self._state = FlowState.AWAITING_REQUEST_TOKEN

        if previous is not None and not previous.resolved:
            _LOG.warning(
                "Starting flow=%s while flow=%s is still pending",
                attempt.flow_id[:8],
                previous.flow_id[:8],
            )
            self._finish(previous, FlowFailure(ErrorKind.CANCELLED, SUPERSEDED_MESSAGE))

        _LOG.info(
            "Starting OAuth flow=%s perms=%s",
            attempt.flow_id[:8],
            attempt.access_level.value,
        )
        self._dispatch(attempt, self._fetch_request_token)
        return attempt.future

    def callback_received(self, url: str) -> bool:
        """Feed the redirect URL the application received.

        Returns
        -------
        bool
            ``False`` if the URL is not the authorization callback (scheme
            differs from the redirect URL's) or no attempt is waiting for it;
            ``True`` once the callback has been consumed.
        """
        parts = urlsplit(url)
        with self._lock:
            attempt = self._attempt
            if attempt is None or self._state is not FlowState.AWAITING_USER_AUTHORIZATION:
                _LOG.debug("Ignoring callback: no attempt awaits authorization")
                return False
            if parts.scheme != attempt.redirect_scheme:
                _LOG.debug(
                    "Ignoring URL with scheme=%s (expected %s)",
                    parts.scheme,
                    attempt.redirect_scheme,
                )
                return False
            self._state = FlowState.AWAITING_ACCESS_TOKEN

        log = get_flow_logger(flow_id=attempt.flow_id, step="callback")
        try:
            self._presenter.dismiss()
        except Exception:  # UI failures must not strand the exchange
            log.warning("Presenter failed to dismiss the authorize page", exc_info=True)

        log.info("Authorization callback received")
        self._dispatch(attempt, self._fetch_access_token, parts.query)
        return True

    def abandon(self) -> bool:
        """Fail the attempt waiting for user authorization (surface closed).

        Returns *False* when no attempt is waiting for the user.
        """
        with self._lock:
            attempt = self._attempt
            if attempt is None or self._state is not FlowState.AWAITING_USER_AUTHORIZATION:
                return False
        _LOG.info("Flow=%s abandoned by the user", attempt.flow_id[:8])
        self._finish(attempt, FlowFailure(ErrorKind.CANCELLED, ABANDONED_MESSAGE))
        return True

    # ------------------------------------------------------------------ #
    # Credential verification                                            #
    # ------------------------------------------------------------------ #
    def verify_credentials(
        self,
        access_token: str | None,
        access_secret: str | None,
        user_id: str | None,
    ) -> "Future[bool]":
        """Check stored credentials against ``flickr.test.login``.

        Resolves to ``False`` without any request when a field is missing.
        """
        if not (access_token and access_secret and user_id):
            _LOG.debug("Skipping verification: stored credentials incomplete")
            done: Future[bool] = Future()
            done.set_result(False)
            return done

        if self._executor is not None:
            return self._executor.submit(self._verify, access_token, access_secret)

        future: Future[bool] = Future()
        future.set_result(self._verify(access_token, access_secret))
        return future

    def verify_stored_credentials(self) -> "Future[bool]":
        """Verify whatever credentials the store currently holds."""
        creds = load_credentials(self._store) if self._store is not None else None
        if creds is None:
            return self.verify_credentials(None, None, None)
        return self.verify_credentials(creds.access_token, creds.access_secret, creds.user_id)

    # ------------------------------------------------------------------ #
    # Parameter building                                                 #
    # ------------------------------------------------------------------ #
    def _base_params(self) -> dict[str, str]:
        return {
            "oauth_nonce": self._nonce_factory(),
            "oauth_timestamp": timestamp_ms(self._clock),
            "oauth_consumer_key": self.config.consumer_key,
            "oauth_signature_method": SIGNATURE_METHOD,
            "oauth_version": OAUTH_VERSION,
        }

    def request_token_params(self, redirect_url: str) -> dict[str, str]:
        params = self._base_params()
        params["oauth_callback"] = redirect_url
        return params

    def access_token_params(self, verifier: str, request_token: str) -> dict[str, str]:
        params = self._base_params()
        params["oauth_verifier"] = verifier
        params["oauth_token"] = request_token
        return params

    def verify_params(self, access_token: str) -> dict[str, str]:
        params = self._base_params()
        params["nojsoncallback"] = "1"
        params["format"] = "json"
        params["method"] = TEST_LOGIN_METHOD
        params["oauth_token"] = access_token
        return params

    def build_authorization_url(self, request_token: str, access_level: AccessLevel) -> str:
        query = urlencode({"oauth_token": request_token, "perms": access_level.value})
        return f"{self.config.authorize_url}?{query}"

    # ------------------------------------------------------------------ #
    # Steps                                                              #
    # ------------------------------------------------------------------ #
    def _dispatch(self, attempt: _Attempt, step: Callable[..., None], *args: Any) -> None:
        if self._executor is None:
            self._run_step(attempt, step, *args)
        else:
            self._executor.submit(self._run_step, attempt, step, *args)

    def _run_step(self, attempt: _Attempt, step: Callable[..., None], *args: Any) -> None:
        try:
            step(attempt, *args)
        except Exception as exc:  # broad: delivered through the attempt's future
            _LOG.exception("Flow=%s crashed in %s", attempt.flow_id[:8], step.__name__)
            with self._lock:
                if attempt.resolved:
                    return
                attempt.resolved = True
                attempt.request_token = None
                if self._attempt is attempt:
                    self._state = FlowState.FAILED
            attempt.future.set_exception(exc)

    def _fetch_request_token(self, attempt: _Attempt) -> None:
        log = get_flow_logger(flow_id=attempt.flow_id, step="request_token")
        params = self.request_token_params(attempt.redirect_url)
        url = signed_url(
            self.config.request_token_url,
            params,
            build_signing_key(self.config.consumer_secret),
        )
        try:
            pair = self._parser.parse_request_token(self._transport.get(url))
        except TransportError as exc:
            log.warning("Request token call failed: %s", exc)
            self._finish(attempt, self._transport_failure(exc))
            return
        except MalformedResponseError as exc:
            log.warning("Unexpected request token response: %s", exc)
            self._finish(
                attempt, FlowFailure(ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE)
            )
            return

        with self._lock:
            if attempt.resolved or self._attempt is not attempt:
                log.debug("Discarding request token for stale attempt")
                return
            attempt.request_token = pair
            attempt.authorization_url = self.build_authorization_url(
                pair.token, attempt.access_level
            )
            self._state = FlowState.AWAITING_USER_AUTHORIZATION

        log.info("Obtained request token=%s", mask_sensitive(pair.token))
        self._presenter.present(attempt.authorization_url)

    def _fetch_access_token(self, attempt: _Attempt, callback_query: str) -> None:
        log = get_flow_logger(flow_id=attempt.flow_id, step="access_token")
        try:
            verifier = self._parser.parse_verifier(callback_query)
        except MalformedResponseError as exc:
            log.warning("Malformed authorization callback: %s", exc)
            self._finish(
                attempt, FlowFailure(ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE)
            )
            return

        pair = attempt.request_token
        if pair is None:
            log.debug("Attempt resolved before access token exchange")
            return
        params = self.access_token_params(verifier, pair.token)
        url = signed_url(
            self.config.access_token_url,
            params,
            build_signing_key(self.config.consumer_secret, pair.secret),
        )
        try:
            creds = self._parser.parse_access_token(self._transport.get(url))
        except TransportError as exc:
            log.warning("Access token call failed: %s", exc)
            self._finish(attempt, self._transport_failure(exc))
            return
        except MalformedResponseError as exc:
            log.warning("Unexpected access token response: %s", exc)
            self._finish(
                attempt, FlowFailure(ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE)
            )
            return

        if not self._finish(attempt, FlowSuccess(creds), persist=True):
            log.debug("Discarding access token for stale attempt")
            return
        log.info(
            "Authorization complete for user_id=%s token=%s",
            creds.user_id,
            mask_sensitive(creds.access_token),
        )

    def _verify(self, access_token: str, access_secret: str) -> bool:
        params = self.verify_params(access_token)
        url = signed_url(
            self.config.rest_url,
            params,
            build_signing_key(self.config.consumer_secret, access_secret),
        )
        try:
            result = json.loads(self._transport.get(url))
        except TransportError as exc:
            _LOG.info("Credential verification failed: %s", exc)
            return False
        except ValueError:
            _LOG.info("Credential verification returned a non-JSON body")
            return False

        ok = isinstance(result, dict) and result.get("stat") == "ok"
        _LOG.info(
            "Verified token=%s valid=%s", mask_sensitive(access_token), ok
        )
        return ok

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #
    @staticmethod
    def _transport_failure(exc: TransportError) -> FlowFailure:
        return FlowFailure(ErrorKind.TRANSPORT, str(exc) or COMMUNICATION_ERROR_MESSAGE)

    def _persist(self, creds: Credentials) -> None:
        if self._store is None:
            return
        try:
            save_credentials(self._store, creds)
        except Exception:  # persistence failures are non-fatal
            _LOG.warning("Could not persist credentials", exc_info=True)

    def _finish(
        self, attempt: _Attempt, result: FlowResult, *, persist: bool = False
    ) -> bool:
        """Resolve *attempt* once; later results for it are dropped.

        With *persist*, the credentials of a successful *result* are stored in
        the same critical section, and only while *attempt* is still current, so
        a superseded attempt never writes to the store.
        """
        with self._lock:
            if attempt.resolved:
                return False
            if persist:
                if self._attempt is not attempt:
                    return False
                self._persist(result.credentials)  # type: ignore[union-attr]
            attempt.resolved = True
            attempt.request_token = None
            if self._attempt is attempt:
                self._state = FlowState.COMPLETE if result.ok else FlowState.FAILED
        attempt.future.set_result(result)
        return True
