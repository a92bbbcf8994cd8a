"""Unit tests for OAuthFlowController.

Coverage:
* Happy path: request token -> authorize URL -> callback -> access token
* Signing keys and parameter sets of each signed request
* COMMUNICATION / TRANSPORT failures and exactly-once resolution
* Callback routing (scheme mismatch, stray callbacks, malformed queries)
* Abandon / supersede semantics
* flickr.test.login verification
* Executor-driven (threaded) execution
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
import requests

from flickr_auth.config import FlickrConfig
from flickr_auth.oauth import store as store_module
from flickr_auth.oauth.errors import TransportError
from flickr_auth.oauth.flow import (
    ABANDONED_MESSAGE,
    SUPERSEDED_MESSAGE,
    OAuthFlowController,
)
from flickr_auth.oauth.models import (
    COMMUNICATION_ERROR_MESSAGE,
    AccessLevel,
    Credentials,
    ErrorKind,
    FlowFailure,
    FlowState,
    FlowSuccess,
    RequestTokenPair,
)
from flickr_auth.oauth.parsing import KeyedResponseParser, PositionalResponseParser
from flickr_auth.oauth.signature import sign
from flickr_auth.oauth.store import (
    DiskCredentialStore,
    MemoryCredentialStore,
    load_credentials,
    save_credentials,
)
from flickr_auth.oauth.transport import RequestsTransport
from flickr_fakes import (
    ACCESS_TOKEN_BODY,
    ACCESS_TOKEN_URL,
    AUTHORIZE_URL,
    FIXED_NOW,
    REQUEST_TOKEN_BODY,
    REQUEST_TOKEN_URL,
    REST_URL,
    FakeTransport,
    RecordingPresenter,
    fake_clock_factory,
    query_params,
)

REDIRECT = "myapp://callback"
CALLBACK = "myapp://callback?oauth_token=ABC&oauth_verifier=999"
STRAY_CALLBACK = "myapp://callback?stray=1&oauth_verifier=999"
NONCE = "123456789012345"
EXPECTED_CREDS = Credentials(access_token="TOK", access_secret="SEC", user_id="123@N00")
OLD_CREDS = Credentials(access_token="OLDTOK", access_secret="OLDSEC", user_id="OLDUSER")


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
def _build_controller(
    config: FlickrConfig,
    transport: FakeTransport,
    presenter: RecordingPresenter,
    store: MemoryCredentialStore | None = None,
    **kwargs,
) -> OAuthFlowController:
    kwargs.setdefault("clock", fake_clock_factory(FIXED_NOW))
    kwargs.setdefault("nonce_factory", lambda: NONCE)
    return OAuthFlowController(config, transport, presenter, store=store, **kwargs)


def _assert_signed(url: str, base_url: str, key: str) -> dict[str, str]:
    """Check *url*'s signature against *key* and return its other params."""
    params = query_params(url)
    signature = params.pop("oauth_signature")
    assert signature == sign(base_url, params, key)
    return params


@pytest.fixture()
def controller(config, transport, presenter, store) -> OAuthFlowController:
    return _build_controller(config, transport, presenter, store)


# --------------------------------------------------------------------------- #
# Happy path                                                                  #
# --------------------------------------------------------------------------- #
def test_full_flow_delivers_and_persists_credentials(
    controller: OAuthFlowController, transport, presenter, store
) -> None:
    assert controller.state is FlowState.IDLE

    future = controller.start(REDIRECT, AccessLevel.WRITE)

    assert controller.state is FlowState.AWAITING_USER_AUTHORIZATION
    assert controller.request_token == RequestTokenPair(token="ABC", secret="XYZ")
    expected_url = f"{AUTHORIZE_URL}?oauth_token=ABC&perms=write"
    assert controller.authorization_url == expected_url
    assert presenter.presented == [expected_url]
    assert not future.done()

    assert controller.callback_received(STRAY_CALLBACK) is True

    assert future.result(timeout=0) == FlowSuccess(EXPECTED_CREDS)
    assert controller.state is FlowState.COMPLETE
    assert presenter.dismissed == 1
    assert controller.request_token is None
    assert load_credentials(store) == EXPECTED_CREDS


def test_request_token_call_is_signed_with_consumer_secret_only(
    controller: OAuthFlowController, transport
) -> None:
    controller.start(REDIRECT, "read")

    (url,) = transport.requested(REQUEST_TOKEN_URL)
    params = _assert_signed(url, REQUEST_TOKEN_URL, "csecret&")
    assert params == {
        "oauth_nonce": NONCE,
        "oauth_timestamp": "1453612345678",
        "oauth_consumer_key": "ckey",
        "oauth_signature_method": "HMAC-SHA1",
        "oauth_version": "1.0",
        "oauth_callback": REDIRECT,
    }


def test_access_token_call_is_signed_with_request_secret(
    controller: OAuthFlowController, transport
) -> None:
    controller.start(REDIRECT, AccessLevel.READ)
    controller.callback_received(CALLBACK)

    (url,) = transport.requested(ACCESS_TOKEN_URL)
    params = _assert_signed(url, ACCESS_TOKEN_URL, "csecret&XYZ")
    assert params["oauth_verifier"] == "999"
    assert params["oauth_token"] == "ABC"
    assert "oauth_callback" not in params


def test_access_level_label_is_forwarded(controller: OAuthFlowController, presenter) -> None:
    controller.start(REDIRECT, "DELETE")
    assert presenter.presented[-1].endswith("perms=delete")


def test_positional_parser_policy(config, presenter, store) -> None:
    transport = FakeTransport(
        {
            REQUEST_TOKEN_URL: "oauth_callback_confirmed=true&oauth_token=ABC&oauth_token_secret=XYZ",
            ACCESS_TOKEN_URL: (
                "fullname=Bob&oauth_token=TOK&oauth_token_secret=SEC"
                "&user_nsid=123@N00&username=bob"
            ),
        }
    )
    ctrl = _build_controller(
        config, transport, presenter, store, parser=PositionalResponseParser()
    )
    future = ctrl.start(REDIRECT, AccessLevel.READ)
    ctrl.callback_received(CALLBACK)
    assert future.result(timeout=0) == FlowSuccess(EXPECTED_CREDS)


# --------------------------------------------------------------------------- #
# Failures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "body",
    ["oauth_problem=signature_invalid", "oauth_token=ABC&oauth_token_secret=XYZ"],
)
def test_malformed_request_token_fails_with_communication_error(
    controller: OAuthFlowController, transport, presenter, body: str
) -> None:
    transport.responses[REQUEST_TOKEN_URL] = body

    future = controller.start(REDIRECT, AccessLevel.READ)

    assert future.result(timeout=0) == FlowFailure(
        ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE
    )
    assert controller.state is FlowState.FAILED
    assert presenter.presented == []


def test_transport_failure_surfaces_message(
    controller: OAuthFlowController, transport
) -> None:
    transport.responses[REQUEST_TOKEN_URL] = TransportError("connection refused")

    result = controller.start(REDIRECT, AccessLevel.READ).result(timeout=0)

    assert result == FlowFailure(ErrorKind.TRANSPORT, "connection refused")
    assert controller.state is FlowState.FAILED


def test_transport_failure_without_message_uses_generic_text(
    controller: OAuthFlowController, transport
) -> None:
    transport.responses[REQUEST_TOKEN_URL] = TransportError("")
    result = controller.start(REDIRECT, AccessLevel.READ).result(timeout=0)
    assert result == FlowFailure(ErrorKind.TRANSPORT, COMMUNICATION_ERROR_MESSAGE)


def test_malformed_access_token_keeps_previous_credentials(
    controller: OAuthFlowController, transport, store
) -> None:
    save_credentials(store, OLD_CREDS)
    transport.responses[ACCESS_TOKEN_URL] = "oauth_token=TOK&oauth_token_secret=SEC&user_nsid=1"

    future = controller.start(REDIRECT, AccessLevel.READ)
    controller.callback_received(CALLBACK)

    assert future.result(timeout=0) == FlowFailure(
        ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE
    )
    assert controller.state is FlowState.FAILED
    assert load_credentials(store) == OLD_CREDS


def test_access_token_transport_failure(controller: OAuthFlowController, transport) -> None:
    transport.responses[ACCESS_TOKEN_URL] = TransportError("timed out")
    future = controller.start(REDIRECT, AccessLevel.READ)
    controller.callback_received(CALLBACK)
    assert future.result(timeout=0) == FlowFailure(ErrorKind.TRANSPORT, "timed out")


def test_unexpected_exception_is_delivered_through_future(
    controller: OAuthFlowController, transport
) -> None:
    transport.responses[REQUEST_TOKEN_URL] = RuntimeError("boom")

    future = controller.start(REDIRECT, AccessLevel.READ)

    assert isinstance(future.exception(timeout=0), RuntimeError)
    assert controller.state is FlowState.FAILED


def test_persistence_failure_is_silent_and_keeps_old_credentials(
    config, transport, presenter, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = DiskCredentialStore(base_dir=tmp_path)
    save_credentials(store, OLD_CREDS)

    def disk_full(path, data):
        raise OSError("disk full")

    monkeypatch.setattr(store_module, "_atomic_write", disk_full)

    ctrl = _build_controller(config, transport, presenter, store)
    future = ctrl.start(REDIRECT, AccessLevel.READ)
    ctrl.callback_received(CALLBACK)

    assert future.result(timeout=0) == FlowSuccess(EXPECTED_CREDS)
    assert ctrl.state is FlowState.COMPLETE
    assert load_credentials(store) == OLD_CREDS


def test_step_crash_during_verifier_parsing_resolves_future(
    config, transport, presenter, store
) -> None:
    class ExplodingParser(KeyedResponseParser):
        def parse_verifier(self, query: str) -> str:
            raise RuntimeError("parser bug")

    ctrl = _build_controller(config, transport, presenter, store, parser=ExplodingParser())
    future = ctrl.start(REDIRECT, AccessLevel.READ)

    assert ctrl.callback_received(CALLBACK) is True

    assert isinstance(future.exception(timeout=0), RuntimeError)
    assert ctrl.state is FlowState.FAILED
    assert transport.requested(ACCESS_TOKEN_URL) == []


def test_presenter_dismiss_failure_does_not_strand_attempt(
    config, transport, store
) -> None:
    class FlakyPresenter(RecordingPresenter):
        def dismiss(self) -> None:
            raise RuntimeError("window already gone")

    ctrl = _build_controller(config, transport, FlakyPresenter(), store)
    future = ctrl.start(REDIRECT, AccessLevel.READ)

    assert ctrl.callback_received(CALLBACK) is True

    assert future.result(timeout=0) == FlowSuccess(EXPECTED_CREDS)
    assert ctrl.state is FlowState.COMPLETE


def test_signed_query_never_reaches_logs_or_results(
    presenter, store, caplog: pytest.LogCaptureFixture
) -> None:
    refused = "http://127.0.0.1:9"
    config = FlickrConfig(
        consumer_key="ckey",
        consumer_secret="csecret",
        request_token_url=f"{refused}/request_token",
        access_token_url=f"{refused}/access_token",
        rest_url=f"{refused}/rest",
    )

    class RefusingTransport(RequestsTransport):
        """Grants the request token, then hits a closed port."""

        def get(self, url: str) -> str:
            if url.startswith(config.request_token_url):
                return "oauth_callback_confirmed=true&oauth_token=ABC&oauth_token_secret=XYZ"
            return super().get(url)

    session = requests.Session()
    session.trust_env = False
    transport = RefusingTransport(session, timeout=(2, 2))
    ctrl = OAuthFlowController(config, transport, presenter, store=store)
    caplog.set_level(logging.DEBUG, logger="flickr-auth")

    future = ctrl.start(REDIRECT, AccessLevel.READ)
    ctrl.callback_received("myapp://callback?oauth_token=ABC&oauth_verifier=VERIFIER999")
    result = future.result(timeout=10)
    verified = ctrl.verify_credentials("SECRETACCESSTOKEN", "SEC", "u").result(timeout=10)
    session.close()

    assert result.kind is ErrorKind.TRANSPORT
    assert verified is False
    logged = "\n".join(
        r.getMessage() for r in caplog.records if r.name.startswith("flickr-auth")
    )
    for text in (result.message, logged):
        assert "VERIFIER999" not in text
        assert "SECRETACCESSTOKEN" not in text
        assert "oauth_signature=" not in text
        assert "oauth_verifier=" not in text
        assert "oauth_token=" not in text


def test_start_rejects_relative_redirect(controller: OAuthFlowController, transport) -> None:
    with pytest.raises(ValueError):
        controller.start("callback", AccessLevel.READ)
    assert transport.urls == []
    assert controller.state is FlowState.IDLE


def test_start_rejects_unknown_access_level(controller: OAuthFlowController) -> None:
    with pytest.raises(ValueError, match="unknown access level"):
        controller.start(REDIRECT, "admin")


# --------------------------------------------------------------------------- #
# Callback routing                                                            #
# --------------------------------------------------------------------------- #
def test_callback_with_other_scheme_is_ignored(
    controller: OAuthFlowController, transport, presenter
) -> None:
    future = controller.start(REDIRECT, AccessLevel.READ)

    stray = "https://example.com/?oauth_token=ABC&oauth_verifier=9"
    assert controller.callback_received(stray) is False
    assert controller.state is FlowState.AWAITING_USER_AUTHORIZATION
    assert presenter.dismissed == 0
    assert not future.done()
    assert transport.requested(ACCESS_TOKEN_URL) == []


def test_callback_without_attempt_is_ignored(controller: OAuthFlowController) -> None:
    assert controller.callback_received(CALLBACK) is False
    assert controller.state is FlowState.IDLE


def test_malformed_callback_is_consumed_and_fails(
    controller: OAuthFlowController, transport, presenter
) -> None:
    future = controller.start(REDIRECT, AccessLevel.READ)

    assert controller.callback_received("myapp://callback?denied=ABC") is True

    assert future.result(timeout=0) == FlowFailure(
        ErrorKind.COMMUNICATION, COMMUNICATION_ERROR_MESSAGE
    )
    assert presenter.dismissed == 1
    assert transport.requested(ACCESS_TOKEN_URL) == []


def test_second_callback_after_completion_is_ignored(
    controller: OAuthFlowController, transport
) -> None:
    controller.start(REDIRECT, AccessLevel.READ)
    assert controller.callback_received(CALLBACK) is True
    assert controller.callback_received(CALLBACK) is False
    assert len(transport.requested(ACCESS_TOKEN_URL)) == 1


# --------------------------------------------------------------------------- #
# Abandon / supersede                                                         #
# --------------------------------------------------------------------------- #
def test_abandon_cancels_pending_attempt(controller: OAuthFlowController) -> None:
    future = controller.start(REDIRECT, AccessLevel.READ)

    assert controller.abandon() is True

    assert future.result(timeout=0) == FlowFailure(ErrorKind.CANCELLED, ABANDONED_MESSAGE)
    assert controller.state is FlowState.FAILED
    assert controller.callback_received(CALLBACK) is False
    assert controller.abandon() is False


def test_abandon_without_attempt(controller: OAuthFlowController) -> None:
    assert controller.abandon() is False


def test_restart_supersedes_pending_attempt(
    controller: OAuthFlowController, transport, presenter
) -> None:
    first = controller.start(REDIRECT, AccessLevel.READ)
    second = controller.start(REDIRECT, AccessLevel.WRITE)

    assert first.result(timeout=0) == FlowFailure(ErrorKind.CANCELLED, SUPERSEDED_MESSAGE)
    assert not second.done()
    assert controller.state is FlowState.AWAITING_USER_AUTHORIZATION
    assert len(presenter.presented) == 2

    controller.callback_received(CALLBACK)
    assert second.result(timeout=0) == FlowSuccess(EXPECTED_CREDS)


def test_restart_after_completion_starts_fresh(
    controller: OAuthFlowController, transport
) -> None:
    first = controller.start(REDIRECT, AccessLevel.READ)
    controller.callback_received(CALLBACK)
    second = controller.start(REDIRECT, AccessLevel.READ)

    assert first.result(timeout=0).ok is True
    assert not second.done()
    assert len(transport.requested(REQUEST_TOKEN_URL)) == 2


def test_request_token_for_superseded_attempt_is_discarded(config, presenter, store) -> None:
    class RestartingTransport(FakeTransport):
        """Starts a competing attempt while the first request is in flight."""

        ctrl: OAuthFlowController | None = None
        inner = None
        restarted = False

        def get(self, url: str) -> str:
            if self.ctrl is not None and not self.restarted:
                self.restarted = True
                self.inner = self.ctrl.start(REDIRECT, AccessLevel.WRITE)
            return super().get(url)

    transport = RestartingTransport(
        {REQUEST_TOKEN_URL: "oauth_callback_confirmed=true&oauth_token=ABC&oauth_token_secret=XYZ"}
    )
    ctrl = _build_controller(config, transport, presenter, store)
    transport.ctrl = ctrl

    outer = ctrl.start(REDIRECT, AccessLevel.READ)

    assert outer.result(timeout=0) == FlowFailure(ErrorKind.CANCELLED, SUPERSEDED_MESSAGE)
    assert presenter.presented == [f"{AUTHORIZE_URL}?oauth_token=ABC&perms=write"]
    assert ctrl.state is FlowState.AWAITING_USER_AUTHORIZATION
    assert not transport.inner.done()


def test_access_token_for_superseded_attempt_is_not_persisted(config, presenter, store) -> None:
    class RestartingTransport(FakeTransport):
        """Starts a competing attempt while the access token is in flight."""

        ctrl: OAuthFlowController | None = None
        inner = None

        def get(self, url: str) -> str:
            if url.startswith(ACCESS_TOKEN_URL) and self.inner is None:
                self.inner = self.ctrl.start(REDIRECT, AccessLevel.WRITE)
            return super().get(url)

    transport = RestartingTransport(
        {REQUEST_TOKEN_URL: REQUEST_TOKEN_BODY, ACCESS_TOKEN_URL: ACCESS_TOKEN_BODY}
    )
    save_credentials(store, OLD_CREDS)
    ctrl = _build_controller(config, transport, presenter, store)
    transport.ctrl = ctrl

    outer = ctrl.start(REDIRECT, AccessLevel.READ)
    assert ctrl.callback_received(CALLBACK) is True

    assert outer.result(timeout=0) == FlowFailure(ErrorKind.CANCELLED, SUPERSEDED_MESSAGE)
    assert load_credentials(store) == OLD_CREDS
    assert ctrl.state is FlowState.AWAITING_USER_AUTHORIZATION
    assert not transport.inner.done()


# --------------------------------------------------------------------------- #
# Verification                                                                #
# --------------------------------------------------------------------------- #
def test_verify_credentials_success(controller: OAuthFlowController, transport) -> None:
    assert controller.verify_credentials("TOK", "SEC", "123@N00").result(timeout=0) is True

    (url,) = transport.requested(REST_URL)
    params = _assert_signed(url, REST_URL, "csecret&SEC")
    assert params["method"] == "flickr.test.login"
    assert params["format"] == "json"
    assert params["nojsoncallback"] == "1"
    assert params["oauth_token"] == "TOK"
    assert controller.state is FlowState.IDLE


@pytest.mark.parametrize(
    "reply",
    [
        '{"stat": "fail", "code": 98, "message": "Invalid auth token"}',
        "<html>oops</html>",
        "[]",
        TransportError("timed out"),
    ],
)
def test_verify_credentials_failure(
    controller: OAuthFlowController, transport, reply
) -> None:
    transport.responses[REST_URL] = reply
    assert controller.verify_credentials("TOK", "SEC", "123@N00").result(timeout=0) is False


@pytest.mark.parametrize(
    "fields",
    [("", "SEC", "123@N00"), ("TOK", None, "123@N00"), ("TOK", "SEC", "")],
)
def test_verify_incomplete_credentials_skips_request(
    controller: OAuthFlowController, transport, fields
) -> None:
    assert controller.verify_credentials(*fields).result(timeout=0) is False
    assert transport.urls == []


def test_verify_stored_credentials(controller: OAuthFlowController, transport, store) -> None:
    assert controller.verify_stored_credentials().result(timeout=0) is False
    assert transport.urls == []

    save_credentials(store, EXPECTED_CREDS)
    assert controller.verify_stored_credentials().result(timeout=0) is True


# --------------------------------------------------------------------------- #
# Threaded execution                                                          #
# --------------------------------------------------------------------------- #
class _SignallingPresenter(RecordingPresenter):
    def __init__(self) -> None:
        super().__init__()
        self.shown = threading.Event()

    def present(self, url: str) -> None:
        super().present(url)
        self.shown.set()


def test_flow_on_executor(config, transport, store) -> None:
    presenter = _SignallingPresenter()
    with ThreadPoolExecutor(max_workers=2) as executor:
        ctrl = _build_controller(config, transport, presenter, store, executor=executor)

        future = ctrl.start(REDIRECT, AccessLevel.READ)
        assert presenter.shown.wait(timeout=5)
        assert ctrl.callback_received(CALLBACK) is True

        assert future.result(timeout=5) == FlowSuccess(EXPECTED_CREDS)
        assert ctrl.verify_credentials("TOK", "SEC", "123@N00").result(timeout=5) is True

    assert ctrl.state is FlowState.COMPLETE
    assert load_credentials(store) == EXPECTED_CREDS
