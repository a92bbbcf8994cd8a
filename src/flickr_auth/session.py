"""FlickrSession – application-facing façade over the OAuth core.

A session bundles the consumer configuration, the redirect URL and requested
permissions registered for the app, a credential store and the flow
controller.  Applications create one explicitly and thread it through; there
is no process-wide singleton.

Usage::

    session = FlickrSession.from_env(presenter=my_presenter)
    if not session.verify():
        future = session.start_authentication()
        ...
        # later, from the app's URL handler
        session.handle_open_url(url)
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import Executor, Future

from flickr_auth.config import ConfigError, FlickrConfig
from flickr_auth.oauth.flow import AuthorizationPresenter, OAuthFlowController
from flickr_auth.oauth.models import AccessLevel, Credentials, FlowResult
from flickr_auth.oauth.store import (
    CredentialStore,
    clear_credentials,
    default_store,
    load_credentials,
)
from flickr_auth.oauth.transport import HttpTransport, RequestsTransport

_LOG = logging.getLogger("flickr-auth.session")


class FlickrSession:
    """Flickr authorization session for one application."""

    def __init__(
        self,
        config: FlickrConfig,
        redirect_url: str,
        access_level: AccessLevel | str,
        *,
        presenter: AuthorizationPresenter,
        store: CredentialStore | None = None,
        transport: HttpTransport | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.config = config
        self.redirect_url = redirect_url
        self.access_level = AccessLevel.parse(access_level)
        self.store = store if store is not None else default_store()
        self._owns_transport = transport is None
        self.transport = transport or RequestsTransport(timeout=config.request_timeout)
        self.oauth = OAuthFlowController(
            config,
            self.transport,
            presenter,
            store=self.store,
            executor=executor,
        )

    @classmethod
    def from_env(
        cls,
        *,
        presenter: AuthorizationPresenter,
        redirect_url: str | None = None,
        access_level: AccessLevel | str | None = None,
        store: CredentialStore | None = None,
        transport: HttpTransport | None = None,
        executor: Executor | None = None,
    ) -> "FlickrSession":
        """Build a session from ``FLICKR_*`` environment variables.

        Explicit *redirect_url* / *access_level* override ``FLICKR_REDIRECT_URL``
        and ``FLICKR_PERMS``.

        Raises
        ------
        ConfigError
            If the consumer key/secret or ``FLICKR_REDIRECT_URL`` is missing.
        """
        config = FlickrConfig.from_env()
        if config is None:
            raise ConfigError("FLICKR_CONSUMER_KEY and FLICKR_CONSUMER_SECRET must be set")
        redirect_url = redirect_url or os.getenv("FLICKR_REDIRECT_URL")
        if not redirect_url:
            raise ConfigError("FLICKR_REDIRECT_URL must be set")
        try:
            access_level = AccessLevel.parse(access_level or os.getenv("FLICKR_PERMS", "read"))
        except ValueError as exc:
            raise ConfigError(str(exc)) from None
        return cls(
            config,
            redirect_url,
            access_level,
            presenter=presenter,
            store=store,
            transport=transport,
            executor=executor,
        )

    @property
    def credentials(self) -> Credentials | None:
        """Credentials currently held by the store."""
        return load_credentials(self.store)

    def start_authentication(self) -> "Future[FlowResult]":
        """Run the OAuth flow with the session's redirect URL and permissions."""
        return self.oauth.start(self.redirect_url, self.access_level)

    def handle_open_url(self, url: str) -> bool:
        """Route a URL the application was opened with into the flow."""
        return self.oauth.callback_received(url)

    def verify(self, timeout: float | None = None) -> bool:
        """Return *True* if the stored credentials are accepted by Flickr."""
        return self.oauth.verify_stored_credentials().result(timeout=timeout)

    def sign_out(self) -> None:
        """Forget stored credentials."""
        clear_credentials(self.store)
        _LOG.info("Cleared stored Flickr credentials")

    def close(self) -> None:
        if self._owns_transport and isinstance(self.transport, RequestsTransport):
            self.transport.close()
