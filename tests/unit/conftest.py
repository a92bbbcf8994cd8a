"""Fixtures shared by unit tests."""

from __future__ import annotations

import pytest

from flickr_auth.config import FlickrConfig
from flickr_auth.oauth.store import MemoryCredentialStore
from flickr_fakes import (
    ACCESS_TOKEN_BODY,
    ACCESS_TOKEN_URL,
    CONSUMER_KEY,
    CONSUMER_SECRET,
    REQUEST_TOKEN_BODY,
    REQUEST_TOKEN_URL,
    REST_URL,
    FakeTransport,
    RecordingPresenter,
)


@pytest.fixture()
def config() -> FlickrConfig:
    return FlickrConfig(consumer_key=CONSUMER_KEY, consumer_secret=CONSUMER_SECRET)


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport(
        {
            REQUEST_TOKEN_URL: REQUEST_TOKEN_BODY,
            ACCESS_TOKEN_URL: ACCESS_TOKEN_BODY,
            REST_URL: '{"user": {"id": "123@N00"}, "stat": "ok"}',
        }
    )


@pytest.fixture()
def presenter() -> RecordingPresenter:
    return RecordingPresenter()


@pytest.fixture()
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()
