"""Configuration shared by all test directories."""

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless explicitly requested.

    Live tests talk to the real Flickr API and need consumer credentials in
    the environment, so they never run by default.
    """
    if not config.getoption("--live", default=False):
        skip_live = pytest.mark.skip(reason="Need --live option to run")
        for item in items:
            if "live" in item.keywords:
                item.add_marker(skip_live)


def pytest_addoption(parser):
    """Add live option to pytest."""
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="run tests against the real Flickr API",
    )
