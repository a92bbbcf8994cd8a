"""flickr-auth command line.

Runs the OAuth flow from a terminal and keeps the resulting credentials in the
on-disk store, so scripts can reuse them.

Sub-commands
------------
* ``login``  – print/open the authorize URL, read the redirect URL the browser
  landed on from stdin, exchange it for an access token and store it.
* ``verify`` – check the stored credentials with ``flickr.test.login``.
* ``logout`` – forget the stored credentials.

Configuration comes from ``FLICKR_*`` environment variables, optionally loaded
from a ``.env`` style file with ``--env-file``.  Secrets are never printed.

Example
-------
    flickr-auth --env-file .env login --perms write
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import webbrowser
from pathlib import Path
from typing import Sequence

from flickr_auth.oauth.models import AccessLevel
from flickr_auth.oauth.store import DiskCredentialStore, clear_credentials
from flickr_auth.session import FlickrSession

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

DEFAULT_TIMEOUT = 120.0
MAX_CALLBACK_PROMPTS = 3


# --------------------------------------------------------------------------- #
# Environment helpers
# --------------------------------------------------------------------------- #
def _load_env_file(env_path: Path | None) -> None:
    """Load KEY=VALUE pairs from a .env style file into *os.environ*."""
    if env_path is None or not env_path.exists():
        return

    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = val


# --------------------------------------------------------------------------- #
# Presenter
# --------------------------------------------------------------------------- #
class ConsolePresenter:
    """Shows the authorize URL on stderr and optionally in a browser."""

    def __init__(self, *, open_browser: bool = True) -> None:
        self.open_browser = open_browser
        self.presented: str | None = None

    def present(self, url: str) -> None:
        self.presented = url
        print(f"Authorize this application at:\n  {url}", file=sys.stderr)
        if self.open_browser:
            webbrowser.open(url)

    def dismiss(self) -> None:
        print("Authorization callback received.", file=sys.stderr)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #
def _build_session(args: argparse.Namespace, presenter: ConsolePresenter) -> FlickrSession:
    store = DiskCredentialStore(base_dir=args.storage_dir)
    return FlickrSession.from_env(
        presenter=presenter,
        store=store,
        redirect_url=getattr(args, "redirect_url", None),
        access_level=getattr(args, "perms", None),
    )


def _cmd_login(args: argparse.Namespace) -> int:
    presenter = ConsolePresenter(open_browser=not args.no_browser)
    session = _build_session(args, presenter)
    try:
        future = session.start_authentication()
        for _ in range(MAX_CALLBACK_PROMPTS):
            if future.done():
                break
            try:
                url = input("Paste the URL you were redirected to: ").strip()
            except EOFError:
                break
            if not session.handle_open_url(url):
                print(
                    f"Not the callback URL (expected scheme of {session.redirect_url}).",
                    file=sys.stderr,
                )
        if not future.done():
            session.oauth.abandon()

        result = future.result(timeout=args.timeout)
    finally:
        session.close()

    if not result.ok:
        print(f"Authorization failed: {result.message}", file=sys.stderr)
        return EXIT_FAILURE
    print(f"Authorized Flickr user {result.credentials.user_id}")
    return EXIT_OK


def _cmd_verify(args: argparse.Namespace) -> int:
    session = _build_session(args, ConsolePresenter(open_browser=False))
    try:
        valid = session.verify(timeout=args.timeout)
    finally:
        session.close()
    print("Stored credentials are valid." if valid else "Stored credentials are NOT valid.")
    return EXIT_OK if valid else EXIT_FAILURE


def _cmd_logout(args: argparse.Namespace) -> int:
    store = DiskCredentialStore(base_dir=args.storage_dir)
    clear_credentials(store)
    print("Stored credentials removed.")
    return EXIT_OK


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flickr-auth", description="Authorize this machine against Flickr."
    )
    parser.add_argument("--env-file", type=Path, help="Load FLICKR_* variables from file")
    parser.add_argument(
        "--storage-dir",
        type=Path,
        default=None,
        help="Credential directory (default: $FLICKR_AUTH_STORAGE_DIR or ~/.flickr-auth)",
    )
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT, help="Seconds to wait for Flickr"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Run the OAuth flow and store credentials")
    login.add_argument("--redirect-url", help="Callback URL registered for the app")
    login.add_argument(
        "--perms",
        choices=[level.value for level in AccessLevel],
        help="Requested permissions (default: $FLICKR_PERMS or read)",
    )
    login.add_argument(
        "--no-browser", action="store_true", help="Only print the authorize URL"
    )
    login.set_defaults(func=_cmd_login)

    verify = sub.add_parser("verify", help="Check stored credentials")
    verify.set_defaults(func=_cmd_verify)

    logout = sub.add_parser("logout", help="Remove stored credentials")
    logout.set_defaults(func=_cmd_logout)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s %(message)s",
    )
    _load_env_file(args.env_file)
    try:
        return args.func(args)
    except ValueError as exc:  # ConfigError, SignatureError, relative redirect URL
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
