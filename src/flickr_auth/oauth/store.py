"""Credential persistence for the Flickr OAuth flow.

This module introduces a *narrow* persistence interface
(:class:`CredentialStore`, get/set a string by key) and two implementations:

* :class:`MemoryCredentialStore` – process-local dict, handy for tests.
* :class:`DiskCredentialStore` – a single JSON file written atomically
  (*temp-file + os.replace*), guarded by a process-local lock.

Credentials occupy three named slots (see ``ACCESS_TOKEN_KEY`` etc.) that are
always written together.  The flow treats persistence failures as silent:
they are logged and never leave a mix of old and new slot values.

Environment variables
---------------------
FLICKR_AUTH_STORAGE_DIR
    Base directory for :class:`DiskCredentialStore`.
    Defaults to ``~/.flickr-auth`` when unset.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Final, Mapping, Protocol, runtime_checkable

from flickr_auth.oauth.models import Credentials

_LOG = logging.getLogger("flickr-auth.oauth.store")

ACCESS_TOKEN_KEY: Final[str] = "flickr.access_token"
ACCESS_SECRET_KEY: Final[str] = "flickr.access_secret"
USER_ID_KEY: Final[str] = "flickr.user_id"

_CREDENTIAL_KEYS: Final[tuple[str, ...]] = (
    ACCESS_TOKEN_KEY,
    ACCESS_SECRET_KEY,
    USER_ID_KEY,
)


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class CredentialStore(Protocol):
    """Minimal key-value persistence contract."""

    def get_string(self, key: str) -> str | None: ...
    def set_string(self, key: str, value: str) -> None: ...


def load_credentials(store: CredentialStore) -> Credentials | None:
    """Read the three credential slots; ``None`` if any is absent or empty."""
    values = [store.get_string(k) for k in _CREDENTIAL_KEYS]
    if not all(values):
        return None
    access_token, access_secret, user_id = values
    return Credentials(
        access_token=access_token,  # type: ignore[arg-type]
        access_secret=access_secret,  # type: ignore[arg-type]
        user_id=user_id,  # type: ignore[arg-type]
    )


def _set_slots(store: CredentialStore, values: Mapping[str, str]) -> None:
    """Write *values* all-or-nothing.

    Stores offering ``set_strings(mapping)`` write the slots in one operation.
    Otherwise keys are written one by one and, should a write fail, the slots
    are blanked before the error propagates so a new token is never paired
    with an old secret.
    """
    set_strings = getattr(store, "set_strings", None)
    if callable(set_strings):
        set_strings(values)
        return
    try:
        for key, value in values.items():
            store.set_string(key, value)
    except Exception:
        for key in values:
            try:
                store.set_string(key, "")
            except Exception as exc:  # original error is re-raised below
                _LOG.warning("Could not blank credential slot %s: %s", key, exc)
        raise


def save_credentials(store: CredentialStore, credentials: Credentials) -> None:
    """Overwrite all three credential slots as a unit."""
    _set_slots(
        store,
        {
            ACCESS_TOKEN_KEY: credentials.access_token,
            ACCESS_SECRET_KEY: credentials.access_secret,
            USER_ID_KEY: credentials.user_id,
        },
    )


def clear_credentials(store: CredentialStore) -> None:
    """Blank the credential slots so :func:`load_credentials` returns ``None``."""
    _set_slots(store, dict.fromkeys(_CREDENTIAL_KEYS, ""))


# --------------------------------------------------------------------------- #
# implementations                                                             #
# --------------------------------------------------------------------------- #


class MemoryCredentialStore(CredentialStore):
    """In-memory store; contents vanish with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get_string(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set_string(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def set_strings(self, values: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update(values)


def _atomic_write(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, separators=(",", ":"), sort_keys=True)
    os.replace(tmp, path)  # atomic on POSIX


class DiskCredentialStore(CredentialStore):
    """JSON-file implementation of :class:`CredentialStore`."""

    FILENAME: Final[str] = "credentials.json"

    def __init__(self, base_dir: str | os.PathLike | None = None) -> None:
        self.base_dir = Path(
            base_dir
            or os.getenv("FLICKR_AUTH_STORAGE_DIR")
            or Path.home() / ".flickr-auth"
        ).expanduser()
        self.path = self.base_dir / self.FILENAME
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open(encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            _LOG.warning("Ignoring unreadable credential file %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get_string(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set_string(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            _atomic_write(self.path, data)
        _LOG.debug("Stored key=%s in %s", key, self.path)

    def set_strings(self, values: Mapping[str, str]) -> None:
        """Update several keys with a single atomic file replacement."""
        with self._lock:
            data = self._read()
            data.update(values)
            _atomic_write(self.path, data)
        _LOG.debug("Stored keys=%s in %s", sorted(values), self.path)


# --------------------------------------------------------------------------- #
# Convenience – default singleton                                            #
# --------------------------------------------------------------------------- #

_default_store: DiskCredentialStore | None = None


def default_store() -> DiskCredentialStore:
    """Return a process-wide :class:`DiskCredentialStore`."""
    global _default_store  # noqa: PLW0603
    if _default_store is None:
        _default_store = DiskCredentialStore()
    return _default_store
