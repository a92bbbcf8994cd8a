"""Structured logging helpers for the OAuth flow.

Flow records carry two context attributes and nothing else, so a careless
``extra=`` can never push a token secret or verifier into a log handler:

- ``flow_id`` – identifier of the authorization attempt (first 8 chars kept)
- ``step``    – flow step being executed (``request_token``, ``callback``…)

Usage
-----
>>> from flickr_auth.oauth.log_utils import get_flow_logger
>>> log = get_flow_logger(flow_id="9f1c2e6b0d1d4c6a8a9b", step="request_token")
>>> log.info("Fetching request token")
INFO flickr-auth.oauth.flow flow_id=9f1c2e6b step=request_token ...
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, MutableMapping

_FLOW_ID_LEN = 8
_CONTEXT_KEYS = ("flow_id", "step")


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything after the first *keep* chars masked."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "****"
    return f"{value[:keep]}****"


class _FlowLoggerAdapter(logging.LoggerAdapter):
    """Attach whitelisted flow context; call-site ``extra`` wins on conflict."""

    def __init__(self, logger: logging.Logger, context: Mapping[str, Any]) -> None:
        kept = {k: context[k] for k in _CONTEXT_KEYS if context.get(k) is not None}
        if "flow_id" in kept:
            kept["flow_id"] = str(kept["flow_id"])[:_FLOW_ID_LEN]
        super().__init__(logger, kept)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_flow_logger(
    *,
    base_logger_name: str = "flickr-auth.oauth.flow",
    flow_id: str | None = None,
    step: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with flow context."""
    return _FlowLoggerAdapter(
        logging.getLogger(base_logger_name), {"flow_id": flow_id, "step": step}
    )
