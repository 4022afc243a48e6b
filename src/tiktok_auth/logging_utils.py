"""
Logging setup and structured flow events.

Module code logs through ``logging.getLogger(__name__)``. Each finished
sign-in attempt also emits one JSON line on the ``tiktok_auth.events`` logger
so outcomes can be counted without parsing free-form messages. Callers must
not pass secrets, tokens or raw provider bodies as fields.
"""

import json
import logging
from datetime import datetime, timezone

EVENT_LOGGER = "tiktok_auth.events"

_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger (idempotent)."""
    logger = logging.getLogger("tiktok_auth")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(getattr(h, "_tiktok_auth", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._tiktok_auth = True
        logger.addHandler(handler)
    return logger


def log_event(event: str, **fields) -> dict:
    """Emit one structured event and return the payload that was logged."""
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "outcome": fields.pop("outcome", None),
        "reason": fields.pop("reason", None),
    }
    payload.update({k: v for k, v in fields.items() if v is not None})
    level = logging.INFO if payload["outcome"] != "failure" else logging.WARNING
    logging.getLogger(EVENT_LOGGER).log(level, json.dumps(payload, default=str))
    return payload
