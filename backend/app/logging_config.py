"""Logging setup and structured event helpers.

All loggers live under the ``gigmarket`` namespace so a single handler
configured at startup covers routes, services and the store layer.
"""

import logging
import sys

from .config import Settings

ROOT_LOGGER = "gigmarket"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

_configured = False


def configure_logging(settings: Settings) -> None:
    """Attach a stderr handler to the gigmarket logger (idempotent)."""
    global _configured
    if _configured:
        return

    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger, forcing it under the gigmarket namespace."""
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


_auth_logger = get_logger("gigmarket.auth.events")
_lifecycle_logger = get_logger("gigmarket.lifecycle.events")


def _format_fields(fields: dict) -> str:
    return " | ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


def log_auth_event(event: str, user_id: str | None, success: bool, reason: str | None = None) -> None:
    """Log an authentication event (register, login, logout)."""
    line = _format_fields(
        {"event": event, "user": user_id, "success": success, "reason": reason}
    )
    if success:
        _auth_logger.info(line)
    else:
        _auth_logger.warning(line)


def log_lifecycle_event(action: str, gig_id: str, actor_id: str, **fields) -> None:
    """Log a committed gig lifecycle transition."""
    _lifecycle_logger.info(
        _format_fields({"action": action, "gig": gig_id, "actor": actor_id, **fields})
    )
