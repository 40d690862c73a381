import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import settings


SECURITY_EVENTS = {
    "auth.login.success",
    "auth.login.failed",
    "auth.logout",
    "property.created",
    "property.deleted",
    "share.generated",
    "share.revoked",
    "share.accessed",
    "access.denied",
}

security_logger = logging.getLogger("fintrack.security")


def configure_logging(level: Optional[str] = None) -> None:
    """JSON logs to stdout."""
    level = (level or settings.log_level or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers in reloaders
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)


def log_security_event(event: str, **context: Any) -> Dict[str, Any]:
    """Write one audit record for a security-relevant action.

    Context values that are None are dropped; UUIDs and other objects are
    stringified so the record is always valid JSON.
    """
    if event not in SECURITY_EVENTS:
        raise ValueError(f"Unknown security event: {event}")

    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
    }
    entry.update({k: str(v) for k, v in context.items() if v is not None})

    level = logging.WARNING if event in {"auth.login.failed", "access.denied"} else logging.INFO
    security_logger.log(level, "[SECURITY] %s", json.dumps(entry))
    return entry
