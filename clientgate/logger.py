"""Structured logger shared by the services."""
import logging
from typing import Any

_logger = logging.getLogger("clientgate")
_logger.setLevel(logging.INFO)

if not _logger.handlers:
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    _logger.addHandler(handler)


def token_fingerprint(token: str | None) -> str:
    """Short, non-reversible handle for a token so logs never carry a usable credential."""
    if not token:
        return "-"
    token = token.strip()
    return f"...{token[-8:]}" if len(token) > 8 else "..."


def log_event(component: str, event: str, level: int = logging.INFO, **fields: Any) -> None:
    """
    Log one event as key=value pairs.

    Args:
        component: Emitting component (e.g. 'lifecycle', 'tokens', 'store')
        event: Short event name
        level: Log level (default: INFO)
        **fields: Additional structured fields
    """
    parts = [f"component={component!r}", f"event={event!r}"]
    parts.extend(f"{k}={v!r}" for k, v in fields.items())
    _logger.log(level, " | ".join(parts))

