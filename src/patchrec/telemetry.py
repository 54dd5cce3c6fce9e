"""Structured JSON telemetry events for recording and applying patches."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

__all__ = ["TELEMETRY_LOGGER", "emit_event", "serialise_event_value"]

TELEMETRY_LOGGER = logging.getLogger("patchrec.telemetry")


def serialise_event_value(value: Any) -> Any:
    """Convert telemetry payload values into JSON-friendly representations."""
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [serialise_event_value(item) for item in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=str)
        return items
    if isinstance(value, Mapping):
        return {str(key): serialise_event_value(child) for key, child in value.items()}
    return str(value)


def emit_event(event: str, **fields: Any) -> None:
    """Log one compact JSON line describing ``event``."""
    if not TELEMETRY_LOGGER.isEnabledFor(logging.INFO):
        return
    payload: dict[str, Any] = {"event": event, "timestamp": datetime.now(timezone.utc).isoformat()}
    for key, value in fields.items():
        payload[key] = serialise_event_value(value)
    TELEMETRY_LOGGER.info(json.dumps(payload, separators=(",", ":"), ensure_ascii=True))
