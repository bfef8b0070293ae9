"""Push event payloads and their Server-Sent Events encoding."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    connected = "connected"
    job_ready = "job_ready"
    job_failed = "job_failed"


def connected_event() -> Dict[str, Any]:
    return {"type": EventType.connected.value}


def job_event(event_type: EventType, job_id: str, status: str) -> Dict[str, Any]:
    return {"type": event_type.value, "job_id": job_id, "status": status}


def format_sse(event: Dict[str, Any]) -> str:
    """Encode one event as an SSE `data:` frame."""
    return f"data: {json.dumps(event, separators=(',', ':'))}\n\n"


# SSE comment line; keeps proxies from closing an idle stream.
KEEPALIVE_FRAME = ": keep-alive\n\n"
