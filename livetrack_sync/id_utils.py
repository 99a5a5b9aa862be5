"""ID generation for entities created on a client.

Participant IDs: p-{epoch_ms}-{suffix}
Event IDs: evt-{epoch_ms}-{suffix}

The millisecond timestamp keeps IDs roughly creation-ordered; the random
suffix keeps two devices that register in the same millisecond apart.
"""

from __future__ import annotations

import secrets
import time


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{now_ms()}-{secrets.token_hex(3)}"


def new_participant_id() -> str:
    """Generate a participant ID."""
    return _new_id("p")


def new_event_id() -> str:
    """Generate an event ID."""
    return _new_id("evt")
