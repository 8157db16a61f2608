"""
hotswap Events

Events the engine emits to registered handlers.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class HotSwapEventType(str, Enum):
    """Types of hot-swap events."""

    # Define outcomes
    REGISTERED = "registered"
    PATCHED = "patched"
    ESCALATED = "escalated"

    # Instances
    INSTANCE_ERROR = "instance_error"
    FINALIZED = "finalized"

    # Acceptance
    ACCEPTED = "accepted"
    FULL_RELOAD_REQUESTED = "full_reload_requested"


@dataclass
class HotSwapEvent:
    """A hot-swap event."""

    type: HotSwapEventType
    name: str
    timestamp: float = field(default_factory=time.time)
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
