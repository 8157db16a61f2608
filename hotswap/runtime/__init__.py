"""
hotswap Runtime

Registry and hot-swap engine invoked by rewritten units.
"""

from hotswap.runtime.engine import HotSwapEngine
from hotswap.runtime.environment import (
    HotEnvironment,
    bootstrap,
    get_environment,
    reset_environment,
    set_environment,
)
from hotswap.runtime.events import HotSwapEvent, HotSwapEventType
from hotswap.runtime.platform import BindOnceRegistry, PlatformRegistry
from hotswap.runtime.records import ClassProfile, DefineOutcome, RegistrationRecord

__all__ = [
    "BindOnceRegistry",
    "ClassProfile",
    "DefineOutcome",
    "HotEnvironment",
    "HotSwapEngine",
    "HotSwapEvent",
    "HotSwapEventType",
    "PlatformRegistry",
    "RegistrationRecord",
    "bootstrap",
    "get_environment",
    "reset_environment",
    "set_environment",
]
