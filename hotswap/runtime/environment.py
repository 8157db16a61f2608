"""
hotswap Environment

The shared table every rewritten unit of one process talks to: records,
captured snapshots, escalation flags, the engine and the platform
registry. It is created once, initialized at most once and never reset
short of a full reload.

Rewritten units receive it through their ``__hotswap_env__`` global when
the loader injects one, and fall back to the process default otherwise.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

import structlog

from hotswap.config import HotSwapSettings, get_settings
from hotswap.log import setup_logging
from hotswap.runtime.engine import HotSwapEngine
from hotswap.runtime.events import HotSwapEvent
from hotswap.runtime.platform import BindOnceRegistry, PlatformRegistry
from hotswap.runtime.records import RegistrationRecord
from hotswap.types import PropertySnapshot

logger = structlog.get_logger(__name__)


class HotEnvironment:
    """
    Process-wide hot-swap state.

    Attributes:
        records: Registration records by name
        snapshots: Property snapshots by unit id, from the latest evaluation
        needs_reload: Set when a define call escalated
        reload_reason: Human-readable reason(s) for the pending escalation
        define: Runtime entry point, set on initialization
    """

    def __init__(
        self,
        platform_registry: Optional[PlatformRegistry] = None,
        settings: Optional[HotSwapSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.contract = self.settings.contract
        self.platform_registry: PlatformRegistry = (
            platform_registry if platform_registry is not None else BindOnceRegistry()
        )

        self.records: Dict[str, RegistrationRecord] = {}
        self.snapshots: Dict[str, List[PropertySnapshot]] = {}
        self.needs_reload = False
        self.reload_reason = ""

        self.engine = HotSwapEngine(self)
        self.define: Optional[Callable[..., None]] = None
        self.initializations = 0

    @property
    def initialized(self) -> bool:
        return self.define is not None

    def initialize(self) -> bool:
        """
        Install the entry point. Safe to call any number of times.

        Returns:
            True on the call that actually initialized the environment
        """
        if self.initialized:
            return False

        if self.settings.configure_logging:
            setup_logging(self.settings.log_level.value, self.settings.json_logs)

        self.define = self.engine.define
        self.initializations += 1
        logger.debug("Hot-swap runtime initialized")
        return True

    # === Called by rewritten units ===

    def load_snapshots(
        self,
        unit_id: str,
        data: Iterable[Mapping[str, Any]],
    ) -> List[PropertySnapshot]:
        """Decode the snapshots embedded in a unit's bootstrap."""
        snapshots = [PropertySnapshot.from_dict(dict(item)) for item in data]
        self.snapshots[unit_id] = snapshots
        return snapshots

    def finalize_patch(self, name: str, snapshots: Iterable[PropertySnapshot]) -> int:
        return self.engine.finalize_patch(name, snapshots)

    def acceptor(self, unit_id: str, hot: Any) -> Callable[..., bool]:
        """Accept callback for a unit's update-delivery context."""

        def accept(*_: Any) -> bool:
            return self.engine.accept_update(unit_id, hot)

        return accept

    # === Convenience ===

    def on_event(self, handler: Callable[[HotSwapEvent], None]) -> None:
        self.engine.on_event(handler)

    def get_record(self, name: str) -> Optional[RegistrationRecord]:
        return self.engine.get_record(name)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.engine.get_stats()
        stats["initialized"] = self.initialized
        stats["units"] = len(self.snapshots)
        return stats


# Process default environment (lazy loaded)
_environment: Optional[HotEnvironment] = None


def get_environment() -> HotEnvironment:
    """Get the process default environment."""
    global _environment
    if _environment is None:
        _environment = HotEnvironment()
    return _environment


def set_environment(env: HotEnvironment) -> None:
    global _environment
    _environment = env


def reset_environment() -> None:
    """Drop the process default environment (tests and full reloads only)."""
    global _environment
    _environment = None


def bootstrap(env: Optional[HotEnvironment] = None) -> HotEnvironment:
    """
    Runtime bootstrap of a rewritten unit.

    Uses the given environment or the process default, and initializes it
    unless that already happened.
    """
    if env is None:
        env = get_environment()
    env.initialize()
    return env
