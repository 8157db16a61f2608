"""
hotswap Engine

The runtime side of every rewritten registration. Each define call either
binds a new name through a proxy, patches the proxy in place, or escalates
to a full reload when the change cannot be patched.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional

import structlog

from hotswap.runtime.compat import check_compatibility
from hotswap.runtime.events import HotSwapEvent, HotSwapEventType
from hotswap.runtime.patcher import ClassPatcher, is_accessor
from hotswap.runtime.proxy import build_proxy, is_proxy
from hotswap.runtime.records import ClassProfile, DefineOutcome, RegistrationRecord
from hotswap.types import PropertySnapshot

if TYPE_CHECKING:
    from hotswap.runtime.environment import HotEnvironment

logger = structlog.get_logger(__name__)

RELOAD_PREFIX = "[hotswap] Full reload required for"


class HotSwapEngine:
    """
    Hot-swap engine over one environment.

    All state (records, escalation flags) lives on the environment; the
    engine holds behavior and event handlers only.
    """

    def __init__(self, env: "HotEnvironment"):
        self.env = env
        self.contract = env.contract
        self.patcher = ClassPatcher(self.contract)
        self._event_handlers: List[Callable[[HotSwapEvent], None]] = []

    # === Events ===

    def on_event(self, handler: Callable[[HotSwapEvent], None]) -> None:
        """Register an event handler."""
        self._event_handlers.append(handler)

    def _emit_event(self, event: HotSwapEvent) -> None:
        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error("Event handler error", event_type=event.type.value, error=str(e))

    # === Define ===

    def define(
        self,
        name: str,
        delegate: type,
        unit_id: str = "",
        dependencies: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Runtime entry point called by rewritten units.

        Args:
            name: Registration name
            delegate: Class carried by the current evaluation of the unit
            unit_id: Unit that made the call
            dependencies: Identifiers the unit imports from its own project
        """
        if not isinstance(name, str) or not name:
            raise TypeError(f"Registration name must be a non-empty string, got {name!r}")
        if not isinstance(delegate, type):
            raise TypeError(f"Cannot register {name!r}: {delegate!r} is not a class")
        if is_proxy(delegate):
            raise TypeError(f"Cannot register {name!r}: {delegate.__qualname__} is a proxy")

        record = self.env.records.get(name)
        if record is None:
            self._register(name, delegate, unit_id, dependencies)
        else:
            self._update(record, delegate, unit_id, dependencies)

    def _register(
        self,
        name: str,
        delegate: type,
        unit_id: str,
        dependencies: Optional[Dict[str, Any]],
    ) -> RegistrationRecord:
        record = RegistrationRecord(
            name=name,
            delegate=delegate,
            unit_id=unit_id,
            dependencies=dependencies,
            profile=ClassProfile.capture(delegate, self.contract),
        )
        record.proxy = build_proxy(record, self.contract)

        # Raises when something else already owns the name
        self.env.platform_registry.define(name, record.proxy)
        self.env.records[name] = record

        logger.info("Component registered", name=name, unit=unit_id)
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.REGISTERED,
            name=name,
            data={"unit_id": unit_id},
        ))
        return record

    def _update(
        self,
        record: RegistrationRecord,
        delegate: type,
        unit_id: str,
        dependencies: Optional[Dict[str, Any]],
    ) -> None:
        profile = ClassProfile.capture(delegate, self.contract)
        reasons = check_compatibility(record.profile, profile)

        if reasons:
            record.version += 1
            record.delegate = delegate
            record.profile = profile
            record.unit_id = unit_id
            record.dependencies = dependencies
            self._escalate(record, reasons)
            return

        report = self.patcher.patch(record.proxy, delegate)
        failed = self._propagate(record)

        record.delegate = delegate
        record.version += 1
        record.profile = profile
        record.unit_id = unit_id
        record.dependencies = dependencies
        record.last_outcome = DefineOutcome.PATCHED

        logger.info(
            "Component hot-updated",
            name=record.name,
            version=record.version,
            instances=record.instance_count,
            failed_instances=failed,
        )
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.PATCHED,
            name=record.name,
            data={"version": record.version, "failed_instances": failed, **report.to_dict()},
        ))

    def _escalate(self, record: RegistrationRecord, reasons: List[str]) -> None:
        reason = f"{RELOAD_PREFIX} <{record.name}>:\n  - " + "\n  - ".join(reasons)
        record.last_outcome = DefineOutcome.ESCALATED

        if self.env.needs_reload and self.env.reload_reason:
            self.env.reload_reason = f"{self.env.reload_reason}\n{reason}"
        else:
            self.env.reload_reason = reason
        self.env.needs_reload = True

        logger.warning(reason)
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.ESCALATED,
            name=record.name,
            data={"version": record.version, "reasons": list(reasons)},
        ))

    # === Instances ===

    def _request_update(self, instance: Any) -> None:
        request = getattr(instance, self.contract.render_request, None)
        if callable(request):
            request()

    def _mount_styles(self, instance: Any) -> None:
        root = getattr(instance, self.contract.render_root, None)
        styles = getattr(type(instance), self.contract.styles, None)
        if root is None or styles is None or not hasattr(root, self.contract.style_mount):
            return
        sheets = list(styles) if isinstance(styles, (list, tuple)) else [styles]
        setattr(root, self.contract.style_mount, sheets)

    def _instance_error(self, record: RegistrationRecord, instance: Any, error: Exception) -> None:
        logger.warning(
            "Error updating instance",
            name=record.name,
            instance=repr(instance),
            error=str(error),
        )
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.INSTANCE_ERROR,
            name=record.name,
            error=str(error),
        ))

    def _propagate(self, record: RegistrationRecord) -> int:
        """Re-render every tracked instance. Returns the number that failed."""
        failed = 0
        for instance in list(record.instances):
            try:
                self._mount_styles(instance)
                self._request_update(instance)
            except Exception as e:
                failed += 1
                self._instance_error(record, instance, e)
        return failed

    # === Finalize ===

    def finalize_patch(self, name: str, snapshots: Iterable[PropertySnapshot]) -> int:
        """
        Re-drive captured initial values through the delegate's accessors
        on live instances after a patch.

        Returns:
            Number of instances written to
        """
        record = self.env.records.get(name)
        if record is None or record.last_outcome != DefineOutcome.PATCHED:
            return 0

        owner = record.delegate.__name__
        values = {
            s.name: s
            for s in snapshots
            if s.has_value and (not s.owner or s.owner == owner)
        }
        fields = [
            key for key, value in record.delegate.__dict__.items()
            if key in values and is_accessor(value)
        ]
        if not fields:
            return 0

        updated = 0
        for instance in list(record.instances):
            try:
                for key in fields:
                    setattr(instance, key, copy.deepcopy(values[key].value))
                self._request_update(instance)
                updated += 1
            except Exception as e:
                self._instance_error(record, instance, e)

        logger.debug("Reactive values re-applied", name=name, fields=fields, instances=updated)
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.FINALIZED,
            name=name,
            data={"fields": fields, "instances": updated},
        ))
        return updated

    # === Acceptance ===

    def accept_update(self, unit_id: str, hot: Any = None) -> bool:
        """
        Acceptance hook body, run when the host delivers a re-evaluated unit.

        Returns:
            True when the update was absorbed, False when a full reload was
            requested instead
        """
        if not self.env.needs_reload:
            logger.info("Hot update applied", unit=unit_id)
            self._emit_event(HotSwapEvent(
                type=HotSwapEventType.ACCEPTED,
                name=unit_id,
            ))
            return True

        reason = self.env.reload_reason
        self.env.needs_reload = False
        self.env.reload_reason = ""

        logger.warning("Full reload requested", unit=unit_id, reason=reason)
        self._emit_event(HotSwapEvent(
            type=HotSwapEventType.FULL_RELOAD_REQUESTED,
            name=unit_id,
            data={"reason": reason},
        ))

        invalidate = getattr(hot, "invalidate", None)
        if callable(invalidate):
            invalidate(reason)
        return False

    # === Introspection ===

    def get_record(self, name: str) -> Optional[RegistrationRecord]:
        return self.env.records.get(name)

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        records = list(self.env.records.values())
        return {
            "components": len(records),
            "instances": sum(r.instance_count for r in records),
            "needs_reload": self.env.needs_reload,
            "records": {r.name: r.to_dict() for r in records},
        }
