"""
hotswap Registration Records

Per-name bookkeeping of the engine and the class profiles its
compatibility check compares.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Optional, Tuple

from hotswap.config import FrameworkContract
from hotswap.runtime.compat import constructor_body


class DefineOutcome(str, Enum):
    """What the last define call for a name did."""

    REGISTERED = "registered"
    PATCHED = "patched"
    ESCALATED = "escalated"


@dataclass(frozen=True)
class ClassProfile:
    """
    The three compatibility axes of one delegate, captured when the
    delegate is defined. Source text can change on disk afterwards, so
    it is read once, here.
    """

    constructor: Optional[str]
    reactive_keys: Tuple[str, ...] = ()
    observed_attributes: Tuple[str, ...] = ()

    @classmethod
    def capture(cls, delegate: type, contract: Optional[FrameworkContract] = None) -> "ClassProfile":
        contract = contract or FrameworkContract()

        metadata = getattr(delegate, contract.reactive_metadata, None) or {}
        try:
            reactive_keys = tuple(metadata.keys())
        except AttributeError:
            reactive_keys = tuple(metadata)

        observed = getattr(delegate, contract.observed_attributes, None) or ()
        if isinstance(observed, str):
            observed = (observed,)

        return cls(
            constructor=constructor_body(delegate),
            reactive_keys=reactive_keys,
            observed_attributes=tuple(str(a) for a in observed),
        )


class InstanceSet:
    """
    Weak set of live instances, compared by identity.

    Components may define value equality or be unhashable, so members are
    keyed by ``id()`` and dropped when collected.
    """

    def __init__(self) -> None:
        self._refs: Dict[int, "weakref.ref[Any]"] = {}

    def add(self, instance: Any) -> None:
        key = id(instance)
        refs = self._refs

        def _collected(ref: "weakref.ref[Any]") -> None:
            if refs.get(key) is ref:
                del refs[key]

        refs[key] = weakref.ref(instance, _collected)

    def discard(self, instance: Any) -> None:
        ref = self._refs.get(id(instance))
        if ref is not None and ref() is instance:
            del self._refs[id(instance)]

    def __contains__(self, instance: Any) -> bool:
        ref = self._refs.get(id(instance))
        return ref is not None and ref() is instance

    def __iter__(self) -> Iterator[Any]:
        for ref in list(self._refs.values()):
            instance = ref()
            if instance is not None:
                yield instance

    def __len__(self) -> int:
        return sum(1 for ref in list(self._refs.values()) if ref() is not None)


@dataclass
class RegistrationRecord:
    """
    One registration name.

    The proxy is bound once and never replaced; the delegate is the class
    the latest define call carried. Instances are tracked, not owned.
    """

    name: str
    delegate: type
    unit_id: str
    proxy: Optional[type] = None
    version: int = 0
    instances: InstanceSet = field(default_factory=InstanceSet)
    dependencies: Optional[Dict[str, Any]] = None
    profile: Optional[ClassProfile] = None
    last_outcome: DefineOutcome = DefineOutcome.REGISTERED

    @property
    def instance_count(self) -> int:
        return len(self.instances)

    def to_dict(self) -> Dict[str, Any]:
        """Summary used for stats and events."""
        return {
            "name": self.name,
            "delegate": self.delegate.__qualname__,
            "unit_id": self.unit_id,
            "version": self.version,
            "instances": self.instance_count,
            "last_outcome": self.last_outcome.value,
        }
