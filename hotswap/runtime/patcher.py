"""
hotswap Class Patcher

Copies a new delegate's members onto a live proxy class.
"""

from __future__ import annotations

import inspect
import types
from dataclasses import dataclass, field
from typing import Any, List, Optional

import structlog

from hotswap.config import FrameworkContract
from hotswap.runtime.proxy import PROXY_MARKER, TEARDOWN_IMPL

logger = structlog.get_logger(__name__)

CONSTRUCTOR = "__init__"

# Per-class machinery type() maintains itself
CLASS_MACHINERY = frozenset({
    "__dict__",
    "__weakref__",
    "__slots__",
    "__module__",
    "__qualname__",
    "__firstlineno__",
    "__static_attributes__",
    "__orig_bases__",
    "__parameters__",
    PROXY_MARKER,
})


@dataclass
class PatchReport:
    """What one patch copied, skipped and failed to copy."""

    members: List[str] = field(default_factory=list)
    statics: List[str] = field(default_factory=list)
    caches: List[str] = field(default_factory=list)
    skipped_accessors: List[str] = field(default_factory=list)
    cleared_markers: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "members": len(self.members),
            "statics": len(self.statics),
            "caches": list(self.caches),
            "skipped_accessors": list(self.skipped_accessors),
            "failed": list(self.failed),
        }


def is_accessor(value: Any) -> bool:
    """
    True for accessor pairs: reactive descriptors and other data
    descriptors, and properties with a setter. Read-only properties behave
    like methods and are not accessors here.
    """
    if isinstance(value, property):
        return value.fset is not None
    return inspect.isdatadescriptor(value)


def is_member(value: Any) -> bool:
    """Behavior (functions, wrapped methods, descriptors) as opposed to plain data."""
    return (
        inspect.isfunction(value)
        or isinstance(value, (classmethod, staticmethod, property))
        or hasattr(type(value), "__get__")
    )


# === super() cells ===

def _rebind_function(func: types.FunctionType, old: type, new: type) -> types.FunctionType:
    """Copy of func whose ``__class__`` cell points at new instead of old."""
    code = func.__code__
    if func.__closure__ is None or "__class__" not in code.co_freevars:
        return func

    index = code.co_freevars.index("__class__")
    cell = func.__closure__[index]
    try:
        if cell.cell_contents is not old:
            return func
    except ValueError:  # Empty cell
        return func

    closure = list(func.__closure__)
    closure[index] = types.CellType(new)
    rebound = types.FunctionType(
        code, func.__globals__, func.__name__, func.__defaults__, tuple(closure)
    )
    rebound.__kwdefaults__ = func.__kwdefaults__
    rebound.__dict__.update(func.__dict__)
    for attr in ("__qualname__", "__doc__", "__module__", "__annotations__"):
        setattr(rebound, attr, getattr(func, attr))
    return rebound


def rebind_super(value: Any, old: type, new: type) -> Any:
    """Re-point zero-argument super() in a class member from old to new."""
    if inspect.isfunction(value):
        return _rebind_function(value, old, new)
    if isinstance(value, classmethod):
        return classmethod(rebind_super(value.__func__, old, new))
    if isinstance(value, staticmethod):
        return staticmethod(rebind_super(value.__func__, old, new))
    if isinstance(value, property):
        return property(
            rebind_super(value.fget, old, new) if value.fget else None,
            rebind_super(value.fset, old, new) if value.fset else None,
            rebind_super(value.fdel, old, new) if value.fdel else None,
            value.__doc__,
        )
    return value


class ClassPatcher:
    """
    Copies class-level state of a new delegate onto a proxy.

    Rules:
    - The constructor slot and class machinery are never copied
    - Accessor pairs are skipped; their values are re-driven on instances
      after the patch
    - The teardown hook is stored beside the proxy's own tracking hook
    - Framework caches are copied even when inherited, and finalized
      markers are cleared afterwards
    - One failing key never aborts the rest
    """

    def __init__(self, contract: Optional[FrameworkContract] = None):
        self.contract = contract or FrameworkContract()

    def patch(self, proxy: type, delegate: type) -> PatchReport:
        report = PatchReport()
        base = proxy.__bases__[0]

        for key, value in list(delegate.__dict__.items()):
            if key == CONSTRUCTOR or key in CLASS_MACHINERY:
                continue
            if is_accessor(value):
                report.skipped_accessors.append(key)
                continue

            target = TEARDOWN_IMPL if key == self.contract.teardown_hook else key
            bucket = report.members if is_member(value) else report.statics
            if self._set(proxy, target, rebind_super(value, delegate, base), report):
                bucket.append(key)

        self._copy_caches(proxy, delegate, report)
        self._clear_markers(proxy, report)
        return report

    def _set(self, proxy: type, key: str, value: Any, report: PatchReport) -> bool:
        try:
            setattr(proxy, key, value)
            return True
        except (AttributeError, TypeError, ValueError) as e:
            report.failed.append(key)
            logger.warning(
                "Could not copy class member",
                cls=proxy.__qualname__,
                key=key,
                error=str(e),
            )
            return False

    def _copy_caches(self, proxy: type, delegate: type, report: PatchReport) -> None:
        for key in self.contract.cache_attributes:
            try:
                value = getattr(delegate, key)
            except AttributeError:
                continue
            if self._set(proxy, key, value, report):
                report.caches.append(key)

    def _clear_markers(self, proxy: type, report: PatchReport) -> None:
        for marker in self.contract.finalized_markers:
            if marker not in proxy.__dict__:
                continue
            try:
                delattr(proxy, marker)
                report.cleared_markers.append(marker)
            except (AttributeError, TypeError) as e:
                report.failed.append(marker)
                logger.warning(
                    "Could not clear finalized marker",
                    cls=proxy.__qualname__,
                    key=marker,
                    error=str(e),
                )
