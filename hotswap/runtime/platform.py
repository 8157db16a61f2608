"""
hotswap Platform Registry

The name-to-class store the engine binds proxies into. A name can be bound
at most once; that constraint is why proxies exist at all.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, runtime_checkable

from hotswap.exceptions import AlreadyDefinedError, ComponentNotFoundError


# ============================================
# Registry protocol
# ============================================

@runtime_checkable
class PlatformRegistry(Protocol):
    """Protocol for bind-once component registries."""

    def define(self, name: str, cls: type) -> None:
        """Bind name to cls. Must raise if name is already bound."""
        ...

    def get(self, name: str) -> Optional[type]:
        """Class bound to name, or None."""
        ...


class BindOnceRegistry:
    """
    In-process reference registry.

    Tracks how many binds it accepted, which is what the single-bind
    guarantee is checked against.
    """

    def __init__(self):
        self._classes: Dict[str, type] = {}
        self.bind_count = 0

    def define(self, name: str, cls: type) -> None:
        if name in self._classes:
            raise AlreadyDefinedError(name, self._classes[name])
        self._classes[name] = cls
        self.bind_count += 1

    def get(self, name: str) -> Optional[type]:
        return self._classes.get(name)

    def __getitem__(self, name: str) -> type:
        try:
            return self._classes[name]
        except KeyError:
            raise ComponentNotFoundError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def __len__(self) -> int:
        return len(self._classes)

    def names(self) -> List[str]:
        return list(self._classes)
