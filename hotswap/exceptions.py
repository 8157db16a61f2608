"""
hotswap Exceptions

Errors raised at the edges of the hot-swap system. Everything that happens
while patching live components is logged and contained instead; these are
only raised for contract violations.
"""

from __future__ import annotations

from typing import Optional


class HotSwapError(Exception):
    """Base class for hotswap errors."""


class AlreadyDefinedError(HotSwapError):
    """Raised by the platform registry when a name is bound a second time."""

    def __init__(self, name: str, existing: Optional[type] = None):
        self.name = name
        self.existing = existing
        super().__init__(f"Component name '{name}' has already been defined")


class ComponentNotFoundError(HotSwapError, LookupError):
    """Raised when looking up a name that was never defined."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Component '{name}' is not defined")
