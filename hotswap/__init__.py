"""
hotswap - hot-swapping for components bound in bind-once registries

A registration name can only be bound once, so hotswap binds a stable proxy
class instead and patches it in place on every update:
- Rewriter: routes registration calls and decorators through the runtime
- Runtime: owns proxies, checks compatibility, patches or escalates
- Host adapter: per-unit hooks and an import hook
"""

__version__ = "0.1.0"

from hotswap.config import HotSwapSettings, get_settings, reset_settings, set_settings
from hotswap.exceptions import AlreadyDefinedError, ComponentNotFoundError, HotSwapError
from hotswap.plugin import HotSwapPlugin
from hotswap.runtime import HotEnvironment, bootstrap, get_environment, reset_environment
from hotswap.types import PropertySnapshot, TransformResult

__all__ = [
    "AlreadyDefinedError",
    "ComponentNotFoundError",
    "HotEnvironment",
    "HotSwapError",
    "HotSwapPlugin",
    "HotSwapSettings",
    "PropertySnapshot",
    "TransformResult",
    "bootstrap",
    "get_environment",
    "get_settings",
    "reset_environment",
    "reset_settings",
    "set_settings",
]
