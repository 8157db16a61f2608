"""
hotswap Import Hook

Applies both rewrite passes to modules as they are imported, for hosts that
have no build pipeline of their own.

Each rewritten module gets:
- ``__hotswap_env__``: the environment its registrations go to
- ``__hot__``: a HotContext through which reloads are accepted

The rewritten text is registered in linecache so that tracebacks and
source inspection match the code that actually runs.
"""

from __future__ import annotations

import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import linecache
import os
import sys
import sysconfig
from types import ModuleType
from typing import Any, Callable, List, Optional, Sequence

import structlog

from hotswap.plugin import HotSwapPlugin
from hotswap.rewriter import snippets
from hotswap.runtime.environment import HotEnvironment, get_environment

logger = structlog.get_logger(__name__)


class HotContext:
    """
    Minimal update-delivery context for one module.

    Accept callbacks are registered while the module executes and run
    once the host has re-executed it.
    """

    def __init__(
        self,
        unit_id: str,
        on_invalidate: Optional[Callable[[str, str], None]] = None,
    ):
        self.unit_id = unit_id
        self.invalidated: Optional[str] = None
        self._accept_callbacks: List[Callable[..., Any]] = []
        self._on_invalidate = on_invalidate

    @property
    def accepted(self) -> bool:
        return bool(self._accept_callbacks)

    def accept(self, callback: Optional[Callable[..., Any]] = None) -> None:
        if callback is not None:
            self._accept_callbacks.append(callback)

    def invalidate(self, reason: str = "") -> None:
        """Request a full reload of the process."""
        self.invalidated = reason
        logger.warning("Module invalidated", unit=self.unit_id, reason=reason)
        if self._on_invalidate is not None:
            self._on_invalidate(self.unit_id, reason)

    def reset(self) -> None:
        self.invalidated = None
        self._accept_callbacks.clear()

    def notify(self, module: Optional[ModuleType] = None) -> bool:
        """
        Run accept callbacks after a re-execution.

        Returns:
            False when the update ended in invalidation
        """
        for callback in list(self._accept_callbacks):
            try:
                callback(module)
            except Exception as e:
                logger.error("Accept callback failed", unit=self.unit_id, error=str(e))
                self.invalidate(f"Accept callback failed: {e}")
        return self.invalidated is None


def register_source(path: str, code: str) -> None:
    """Make linecache serve the rewritten text for path."""
    linecache.cache[path] = (len(code), None, code.splitlines(keepends=True), path)


class HotSwapLoader(importlib.machinery.SourceFileLoader):
    """Source loader that rewrites before compiling and never caches bytecode."""

    def __init__(
        self,
        fullname: str,
        path: str,
        plugin: HotSwapPlugin,
        env: HotEnvironment,
        on_invalidate: Optional[Callable[[str, str], None]] = None,
    ):
        super().__init__(fullname, path)
        self.plugin = plugin
        self.env = env
        self.on_invalidate = on_invalidate

    def source_to_code(self, data, path, *args, **kwargs):
        source = importlib.util.decode_source(data)
        result = self.plugin.process(source, path)
        if result is None:
            return super().source_to_code(data, path, *args, **kwargs)

        register_source(path, result.code)
        logger.debug("Compiled rewritten module", module=self.name, names=result.names)
        return compile(result.code, path, "exec", dont_inherit=True)

    def get_code(self, fullname):
        # Rewritten output depends on settings, not only on the source
        path = self.get_filename(fullname)
        return self.source_to_code(self.get_data(path), path)

    def exec_module(self, module: ModuleType) -> None:
        module.__dict__.setdefault(snippets.ENV, self.env)

        hot = module.__dict__.get(snippets.HOT)
        if not isinstance(hot, HotContext):
            hot = HotContext(self.path, self.on_invalidate)
            module.__dict__[snippets.HOT] = hot
        hot.reset()

        super().exec_module(module)


def _stdlib_paths() -> List[str]:
    paths = sysconfig.get_paths()
    return sorted({os.path.abspath(paths[key]) for key in ("stdlib", "platstdlib") if paths.get(key)})


def _within(origin: str, roots: Sequence[str]) -> bool:
    origin = os.path.abspath(origin)
    return any(os.path.commonpath([origin, root]) == root for root in roots)


class HotSwapFinder(importlib.abc.MetaPathFinder):
    """Meta path finder handing source modules under the roots to HotSwapLoader."""

    def __init__(
        self,
        plugin: Optional[HotSwapPlugin] = None,
        env: Optional[HotEnvironment] = None,
        roots: Optional[Sequence[str]] = None,
        on_invalidate: Optional[Callable[[str, str], None]] = None,
    ):
        self.plugin = plugin or HotSwapPlugin()
        self.env = env if env is not None else get_environment()
        self.roots = [os.path.abspath(r) for r in roots] if roots else []
        self.on_invalidate = on_invalidate
        self.stdlib = _stdlib_paths()

    def _under_roots(self, origin: str) -> bool:
        if not self.roots:
            return True
        return _within(origin, self.roots)

    def find_spec(self, fullname, path, target=None):
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or spec.origin is None:
            return None
        if not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None
        if _within(spec.origin, self.stdlib) or not self._under_roots(spec.origin):
            return None
        if not self.plugin.should_process(spec.origin):
            return None

        spec.loader = HotSwapLoader(
            fullname, spec.origin, self.plugin, self.env, self.on_invalidate
        )
        return spec


def install_import_hook(
    plugin: Optional[HotSwapPlugin] = None,
    env: Optional[HotEnvironment] = None,
    roots: Optional[Sequence[str]] = None,
    on_invalidate: Optional[Callable[[str, str], None]] = None,
) -> HotSwapFinder:
    """
    Rewrite modules under roots (default: everything the plugin accepts)
    as they are imported.
    """
    finder = HotSwapFinder(plugin, env, roots, on_invalidate)
    sys.meta_path.insert(0, finder)
    logger.info("Import hook installed", roots=finder.roots)
    return finder


def uninstall_import_hook(finder: HotSwapFinder) -> None:
    if finder in sys.meta_path:
        sys.meta_path.remove(finder)
        logger.info("Import hook removed", roots=finder.roots)


def reload_module(module: ModuleType) -> bool:
    """
    Re-execute a module and deliver the accept notification.

    Returns:
        True when the update was applied in place, False when it ended in
        a full reload request
    """
    module = importlib.reload(module)
    hot = module.__dict__.get(snippets.HOT)
    if not isinstance(hot, HotContext):
        return True
    return hot.notify(module)
