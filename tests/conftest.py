"""
Shared fixtures for the hotswap tests.
"""

import textwrap
from typing import Any, Dict, Optional, Set

import pytest

from hotswap.config import HotSwapSettings, reset_settings
from hotswap.loader import HotContext, register_source
from hotswap.plugin import HotSwapPlugin
from hotswap.runtime import BindOnceRegistry, HotEnvironment, reset_environment


class UnitRunner:
    """
    Evaluates units the way a host pipeline would: rewrite, post-process,
    execute with the environment injected, then deliver the accept
    notification when the unit is re-evaluated.
    """

    def __init__(self, plugin: HotSwapPlugin, env: HotEnvironment):
        self.plugin = plugin
        self.env = env
        self.contexts: Dict[str, HotContext] = {}
        self.evaluated: Set[str] = set()
        self.last_code: Optional[str] = None

    def run(self, source: str, unit_id: str = "/project/counter.py", deliver: bool = True) -> Dict[str, Any]:
        source = textwrap.dedent(source)
        result = self.plugin.process(source, unit_id)
        code = result.code if result is not None else source
        self.last_code = code
        register_source(unit_id, code)

        hot = self.contexts.setdefault(unit_id, HotContext(unit_id))
        hot.reset()
        updating = unit_id in self.evaluated

        namespace: Dict[str, Any] = {
            "__name__": "unit_" + unit_id.strip("/").replace("/", "_").replace(".", "_"),
            "__file__": unit_id,
            "__hotswap_env__": self.env,
            "__hot__": hot,
        }
        exec(compile(code, unit_id, "exec"), namespace)
        self.evaluated.add(unit_id)

        if updating and deliver:
            hot.notify()
        return namespace

    def context(self, unit_id: str = "/project/counter.py") -> HotContext:
        return self.contexts[unit_id]


@pytest.fixture(autouse=True)
def clean_globals():
    """Reset process-wide settings and environment around every test."""
    reset_settings()
    reset_environment()
    yield
    reset_settings()
    reset_environment()


@pytest.fixture
def settings():
    """Default settings, independent of the process environment."""
    return HotSwapSettings(_env_file=None)


@pytest.fixture
def platform():
    """A fresh bind-once registry."""
    return BindOnceRegistry()


@pytest.fixture
def env(platform, settings):
    """A fresh hot-swap environment."""
    return HotEnvironment(platform_registry=platform, settings=settings)


@pytest.fixture
def plugin(settings):
    """Host adapter with default settings."""
    return HotSwapPlugin(settings)


@pytest.fixture
def runner(plugin, env):
    """Runner evaluating units against the fresh environment."""
    return UnitRunner(plugin, env)


@pytest.fixture
def events(env):
    """Events emitted by the environment's engine."""
    captured = []
    env.on_event(captured.append)
    return captured
