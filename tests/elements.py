"""
Minimal component framework used by the tests.

Implements just the capability contract the hot-swap engine relies on:
reactive descriptors, class-level reactive metadata, observed attributes,
styles, a render request and a teardown hook.
"""

from typing import Any, Dict, Optional


class ReactiveProperty:
    """Data descriptor storing its value on the instance."""

    def __init__(self, default: Any = None, *, attribute: bool = False, local: bool = False):
        self.default = default
        self.attribute = attribute
        self.local = local
        self.name: Optional[str] = None

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self
        return obj.__dict__.get(self.name, self.default)

    def __set__(self, obj, value):
        old = obj.__dict__.get(self.name, self.default)
        obj.__dict__[self.name] = value
        if old != value:
            obj.request_update()


def reactive(default: Any = None, *, attribute: bool = False) -> ReactiveProperty:
    return ReactiveProperty(default, attribute=attribute)


def state(default: Any = None) -> ReactiveProperty:
    return ReactiveProperty(default, local=True)


class RenderRoot:
    def __init__(self):
        self.adopted_style_sheets = []


class Element:
    """Base component."""

    observed_attributes: tuple = ()
    styles: tuple = ()

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        properties: Dict[str, ReactiveProperty] = {}
        for klass in reversed(cls.__mro__):
            for key, value in vars(klass).items():
                if isinstance(value, ReactiveProperty):
                    properties[key] = value
        cls.reactive_properties = properties
        cls._finalized = True

    def __init__(self):
        self.update_requests = 0
        self.connected = True
        self.rendered: Optional[str] = None
        self.render_root = RenderRoot()

    def request_update(self):
        self.update_requests += 1
        self.rendered = self.render()

    def render(self) -> str:
        return ""

    def disconnected_callback(self):
        self.connected = False


class CustomElementRegistry:
    """The framework's own bind-once registry, used by unrewritten code."""

    def __init__(self):
        self._classes: Dict[str, type] = {}

    def define(self, name: str, cls: type) -> None:
        if name in self._classes:
            raise ValueError(f"'{name}' has already been used with this registry")
        self._classes[name] = cls

    def get(self, name: str) -> Optional[type]:
        return self._classes.get(name)


custom_elements = CustomElementRegistry()


def custom_element(name: str):
    def decorator(cls):
        custom_elements.define(name, cls)
        return cls
    return decorator
