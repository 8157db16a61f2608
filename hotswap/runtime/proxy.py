"""
hotswap Proxy Classes

The proxy is the one class ever bound to a registration name. It subclasses
the first delegate and only adds instance tracking; every later delegate is
patched onto it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from hotswap.config import FrameworkContract

if TYPE_CHECKING:
    from hotswap.runtime.records import RegistrationRecord

# Class attributes the proxy owns itself
PROXY_MARKER = "__hotswap_proxy__"
TEARDOWN_IMPL = "__hotswap_teardown__"


def is_proxy(cls: type) -> bool:
    return isinstance(cls, type) and PROXY_MARKER in cls.__dict__


def build_proxy(record: "RegistrationRecord", contract: Optional[FrameworkContract] = None) -> type:
    """
    Create the proxy class for a record.

    Construction adds the instance to ``record.instances``; the teardown
    hook runs the component's own teardown, then removes the instance.
    """
    contract = contract or FrameworkContract()
    delegate = record.delegate
    instances = record.instances
    teardown = contract.teardown_hook

    def __init__(self, *args, **kwargs):
        super(proxy, self).__init__(*args, **kwargs)
        instances.add(self)

    def _teardown(self, *args, **kwargs):
        try:
            impl = getattr(type(self), TEARDOWN_IMPL, None)
            if impl is None:
                impl = getattr(super(proxy, self), teardown, None)
                result = impl(*args, **kwargs) if callable(impl) else None
            else:
                result = impl(self, *args, **kwargs)
        finally:
            instances.discard(self)
        return result

    _teardown.__name__ = teardown
    _teardown.__qualname__ = f"{delegate.__qualname__}.{teardown}"
    __init__.__qualname__ = f"{delegate.__qualname__}.__init__"

    namespace = {
        "__init__": __init__,
        teardown: _teardown,
        "__module__": delegate.__module__,
        "__qualname__": delegate.__qualname__,
        "__doc__": delegate.__doc__,
        PROXY_MARKER: record.name,
    }
    proxy = type(delegate)(delegate.__name__, (delegate,), namespace)
    return proxy
