"""
hotswap Compatibility Check

Decides whether a new delegate can be patched onto a live proxy. Three
axes are compared, always in this order:
- Constructor body (instances are never re-constructed)
- Reactive field schema (accessors are never re-installed)
- Observed attributes (read by the platform only at bind time)
"""

from __future__ import annotations

import ast
import hashlib
import inspect
import re
import textwrap
import types
from typing import Iterable, List, Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)

# self.name = ..., self.name: T = ..., but not self.name == ...
_FIELD_ASSIGNMENT = re.compile(r"self\.(\w+)\s*(?::[^=\n]*)?=(?!=)")


def constructor_body(cls: type) -> Optional[str]:
    """
    Normalized body text of the class's own ``__init__``.

    Returns None when the class does not define a constructor itself. When
    the source cannot be read, a fingerprint of the compiled code is
    returned instead, so that changes are still noticed.
    """
    init = cls.__dict__.get("__init__")
    if init is None:
        return None

    func = inspect.unwrap(getattr(init, "__func__", init))
    code = getattr(func, "__code__", None)
    if code is None:
        return repr(init)

    try:
        return _body_text(textwrap.dedent(inspect.getsource(func)))
    except (OSError, TypeError, SyntaxError, IndexError) as e:
        logger.debug(
            "Constructor source unavailable, fingerprinting code",
            cls=cls.__qualname__,
            error=str(e),
        )
        return _code_fingerprint(code)


def _body_text(source: str) -> str:
    func = ast.parse(source).body[0]
    if not isinstance(func, (ast.FunctionDef, ast.AsyncFunctionDef)):
        raise TypeError("not a function definition")

    lines = source.splitlines()
    first = func.body[0]
    start = first.lineno - 1
    body = lines[start:func.end_lineno]
    if lines[start][:first.col_offset].strip():
        # Body on the header line
        body[0] = lines[start][first.col_offset:]

    text = textwrap.dedent("\n".join(body))
    return "\n".join(line.rstrip() for line in text.splitlines() if line.strip())


def _code_fingerprint(code: types.CodeType) -> str:
    digest = hashlib.sha1()

    def feed(c: types.CodeType) -> None:
        digest.update(c.co_code)
        digest.update(repr(c.co_names).encode())
        for const in c.co_consts:
            if isinstance(const, types.CodeType):
                feed(const)
            else:
                digest.update(repr(const).encode())

    feed(code)
    return f"<code {digest.hexdigest()}>"


def assigned_fields(body: Optional[str]) -> List[str]:
    """Fields assigned through ``self.<field> = ...`` in a constructor body."""
    if not body:
        return []
    return list(dict.fromkeys(_FIELD_ASSIGNMENT.findall(body)))


def _diff(old: Sequence[str], new: Sequence[str]):
    old_set, new_set = set(old), set(new)
    added = [k for k in new if k not in old_set]
    removed = [k for k in old if k not in new_set]
    return added, removed


# === Axes ===

def constructor_change(old: Optional[str], new: Optional[str]) -> Optional[str]:
    """Reason string when the constructor bodies differ, else None."""
    if old == new:
        return None

    added, removed = _diff(assigned_fields(old), assigned_fields(new))
    details = []
    if added:
        details.append("added fields: " + ", ".join(added))
    if removed:
        details.append("removed fields: " + ", ".join(removed))
    if not details:
        details.append("constructor body changed")
    return "Constructor changed (" + "; ".join(details) + ")"


def _key_change(label: str, old: Iterable[str], new: Iterable[str]) -> Optional[str]:
    added, removed = _diff(list(dict.fromkeys(old)), list(dict.fromkeys(new)))
    if not added and not removed:
        return None

    details = []
    if added:
        details.append("added: " + ", ".join(added))
    if removed:
        details.append("removed: " + ", ".join(removed))
    return f"{label} changed (" + "; ".join(details) + ")"


def reactive_schema_change(old: Iterable[str], new: Iterable[str]) -> Optional[str]:
    return _key_change("Reactive properties", old, new)


def observed_attributes_change(old: Iterable[str], new: Iterable[str]) -> Optional[str]:
    return _key_change("Observed attributes", old, new)


def check_compatibility(old, new) -> List[str]:
    """
    Compare two class profiles.

    Returns:
        Reasons blocking a patch, in axis order; empty when patchable
    """
    reasons = [
        constructor_change(old.constructor, new.constructor),
        reactive_schema_change(old.reactive_keys, new.reactive_keys),
        observed_attributes_change(old.observed_attributes, new.observed_attributes),
    ]
    return [reason for reason in reasons if reason]
