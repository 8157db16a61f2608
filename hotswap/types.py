"""
hotswap Types

Core dataclasses and enums shared by the rewriter and the runtime:
rewrite-time matches, property snapshots and transform results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class MatchKind(str, Enum):
    """Constructs the pattern matcher recognizes."""

    REGISTRATION_CALL = "registration-call"
    DECORATOR_REGISTRATION = "decorator-registration"
    REACTIVE_FIELD = "reactive-field"


class FieldFlavor(str, Enum):
    """The two reactive field declaration flavors."""

    PROPERTY = "property"  # Observed, may reflect to an attribute
    STATE = "state"        # Local-only state


class ValueKind(str, Enum):
    """Coarse kind tag of a captured literal value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    BIGINT = "bigint"
    SYMBOL = "symbol"
    UNDEFINED = "undefined"
    OBJECT = "object"
    FUNCTION = "function"

    @classmethod
    def of(cls, value: Any) -> "ValueKind":
        """Classify a Python value."""
        if value is None:
            return cls.UNDEFINED
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, int):
            return cls.NUMBER if abs(value) <= MAX_SAFE_INTEGER else cls.BIGINT
        if isinstance(value, float):
            return cls.NUMBER
        if callable(value):
            return cls.FUNCTION
        return cls.OBJECT


MAX_SAFE_INTEGER = 2 ** 53 - 1


@dataclass
class Match:
    """A construct found in a unit of source text. Rewrite-time only."""

    kind: MatchKind
    start: int
    end: int
    name: str
    class_name: Optional[str] = None

    # Decorator registrations: offset right after the class block
    insert_at: Optional[int] = None

    # Reactive fields
    initializer: Optional[str] = None
    flavor: Optional[FieldFlavor] = None
    owner: Optional[str] = None

    @property
    def span(self) -> Tuple[int, int]:
        return (self.start, self.end)


@dataclass
class PropertySnapshot:
    """
    Literal initial value of a reactive field, captured at rewrite time.

    ``has_value`` is False when the field had no initializer or the
    initializer could not be evaluated; such snapshots are never written
    back onto instances.
    """

    name: str
    kind: ValueKind = ValueKind.UNDEFINED
    value: Any = None
    has_value: bool = False
    owner: Optional[str] = None
    flavor: FieldFlavor = FieldFlavor.PROPERTY

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dict literal embedded in rewritten code."""
        data: Dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "flavor": self.flavor.value,
        }
        if self.owner:
            data["owner"] = self.owner
        if self.has_value:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertySnapshot":
        """Create from an embedded dict literal."""
        return cls(
            name=data["name"],
            kind=ValueKind(data.get("kind", ValueKind.UNDEFINED.value)),
            value=data.get("value"),
            has_value="value" in data,
            owner=data.get("owner"),
            flavor=FieldFlavor(data.get("flavor", FieldFlavor.PROPERTY.value)),
        )


@dataclass
class LineMap:
    """
    Maps generated line numbers back to original line numbers (1-based).

    Lines that only exist in the generated text map to None.
    """

    lines: List[Optional[int]] = field(default_factory=list)

    def original_line(self, generated_line: int) -> Optional[int]:
        if generated_line < 1 or generated_line > len(self.lines):
            return None
        return self.lines[generated_line - 1]

    def generated_line(self, original_line: int) -> Optional[int]:
        for index, line in enumerate(self.lines, start=1):
            if line == original_line:
                return index
        return None

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class TransformResult:
    """Output of a rewrite pass over one unit."""

    code: str
    map: Optional[LineMap] = None
    names: List[str] = field(default_factory=list)
    snapshots: List[PropertySnapshot] = field(default_factory=list)
