"""
hotswap Literal Capture

Best-effort evaluation of reactive field initializers. Only the safe
literal subset is evaluated (strings, numbers, booleans, None and
containers of those); anything else yields an absent value.
"""

from __future__ import annotations

import ast
from typing import Any, Optional, Tuple

import structlog

from hotswap.types import FieldFlavor, Match, PropertySnapshot, ValueKind

logger = structlog.get_logger(__name__)

# Keyword accepted in place of the first positional argument
DEFAULT_KEYWORD = "default"

_ABSENT: Tuple[bool, Any] = (False, None)


class LiteralEvaluationError(ValueError):
    """Raised when an initializer is not a supported literal."""


def evaluate_initializer(arguments: str) -> Tuple[bool, Any]:
    """
    Evaluate the initializer of a reactive factory call.

    Args:
        arguments: Call text following the factory's opening parenthesis,
            up to the end of the line (closing parenthesis and trailing
            comment included)

    Returns:
        ``(True, value)`` for a literal initializer, ``(False, None)`` when
        the call has no initializer

    Raises:
        LiteralEvaluationError: If the initializer is not a safe literal
    """
    try:
        tree = ast.parse("_(" + arguments, mode="eval")
    except SyntaxError as e:
        raise LiteralEvaluationError(f"unterminated or invalid call: {e.msg}") from e

    call = tree.body
    if not isinstance(call, ast.Call):
        raise LiteralEvaluationError("not a call")

    node: Optional[ast.AST] = call.args[0] if call.args else None
    if node is None:
        for keyword in call.keywords:
            if keyword.arg == DEFAULT_KEYWORD:
                node = keyword.value
                break
    if node is None:
        return _ABSENT

    try:
        value = ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError) as e:
        raise LiteralEvaluationError(f"not a literal: {ast.unparse(node)}") from e

    # The value is embedded back as source, so it must survive repr()
    try:
        round_trip = ast.literal_eval(repr(value))
    except (ValueError, SyntaxError) as e:
        raise LiteralEvaluationError(f"value has no literal form: {value!r}") from e
    if round_trip != value:
        raise LiteralEvaluationError(f"value does not round-trip: {value!r}")

    return True, value


def capture_snapshot(match: Match, unit_id: str = "") -> PropertySnapshot:
    """Build the property snapshot for a reactive field match."""
    snapshot = PropertySnapshot(
        name=match.name,
        owner=match.owner,
        flavor=match.flavor or FieldFlavor.PROPERTY,
    )

    try:
        arguments = match.initializer if match.initializer is not None else ")"
        has_value, value = evaluate_initializer(arguments)
    except LiteralEvaluationError as e:
        logger.warning(
            "Could not evaluate reactive field initializer",
            field=match.name,
            owner=match.owner,
            unit=unit_id,
            error=str(e),
        )
        return snapshot

    if has_value:
        snapshot.value = value
        snapshot.has_value = True
        snapshot.kind = ValueKind.of(value)

    return snapshot
