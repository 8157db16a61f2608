"""
hotswap Source Rewriter

Routes the registrations of one unit through the runtime entry point:
- Direct registration calls become entry point calls
- Registration decorators become inert comments plus an entry point call
  right after the class
- Reactive field initializers are captured as property snapshots
- A runtime bootstrap and an update-acceptance hook are added once per unit
"""

from __future__ import annotations

import io
import re
import tokenize
from typing import List, Optional

import structlog

from hotswap.config import RewriteSettings
from hotswap.rewriter import snippets
from hotswap.rewriter.buffer import EditBuffer
from hotswap.rewriter.literals import capture_snapshot
from hotswap.rewriter.matcher import PatternMatcher
from hotswap.types import MatchKind, PropertySnapshot, TransformResult

logger = structlog.get_logger(__name__)

_CODING_LINE = re.compile(r"^[ \t\f]*#.*?coding[:=]")


class HotSwapRewriter:
    """
    Primary rewrite pass.

    The pass is a pure function of (code, unit_id): it performs no I/O and
    never executes the code it produces.
    """

    def __init__(self, settings: Optional[RewriteSettings] = None):
        self.settings = settings or RewriteSettings()
        self.matcher = PatternMatcher(self.settings)

    def transform(self, code: str, unit_id: str) -> Optional[TransformResult]:
        """
        Rewrite one unit.

        Args:
            code: Source text of the unit
            unit_id: Stable identifier of the unit (usually its path)

        Returns:
            The rewritten unit, or None when it registers nothing
        """
        if not self.matcher.is_applicable(code):
            return None

        matches = self.matcher.find_matches(code)
        registrations = [m for m in matches if m.kind != MatchKind.REACTIVE_FIELD]
        if not registrations:
            return None

        dependencies: List[str] = []
        if self.settings.forward_dependencies:
            dependencies = self.matcher.find_relative_imports(code)

        buffer = EditBuffer(code)

        for match in registrations:
            call = snippets.define_call(match.name, match.class_name, unit_id, dependencies)

            if match.kind == MatchKind.REGISTRATION_CALL:
                buffer.overwrite(match.start, match.end, call)
                continue

            decorator = code[match.start:match.end]
            buffer.overwrite(match.start, match.end, snippets.removed_decorator(decorator))
            prefix = "" if match.insert_at == 0 or code[match.insert_at - 1] == "\n" else "\n"
            buffer.insert(match.insert_at, f"{prefix}{call}\n")

        snapshots: List[PropertySnapshot] = [
            capture_snapshot(match, unit_id)
            for match in matches
            if match.kind == MatchKind.REACTIVE_FIELD
        ]

        header_end = find_header_end(code)
        prefix = "" if header_end == 0 or code[header_end - 1] == "\n" else "\n"
        buffer.insert(header_end, prefix + snippets.bootstrap(unit_id, snapshots))
        buffer.append(snippets.accept_hook(unit_id))

        names = list(dict.fromkeys(m.name for m in registrations))
        logger.debug(
            "Rewrote unit",
            unit=unit_id,
            registrations=len(registrations),
            reactive_fields=len(snapshots),
        )

        return TransformResult(
            code=buffer.to_string(),
            map=buffer.line_map() if self.settings.line_map else None,
            names=names,
            snapshots=snapshots,
        )


def find_header_end(code: str) -> int:
    """
    Offset where generated module-level code may start: after a shebang or
    encoding comment, the module docstring and ``from __future__`` imports.
    """
    lines = code.splitlines(keepends=True)
    end = 0
    for index, line in enumerate(lines[:2]):
        if (index == 0 and line.startswith("#!")) or _CODING_LINE.match(line):
            end += len(line)
        else:
            break

    line_starts = [0]
    for index, char in enumerate(code):
        if char == "\n":
            line_starts.append(index + 1)

    def offset(row: int, col: int) -> int:
        return min(line_starts[row - 1] + col, len(code))

    statement: List[tokenize.TokenInfo] = []
    first_statement = True
    try:
        for tok in tokenize.generate_tokens(io.StringIO(code).readline):
            if tok.type in (tokenize.COMMENT, tokenize.NL, tokenize.ENCODING):
                continue
            if tok.type == tokenize.ENDMARKER:
                break
            if tok.type != tokenize.NEWLINE:
                statement.append(tok)
                continue

            is_docstring = first_statement and all(
                t.type == tokenize.STRING for t in statement
            )
            is_future = (
                len(statement) >= 2
                and statement[0].string == "from"
                and statement[1].string == "__future__"
            )
            first_statement = False
            statement = []
            if not (is_docstring or is_future):
                break
            end = max(end, offset(*tok.end))
    except (tokenize.TokenError, SyntaxError) as e:
        logger.debug("Tokenizing unit header failed", error=str(e))

    return end
