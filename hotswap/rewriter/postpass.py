"""
hotswap Secondary Rewriter

Runs over text the primary pass (and any other lowering) already produced:
- Neutralizes compiled private-member access guards so the engine can
  write reactive values onto proxy instances
- Appends one finalize-patch call per registration name found in the
  emitted entry point calls
"""

from __future__ import annotations

import ast
import re
from typing import List, Optional

import structlog

from hotswap.config import RewriteSettings
from hotswap.rewriter import snippets
from hotswap.rewriter.buffer import EditBuffer
from hotswap.types import TransformResult

logger = structlog.get_logger(__name__)


# if <cond>: raise TypeError("Cannot read private member ...")
# if <cond>:
#     raise TypeError("Cannot write private member ...")
_PRIVATE_GUARD = re.compile(
    r"^(?P<indent>[ \t]*)if[ \t]+(?P<cond>[^\n]+?)[ \t]*:[ \t]*(?:#[^\n]*)?"
    r"(?:\n[ \t]+)?raise[ \t]+TypeError\(\s*[rRuU]?['\"]"
    r"Cannot (?:read|write|access)\b[^\n]*?\bprivate\b",
    re.MULTILINE,
)

_DEFINE_SITE = re.compile(
    re.escape(snippets.DEFINE)
    + r"\(\s*(?P<literal>'(?:[^'\\\n]|\\.)*'|\"(?:[^\"\\\n]|\\.)*\")"
)


class HotSwapPostPass:
    """Post-pass over already rewritten units."""

    def __init__(self, settings: Optional[RewriteSettings] = None):
        self.settings = settings or RewriteSettings()

    def find_guards(self, code: str) -> List[re.Match]:
        return [
            m for m in _PRIVATE_GUARD.finditer(code)
            if m.group("cond").strip() != "False"
        ]

    def find_registered_names(self, code: str) -> List[str]:
        """Registration names of emitted entry point calls, first seen first."""
        names: dict = {}
        for m in _DEFINE_SITE.finditer(code):
            try:
                name = ast.literal_eval(m.group("literal"))
            except (ValueError, SyntaxError):
                logger.debug("Skipping undecodable registration name", literal=m.group("literal"))
                continue
            if isinstance(name, str):
                names[name] = None
        return list(names)

    def transform(self, code: str, unit_id: str) -> Optional[TransformResult]:
        """
        Post-process one unit.

        Returns:
            The patched unit, or None when nothing needed changing
        """
        buffer = EditBuffer(code)

        guards = self.find_guards(code)
        for m in guards:
            buffer.overwrite(m.start("cond"), m.end("cond"), "False")

        names: List[str] = []
        if snippets.FINALIZE_MARKER not in code:
            names = self.find_registered_names(code)
            if names:
                buffer.append(snippets.finalize_block(names))

        if not buffer:
            return None

        logger.debug(
            "Post-processed unit",
            unit=unit_id,
            guards=len(guards),
            finalized=names,
        )

        return TransformResult(
            code=buffer.to_string(),
            map=buffer.line_map() if self.settings.line_map else None,
            names=names,
        )
