"""
hotswap Pattern Matcher

Locates registration sites and reactive field declarations in one unit of
Python source text. Matching is regex and token based, never a full parse:
what is matched is sound, but unusual formatting (multi-line decorators,
registration calls built dynamically) can go unnoticed.
"""

from __future__ import annotations

import bisect
import io
import re
import tokenize
from typing import List, Optional, Pattern

import structlog

from hotswap.config import RewriteSettings
from hotswap.types import FieldFlavor, Match, MatchKind

logger = structlog.get_logger(__name__)


IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
QUOTED_NAME = r"""(?P<quote>['"])(?P<name>[^'"\n]+)(?P=quote)"""

# Blank lines, comments and other decorators allowed between a
# registration decorator and its class
_CLASS_AFTER_DECORATOR = re.compile(
    r"(?:[ \t]*(?:#[^\n]*)?\n|@[^\n]*\n)*class[ \t]+(?P<cls>" + IDENT + r")"
)

_TOP_LEVEL_CLASS = re.compile(r"^class[ \t]+(?P<cls>" + IDENT + r")", re.MULTILINE)

_RELATIVE_IMPORT = re.compile(
    r"^[ \t]*from[ \t]+(?P<module>\.+[\w.]*)[ \t]+import[ \t]+"
    r"(?P<names>\([^)]*\)|[^\n#;]+)",
    re.MULTILINE,
)

_IMPORT_ALIAS = re.compile(
    r"^(?P<name>" + IDENT + r")(?:\s+as\s+(?P<alias>" + IDENT + r"))?$"
)


def _alternation(names: List[str]) -> str:
    return "|".join(re.escape(n) for n in sorted(set(names), key=len, reverse=True))


def _cut_at_semicolon(arguments: str) -> str:
    """Drop any statement that follows the factory call on the same line."""
    text = "_(" + arguments
    try:
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if token.type == tokenize.OP and token.string == ";":
                return text[2:token.start[1]].rstrip()
    except (tokenize.TokenError, SyntaxError):
        pass  # unterminated call, evaluated as is
    return arguments


class PatternMatcher:
    """
    Finds the constructs the rewriter acts on.

    Recognizes:
    - Direct registration calls: [module.]custom_elements.define("x-tag", Cls)
    - Decorator registrations paired with a module-level class
    - Reactive fields: name[: annotation] = reactive(...) / state(...)
    - Relative imports (identifiers forwarded as dependencies)
    """

    def __init__(self, settings: Optional[RewriteSettings] = None):
        self.settings = settings or RewriteSettings()
        s = self.settings

        self._define_re: Pattern[str] = re.compile(
            r"(?<![\w.])(?:" + IDENT + r"\.)*" + re.escape(s.define_callee)
            + r"\(\s*" + QUOTED_NAME + r"\s*,\s*(?P<cls>" + IDENT + r")\s*,?\s*\)"
        )
        self._decorator_re: Pattern[str] = re.compile(
            r"^(?P<indent>[ \t]*)(?P<deco>@(?:" + IDENT + r"\.)*" + re.escape(s.decorator)
            + r"\(\s*" + QUOTED_NAME + r"\s*\))[ \t]*(?:#[^\n]*)?$",
            re.MULTILINE,
        )

        self._property_factories = set(s.property_factories)
        factories = _alternation(list(s.property_factories) + list(s.state_factories))
        self._field_re: Optional[Pattern[str]] = None
        if factories:
            self._field_re = re.compile(
                r"^(?P<indent>[ \t]+)(?P<name>" + IDENT + r")[ \t]*"
                r"(?::[ \t]*(?P<annotation>[^=\n]+?))?[ \t]*=[ \t]*"
                r"(?:" + IDENT + r"\.)*(?P<factory>" + factories + r")\("
                r"(?P<args>[^\n]*)$",
                re.MULTILINE,
            )

        modules = _alternation(s.framework_modules)
        self._framework_import_re: Optional[Pattern[str]] = None
        if modules:
            self._framework_import_re = re.compile(
                r"^[ \t]*(?:from[ \t]+(?:" + modules + r")(?:\.[\w.]+)?[ \t]+import\b"
                r"|import[ \t]+(?:" + modules + r")\b)",
                re.MULTILINE,
            )

    # === Applicability ===

    def is_applicable(self, code: str) -> bool:
        """
        Cheap pre-filter: does the unit mention a registration construct or
        import the component framework? A True answer is no guarantee that
        anything will match.
        """
        if self.settings.define_callee in code:
            return True
        if "@" in code and self._decorator_re.search(code):
            return True
        if self._framework_import_re and self._framework_import_re.search(code):
            return True
        return False

    # === Registration sites ===

    def find_registration_calls(self, code: str) -> List[Match]:
        """Find direct registration calls."""
        return [
            Match(
                kind=MatchKind.REGISTRATION_CALL,
                start=m.start(),
                end=m.end(),
                name=m.group("name"),
                class_name=m.group("cls"),
            )
            for m in self._define_re.finditer(code)
        ]

    def find_decorator_registrations(self, code: str) -> List[Match]:
        """
        Find registration decorators and the class each one decorates.

        A decorator only yields a match when a module-level class follows it
        and the class block can be delimited; otherwise it is left alone.
        """
        matches: List[Match] = []

        for m in self._decorator_re.finditer(code):
            if m.group("indent"):
                logger.debug("Skipping nested registration decorator", name=m.group("name"))
                continue

            line_end = code.find("\n", m.end())
            if line_end == -1:
                continue
            following = _CLASS_AFTER_DECORATOR.match(code, line_end + 1)
            if not following:
                logger.debug("No class follows registration decorator", name=m.group("name"))
                continue

            class_start = code.rfind("class", following.start(), following.start("cls"))
            insert_at = find_class_end(code, class_start)
            if insert_at is None:
                logger.warning(
                    "Could not delimit decorated class, leaving registration as is",
                    name=m.group("name"),
                    class_name=following.group("cls"),
                )
                continue

            matches.append(Match(
                kind=MatchKind.DECORATOR_REGISTRATION,
                start=m.start("deco"),
                end=m.end("deco"),
                name=m.group("name"),
                class_name=following.group("cls"),
                insert_at=insert_at,
            ))

        return matches

    # === Reactive fields ===

    def find_reactive_fields(self, code: str) -> List[Match]:
        """Find reactive field declarations inside module-level classes."""
        if self._field_re is None:
            return []

        class_offsets: List[int] = []
        class_names: List[str] = []
        for m in _TOP_LEVEL_CLASS.finditer(code):
            class_offsets.append(m.start())
            class_names.append(m.group("cls"))

        matches: List[Match] = []
        for m in self._field_re.finditer(code):
            index = bisect.bisect_right(class_offsets, m.start()) - 1
            if index < 0:
                continue  # Not inside a class body

            factory = m.group("factory")
            flavor = (
                FieldFlavor.PROPERTY
                if factory in self._property_factories
                else FieldFlavor.STATE
            )
            matches.append(Match(
                kind=MatchKind.REACTIVE_FIELD,
                start=m.start("name"),
                end=m.end(),
                name=m.group("name"),
                initializer=_cut_at_semicolon(m.group("args")),
                flavor=flavor,
                owner=class_names[index],
            ))

        return matches

    # === Dependencies ===

    def find_relative_imports(self, code: str) -> List[str]:
        """Identifiers bound by relative (same-project) imports, in order."""
        found: dict = {}
        for m in _RELATIVE_IMPORT.finditer(code):
            names = re.sub(r"#[^\n]*", "", m.group("names")).strip().strip("()")
            for part in names.split(","):
                part = " ".join(part.split())
                if not part or part == "*":
                    continue
                alias = _IMPORT_ALIAS.match(part)
                if alias:
                    found[alias.group("alias") or alias.group("name")] = None
        return list(found)

    # === All ===

    def find_matches(self, code: str) -> List[Match]:
        """Every registration and reactive field match, ordered by offset."""
        matches = (
            self.find_registration_calls(code)
            + self.find_decorator_registrations(code)
            + self.find_reactive_fields(code)
        )
        matches.sort(key=lambda match: match.start)
        return matches


def find_class_end(code: str, class_start: int) -> Optional[int]:
    """
    Offset right after the block of the class starting at ``class_start``.

    The class must start at column 0. Returns None when the header's
    brackets never balance or the block cannot be tokenized.
    """
    line_starts = [0]
    for index, char in enumerate(code):
        if char == "\n":
            line_starts.append(index + 1)
    first_line = bisect.bisect_right(line_starts, class_start) - 1

    def offset(row: int, col: int) -> int:
        return min(line_starts[first_line + row - 1] + col, len(code))

    readline = io.StringIO(code[class_start:]).readline
    depth = 0
    header_done = False
    block_end: Optional[int] = None

    try:
        for tok in tokenize.generate_tokens(readline):
            if tok.type == tokenize.NEWLINE:
                block_end = offset(*tok.end)
                if not header_done:
                    header_done = True
                    continue
                if depth == 0:
                    break
            elif tok.type == tokenize.INDENT:
                if not header_done:
                    continue
                depth += 1
            elif tok.type == tokenize.DEDENT:
                depth -= 1
                if depth == 0:
                    break
            elif tok.type == tokenize.ENDMARKER:
                break
            elif header_done and depth == 0 and tok.type not in (
                tokenize.NL, tokenize.COMMENT
            ):
                # One-line class followed by the next statement
                break
    except (tokenize.TokenError, SyntaxError) as e:
        logger.debug("Tokenizing class block failed", error=str(e))
        return None

    if not header_done:
        return None
    return block_end
