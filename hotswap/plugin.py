"""
hotswap Host Adapter

The object a host pipeline calls once per unit. It filters units, runs the
primary rewrite and, after any other lowering the host applies, the
post-pass.
"""

from __future__ import annotations

import fnmatch
import posixpath
from typing import Any, Dict, Optional

import structlog

from hotswap.config import HotSwapSettings, get_settings
from hotswap.rewriter.postpass import HotSwapPostPass
from hotswap.rewriter.transform import HotSwapRewriter
from hotswap.types import LineMap, TransformResult

logger = structlog.get_logger(__name__)

THIRD_PARTY_DIRS = ("site-packages", "dist-packages")


def compose_line_maps(first: Optional[LineMap], second: Optional[LineMap]) -> Optional[LineMap]:
    """Line map of two passes applied one after the other."""
    if first is None or second is None:
        return second if second is not None else first
    return LineMap(lines=[
        first.original_line(line) if line is not None else None
        for line in second.lines
    ])


class HotSwapPlugin:
    """
    Host pipeline hook.

    Both hooks return None for units that are filtered out or need no
    change, which tells the host to keep the unit as it is.
    """

    name = "hotswap"

    def __init__(self, settings: Optional[HotSwapSettings] = None):
        self.settings = settings or get_settings()
        self.rewriter = HotSwapRewriter(self.settings.rewrite)
        self.postpass = HotSwapPostPass(self.settings.rewrite)
        self._stats = {"transformed": 0, "post_processed": 0, "filtered": 0}

    def should_process(self, unit_id: str) -> bool:
        """Check unit id against the enabled flag and include/exclude patterns."""
        if not self.settings.enabled:
            return False

        path = unit_id.replace("\\", "/")
        parts = path.split("/")
        if self.settings.skip_third_party and any(d in parts for d in THIRD_PARTY_DIRS):
            return False

        basename = posixpath.basename(path)

        def matches(pattern: str) -> bool:
            return fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(basename, pattern)

        if self.settings.include and not any(matches(p) for p in self.settings.include):
            return False
        return not any(matches(p) for p in self.settings.exclude)

    def transform(self, code: str, unit_id: str) -> Optional[TransformResult]:
        """Primary rewrite of one unit."""
        if not self.should_process(unit_id):
            self._stats["filtered"] += 1
            return None
        result = self.rewriter.transform(code, unit_id)
        if result is not None:
            self._stats["transformed"] += 1
        return result

    def post_transform(self, code: str, unit_id: str) -> Optional[TransformResult]:
        """Post-pass over a unit after all other lowering."""
        if not self.should_process(unit_id):
            return None
        result = self.postpass.transform(code, unit_id)
        if result is not None:
            self._stats["post_processed"] += 1
        return result

    def process(self, code: str, unit_id: str) -> Optional[TransformResult]:
        """Both passes back to back, for hosts without lowering of their own."""
        first = self.transform(code, unit_id)
        if first is None:
            return None

        second = self.post_transform(first.code, unit_id)
        if second is None:
            return first

        return TransformResult(
            code=second.code,
            map=compose_line_maps(first.map, second.map),
            names=first.names,
            snapshots=first.snapshots,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {"name": self.name, "enabled": self.settings.enabled, **self._stats}
