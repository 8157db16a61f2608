"""
hotswap Rewriter

Text-level passes that route component registrations through the
hot-swap runtime.
"""

from hotswap.rewriter.buffer import EditBuffer
from hotswap.rewriter.literals import LiteralEvaluationError, evaluate_initializer
from hotswap.rewriter.matcher import PatternMatcher, find_class_end
from hotswap.rewriter.postpass import HotSwapPostPass
from hotswap.rewriter.transform import HotSwapRewriter, find_header_end

__all__ = [
    "EditBuffer",
    "HotSwapPostPass",
    "HotSwapRewriter",
    "LiteralEvaluationError",
    "PatternMatcher",
    "evaluate_initializer",
    "find_class_end",
    "find_header_end",
]
