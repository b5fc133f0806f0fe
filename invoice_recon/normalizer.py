"""
Text normalization applied before any pattern search.
"""

import re

from .config import FULL_WIDTH_REPLACEMENTS, SOURCE_SEPARATOR


_WHITESPACE_RE = re.compile(r"\s+")


def join_sources(texts: list[str]) -> str:
    """
    Concatenate the texts produced by different acquisition methods.

    Empty sources are dropped. The separator marker survives normalization,
    so segment boundaries can still be found in the normalized text.
    """
    parts = [t for t in texts if t and t.strip()]
    return f"\n{SOURCE_SEPARATOR}\n".join(parts)


def normalize_text(text: str) -> str:
    """
    Collapse whitespace runs to a single space and replace full-width
    colon and parentheses with their ASCII equivalents.
    """
    for full_width, ascii_char in FULL_WIDTH_REPLACEMENTS.items():
        text = text.replace(full_width, ascii_char)
    return _WHITESPACE_RE.sub(" ", text).strip()


def segment_bounds(text: str) -> list[tuple[int, int]]:
    """Return (start, end) offsets of each source segment in a joined text."""
    bounds = []
    start = 0
    while True:
        idx = text.find(SOURCE_SEPARATOR, start)
        if idx < 0:
            bounds.append((start, len(text)))
            return bounds
        bounds.append((start, idx))
        start = idx + len(SOURCE_SEPARATOR)


def relative_position(text: str, offset: int) -> float:
    """
    Position of an offset within its source segment, as a fraction in [0, 1).

    Positional heuristics use this instead of the absolute offset, since the
    same document content appears once per acquisition method.
    """
    for start, end in segment_bounds(text):
        if start <= offset < end or offset == end == len(text):
            length = max(end - start, 1)
            return min((offset - start) / length, 0.999)
    return 0.0


def in_first_half(text: str, offset: int) -> bool:
    """True when the offset lies in the first half of its source segment."""
    return relative_position(text, offset) < 0.5
