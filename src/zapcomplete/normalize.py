from __future__ import annotations
import re
from functools import lru_cache
from typing import Iterable, List, Tuple

from .config import KEYWORD_PATTERN

_UPPER_BOUNDARY = re.compile(r"(?=[A-Z])")


@lru_cache(maxsize=8)
def _keyword_re(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def word_before_cursor(line_text: str, col: int, pattern: str = KEYWORD_PATTERN) -> Tuple[str, int]:
    """
    Return (prefix, anchor_column) for a 0-based cursor column.
    The prefix is the keyword run that ends at the cursor.
    """
    col = max(0, min(col, len(line_text)))
    before = line_text[:col]
    m = _keyword_re(pattern).search(before)
    if m is None:
        return "", col
    return m.group(0), m.start()


def char_before_cursor(line_text: str, col: int) -> str:
    if col <= 0 or col > len(line_text):
        return ""
    return line_text[col - 1]


def split_parts(text: str) -> List[str]:
    """
    Structural decomposition used by abbreviation matching:
      'this_long_function' -> ['this', 'long', 'function']
      'getHTTPValue'       -> ['get', 'H', 'T', 'T', 'P', 'Value']
    """
    parts: List[str] = []
    for segment in text.split("_"):
        if not segment:
            continue
        parts.extend(p for p in _UPPER_BOUNDARY.split(segment) if p)
    return parts


def fit_label(label: str, width: int) -> str:
    """Pad or truncate to exactly `width` characters."""
    if width <= 0:
        return label
    return label.ljust(width)[:width]


def first_line(text: str | None) -> str | None:
    """First non-empty line of a (possibly multi-line) detail string."""
    if not text:
        return None
    for ln in text.splitlines():
        if ln.strip():
            return ln
    return None


def iter_identifiers(lines: Iterable[str], min_len: int = 2) -> Iterable[str]:
    """Yield identifier-like words found in `lines` (first occurrence order)."""
    seen = set()
    for ln in lines:
        for word in re.findall(r"[A-Za-z_]\w*", ln):
            if len(word) >= min_len and word not in seen:
                seen.add(word)
                yield word
