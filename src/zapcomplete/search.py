from __future__ import annotations
import logging
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from . import config as CFG
from .models import Candidate
from .normalize import split_parts

log = logging.getLogger(__name__)

# Fuzzy scoring of one candidate text against the typed prefix, then ranking
# of a whole candidate list. Scores only mean something inside one pass.


def _abbreviation(parts: Sequence[str], prefix: str) -> Tuple[bool, bool]:
    """
    Walk the prefix over the leading characters of successive parts.
    Returns (full, partial):
      full    - the whole prefix was consumed across consecutive parts,
                reaching at least a second part
      partial - matching stopped at a part that matched nothing (or parts ran
                out) after at least one part had matched
    """
    if not prefix or len(parts) < 2:
        return False, False
    pos = 0
    matched = 0
    for part in parts:
        if pos >= len(prefix):
            break
        n = 0
        while n < len(part) and pos < len(prefix) and part[n] == prefix[pos]:
            n += 1
            pos += 1
        if n == 0:
            return False, matched >= 1
        matched += 1
    if pos >= len(prefix):
        return matched >= 2, False
    return False, matched >= 1


def _coverage(text: str, prefix: str) -> int:
    """Greedy left-to-right use of prefix chars; each prefix char used once."""
    used = [False] * len(prefix)
    score = 0
    for i, ch in enumerate(text):
        for j, pch in enumerate(prefix):
            if not used[j] and ch == pch:
                score += CFG.POSITIONAL_MATCH if i == j else CFG.LOOSE_MATCH
                used[j] = True
                break
    return score


def _leading_run(text: str, prefix: str) -> int:
    n = 0
    for a, b in zip(text, prefix):
        if a != b:
            break
        n += 1
    return n


def proximity_bonus(
    text: str,
    cursor_line: int,
    lines: Sequence[str],
    *,
    window: int = CFG.PROXIMITY_WINDOW,
    base: float = CFG.PROXIMITY_BASE,
) -> float:
    """base ** (window - distance) for the closest line (within ±window) containing text."""
    if not text or not lines:
        return 0.0
    lo = max(0, cursor_line - window)
    hi = min(len(lines) - 1, cursor_line + window)
    closest = window + 1
    for ln in range(lo, hi + 1):
        dist = abs(ln - cursor_line)
        if dist < closest and text in lines[ln]:
            closest = dist
            if dist == 0:
                break
    if closest > window:
        return 0.0
    return base ** (window - closest)


def score_candidate(
    text: str,
    prefix: str,
    cursor_line: int,
    lines: Sequence[str],
    *,
    window: int = CFG.PROXIMITY_WINDOW,
    suffix_bonuses: Optional[Mapping[str, float]] = None,
) -> float:
    """
    Relevance of `text` for the typed `prefix`. Pure and deterministic.

    Additive, in order: abbreviation bonus, character coverage, prefix-start
    bonuses, short-candidate penalty, leading-run bonus, cursor proximity,
    suffix (domain hint) bonus.
    """
    score: float = 0
    parts = split_parts(text)

    full, partial = _abbreviation(parts, prefix)
    if full:
        score += len(prefix) + CFG.ABBREV_BONUS
    elif partial:
        score += len(prefix) + CFG.PARTIAL_ABBREV_BONUS

    score += _coverage(text, prefix)

    if text.startswith(prefix):
        score += CFG.CASE_PREFIX_BONUS
    if text.lower().startswith(prefix.lower()):
        score += CFG.ICASE_PREFIX_BONUS

    if len(text) < CFG.MIN_CANDIDATE_LEN:
        score -= CFG.SHORT_PENALTY

    score += _leading_run(text, prefix)

    score += proximity_bonus(text, cursor_line, lines, window=window)

    bonuses = CFG.SUFFIX_BONUSES if suffix_bonuses is None else suffix_bonuses
    for suffix, bonus in bonuses.items():
        if suffix and text.endswith(suffix):
            score += bonus

    return score


class ScoreCache:
    """Memoizes score_candidate by text for the duration of one ranking pass."""

    def __init__(self, prefix: str, cursor_line: int, lines: Sequence[str], *,
                 window: int = CFG.PROXIMITY_WINDOW,
                 suffix_bonuses: Optional[Mapping[str, float]] = None) -> None:
        self.prefix = prefix
        self._cursor_line = cursor_line
        self._lines = lines
        self._window = window
        self._suffix_bonuses = suffix_bonuses
        self._scores: Dict[str, float] = {}

    def __call__(self, text: str) -> float:
        s = self._scores.get(text)
        if s is None:
            s = score_candidate(text, self.prefix, self._cursor_line, self._lines,
                                window=self._window, suffix_bonuses=self._suffix_bonuses)
            self._scores[text] = s
        return s

    def __len__(self) -> int:
        return len(self._scores)


def starts_with(text: str, prefix: str) -> bool:
    return text.lower().startswith(prefix.lower())


def partition_candidates(candidates: Sequence[Candidate], prefix: str) -> Tuple[List[Candidate], List[Candidate]]:
    """(likely, unlikely): case-insensitive prefix match on insert_text, arrival order kept."""
    likely: List[Candidate] = []
    unlikely: List[Candidate] = []
    for c in candidates:
        (likely if starts_with(c.insert_text, prefix) else unlikely).append(c)
    return likely, unlikely


def sort_by_score(
    candidates: List[Candidate],
    score_fn: Callable[[str], float],
    adjust: Optional[Callable[[float, Candidate], float]] = None,
) -> List[Candidate]:
    """Descending score, then shorter insert_text, then lexicographic."""
    keyed = []
    for c in candidates:
        s = score_fn(c.insert_text)
        if adjust is not None:
            s = adjust(s, c)
        keyed.append((-s, len(c.insert_text), c.insert_text, c))
    keyed.sort(key=lambda row: row[:3])
    return [row[3] for row in keyed]


def rank_candidates(
    candidates: Sequence[Candidate],
    prefix: str,
    score_fn: Callable[[str], float],
    *,
    adjust: Optional[Callable[[float, Candidate], float]] = None,
    finalize: Optional[Callable[[List[Candidate]], List[Candidate]]] = None,
    likely_threshold: int = CFG.LIKELY_THRESHOLD,
) -> List[Candidate]:
    """
    Order a merged candidate list for display and stamp ordinals.

    Likely matches (case-insensitive prefix) come first. When there are more
    than `likely_threshold` of them only they are fuzzy-sorted and the rest
    keep arrival order; otherwise the unlikely set is fuzzy-sorted instead.
    Each candidate's `score` becomes its 1-based position in the result.
    """
    likely, unlikely = partition_candidates(candidates, prefix)

    if len(likely) > likely_threshold:
        likely = sort_by_score(likely, score_fn, adjust)
    else:
        unlikely = sort_by_score(unlikely, score_fn, adjust)

    final = likely + unlikely if likely else unlikely
    if finalize is not None:
        final = list(finalize(final))

    for i, c in enumerate(final, start=1):
        c.score = i
    log.debug("Ranked %d candidates for prefix %r (likely=%d)", len(final), prefix, len(likely))
    return final
