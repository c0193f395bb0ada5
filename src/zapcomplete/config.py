from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Mapping, Tuple, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import Candidate

TOP_K: int = 10

# Popup label width (characters); labels are truncated/padded to this
PUM_WIDTH: int = 33

# Debounce before a request is sent for prefixes longer than one char
DEBOUNCE_MS: float = 2

# /* ~~~ scoring knobs ~~~ */
PROXIMITY_WINDOW: int = 20        # lines above/below the cursor scanned for the candidate text
PROXIMITY_BASE: float = 1.05      # bonus = base ** (window - distance)
MIN_CANDIDATE_LEN: int = 4        # shorter candidates get a penalty
SHORT_PENALTY: int = 10
POSITIONAL_MATCH: int = 10
LOOSE_MATCH: int = 5
CASE_PREFIX_BONUS: int = 10
ICASE_PREFIX_BONUS: int = 5
ABBREV_BONUS: int = 20
PARTIAL_ABBREV_BONUS: int = 10

# keyword/named-parameter style matches (e.g. python `name=`)
SUFFIX_BONUSES: Dict[str, float] = {"=": 50}

# /* ~~~ ranking / rendering ~~~ */
LIKELY_THRESHOLD: int = 2         # likely set must be larger than this to be sorted
DEFER_THRESHOLD: int = 2000       # combined lists above this are ranked on the next loop tick

# Characters that start a fresh completion context (member access)
TRIGGER_CHARACTERS: Tuple[str, ...] = (".",)

# Word-before-cursor pattern, applied to the text left of the cursor
KEYWORD_PATTERN: str = r"\w*$"

DEBUG = os.environ.get("ZAPCOMPLETE_DEBUG") == "1"


def default_kind_format(kind: str) -> str:
    """'Function' -> 'f'"""
    return kind.lower()[:1]


def _identity(entry):
    return entry


def _keep_score(score: float, entry: "Candidate") -> float:
    return score


@dataclass
class CompletionOptions:
    """
    Per-coordinator settings. Defaults come from the module constants above.

    The three hooks default to identity:
      * format_candidate(candidate) -> candidate   (after a raw item is formatted)
      * adjust_score(score, candidate) -> score    (after fuzzy scoring)
      * sort_entries(candidates) -> candidates     (after the final order is built)
    """
    debounce_ms: float = DEBOUNCE_MS
    pum_width: int = PUM_WIDTH
    kind_format: Callable[[str], str] = default_kind_format
    format_candidate: Callable[["Candidate"], "Candidate"] = _identity
    adjust_score: Callable[[float, "Candidate"], float] = _keep_score
    sort_entries: Callable[[List["Candidate"]], List["Candidate"]] = _identity
    likely_threshold: int = LIKELY_THRESHOLD
    defer_threshold: int = DEFER_THRESHOLD
    proximity_window: int = PROXIMITY_WINDOW
    trigger_characters: Tuple[str, ...] = TRIGGER_CHARACTERS
    suffix_bonuses: Dict[str, float] = field(default_factory=lambda: dict(SUFFIX_BONUSES))
    keyword_pattern: str = KEYWORD_PATTERN

    # plugin-style setup keys -> field names
    _ALIASES = {
        "additional_format_completion": "format_candidate",
        "additional_score_handler": "adjust_score",
        "additional_sorting_handler": "sort_entries",
    }

    @classmethod
    def from_mapping(cls, opts: Mapping[str, Any]) -> "CompletionOptions":
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in opts.items():
            name = cls._ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown completion option: {key!r}")
            if value is None:
                continue  # fall back to the default
            kwargs[name] = value
        if "trigger_characters" in kwargs:
            kwargs["trigger_characters"] = tuple(kwargs["trigger_characters"])
        return cls(**kwargs)

    @property
    def debounce_seconds(self) -> float:
        return max(0.0, float(self.debounce_ms)) / 1000.0
