"""
Incremental completion aggregator.

Collects suggestion lists from one or more asynchronous sources, merges and
de-duplicates them per document, fuzzy-ranks the result against the word
being typed and keeps one popup list up to date while the user types.

Main pieces:
    SessionCoordinator: per-document sessions, merge + rank + display
    RequestScheduler:   debounced, one-in-flight requests per source
    SourceCache:        per-source candidate cache with in-place dedup
    score_candidate / rank_candidates: the fuzzy ranking

Example Usage:
    editor = BufferEditor()
    editor.open("doc", "this_long_function()\\n")
    coord = SessionCoordinator(editor)
    coord.attach("doc", "words", WordListSource(["this_long_function", "other"]))
    editor.type_text("doc", "tlf")
    coord.on_text_changed("doc")
    await coord.drain("doc")
    print([c.insert_text for c in editor.popup("doc")])
"""

# src/zapcomplete/__init__.py
from .cache import SourceCache
from .config import CompletionOptions
from .editor import BufferEditor, EditorView
from .engine import SessionCoordinator, merge_caches
from .models import AnchorContext, Candidate, RawSuggestion
from .scheduler import RequestScheduler
from .search import rank_candidates, score_candidate
from .sources import BufferWordsSource, CompletionSource, FunctionSource, RequestParams, WordListSource

__version__ = "0.3.0"
__all__ = [
    "AnchorContext",
    "BufferEditor",
    "BufferWordsSource",
    "Candidate",
    "CompletionOptions",
    "CompletionSource",
    "EditorView",
    "FunctionSource",
    "RawSuggestion",
    "RequestParams",
    "RequestScheduler",
    "SessionCoordinator",
    "SourceCache",
    "WordListSource",
    "merge_caches",
    "rank_candidates",
    "score_candidate",
]
