from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .config import CompletionOptions
from .loader import load_candidates
from .models import AnchorContext, Candidate, SourceId, SourceState

log = logging.getLogger(__name__)


class SourceCache:
    """
    Per-document store of the candidates each source returned.

    Entries are keyed by (insert_text, detail_line, display_label); a new
    candidate with a known key overwrites the old one in its slot so the
    visible order stays put while the user keeps typing.
    """

    def __init__(self, options: Optional[CompletionOptions] = None) -> None:
        self.options = options or CompletionOptions()
        self._states: Dict[SourceId, SourceState] = {}

    # ------------- sources -------------

    def attach(self, source_id: SourceId) -> SourceState:
        state = self._states.get(source_id)
        if state is None:
            state = SourceState(source_id=source_id)
            self._states[source_id] = state
            log.debug("Cache initialized for source %r (total sources: %d)", source_id, len(self._states))
        return state

    def detach(self, source_id: SourceId) -> None:
        state = self._states.pop(source_id, None)
        if state is not None and state.timer is not None:
            state.timer.cancel()
            state.timer = None

    def state(self, source_id: SourceId) -> SourceState:
        return self._states[source_id]

    def states(self) -> Iterator[SourceState]:
        return iter(list(self._states.values()))

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._states

    # ------------- ingest / read -------------

    def ingest(self, source_id: SourceId, items: Iterable[Any], context: AnchorContext) -> bool:
        """
        Merge a response into the source's cache. Returns True when the cache
        was rebuilt from scratch because the context had changed.
        """
        state = self.attach(source_id)
        rebuilt = False
        if state.context_changed:
            self._reset(state)
            state.context_changed = False
            rebuilt = True

        added = replaced = 0
        for cand in load_candidates(items, source_id, self.options):
            key = cand.key
            slot = state.slots.get(key)
            if slot is None:
                state.slots[key] = len(state.cache)
                state.cache.append(cand)
                added += 1
            else:
                state.cache[slot] = cand
                replaced += 1

        log.debug(
            "Source %r at line %d col %d: +%d new, %d replaced, %d cached",
            source_id, context.line, context.anchor_column, added, replaced, len(state.cache),
        )
        return rebuilt

    def read(self, source_id: SourceId) -> List[Candidate]:
        state = self._states.get(source_id)
        return list(state.cache) if state is not None else []

    def count(self, source_id: Optional[SourceId] = None) -> int:
        if source_id is not None:
            state = self._states.get(source_id)
            return len(state.cache) if state is not None else 0
        return sum(len(s.cache) for s in self._states.values())

    # ------------- invalidation -------------

    def clear(self, source_id: SourceId) -> None:
        state = self._states.get(source_id)
        if state is not None:
            self._reset(state)

    def clear_all(self) -> None:
        """Drop every cache and the remembered contexts (a fresh completion begins)."""
        for source_id, state in self._states.items():
            self._reset(state)
            state.forget()
            log.debug("Cleared cache for source %r", source_id)

    @staticmethod
    def _reset(state: SourceState) -> None:
        state.cache = []
        state.slots = {}
