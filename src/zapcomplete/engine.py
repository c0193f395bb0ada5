# zapcomplete/engine.py
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Hashable, Iterable, List, Optional

from .cache import SourceCache
from .config import CompletionOptions
from .editor import EditorView
from .models import AnchorContext, Candidate, DedupKey, DocumentSession, SourceId
from .normalize import char_before_cursor, word_before_cursor
from .scheduler import RequestScheduler
from .search import ScoreCache, rank_candidates
from .sources import CompletionSource, RequestParams

log = logging.getLogger(__name__)


def merge_caches(caches: Iterable[List[Candidate]]) -> List[Candidate]:
    """
    Combine several source caches into one list, first-seen order. On a
    dedup-key collision the candidate with the higher last-assigned score wins
    and takes over the slot.
    """
    combined: List[Candidate] = []
    slots: Dict[DedupKey, int] = {}
    for cache in caches:
        for cand in cache:
            key = cand.key
            idx = slots.get(key)
            if idx is None:
                slots[key] = len(combined)
                combined.append(cand)
            # scores are last-pass ordinals, so this keeps the later-ranked copy (as the plugin does)
            elif (cand.score or 0) > (combined[idx].score or 0):
                combined[idx] = cand
    return combined


class SessionCoordinator:
    """
    Orchestration layer, one per editor. Glues together, per document:
      - a SourceCache (what each source last returned),
      - a RequestScheduler (when to ask each source again),
      - the ranking pipeline (search.rank_candidates),
    and drives the editor's popup.

    Public API (used by the CLI, the playgrounds and tests):
      * attach(document, source_id, source): document-attach event
      * on_text_changed / on_cursor_moved(document): edit events
      * show_cache(document): merge + rank + display what is cached now
      * on_completion_accepted(document, candidate): accepted item
      * close(document): document-closed event
      * drain(document): await pending timers and requests
    """

    # ------------- lifecycle -------------

    def __init__(
        self,
        editor: EditorView,
        options: Optional[CompletionOptions] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.editor = editor
        self.options = options or CompletionOptions()
        self._loop = loop
        self._sessions: Dict[Hashable, DocumentSession] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def attach(self, document: Hashable, source_id: SourceId, source: CompletionSource) -> DocumentSession:
        """Start serving `source` for `document`; the session is created on first attach."""
        if not hasattr(source, "request"):
            raise TypeError(f"{type(source).__name__} is not a completion source (missing request())")

        session = self._sessions.get(document)
        if session is None:
            session = self._new_session(document)
            self._sessions[document] = session

        if source_id in session.sources:
            log.debug("Source %r already attached to %r", source_id, document)
            return session

        session.sources[source_id] = source
        session.source_ids.append(source_id)
        session.cache.attach(source_id)
        log.info("Attached source %r to document %r (%d source(s))",
                 source_id, document, len(session.source_ids))
        return session

    def detach(self, document: Hashable, source_id: SourceId) -> None:
        session = self._sessions.get(document)
        if session is None or source_id not in session.sources:
            return
        session.scheduler.cancel(source_id)
        session.cache.detach(source_id)
        del session.sources[source_id]
        session.source_ids.remove(source_id)
        if not session.source_ids:
            self.close(document)

    def close(self, document: Hashable) -> None:
        """Tear down everything kept for `document`."""
        session = self._sessions.pop(document, None)
        if session is None:
            return
        session.closed = True
        session.scheduler.close()
        for handle in session.deferred.values():
            handle.cancel()
        session.deferred.clear()
        log.info("Closed completion session for %r", document)

    def shutdown(self) -> None:
        for document in list(self._sessions):
            self.close(document)

    def session(self, document: Hashable) -> Optional[DocumentSession]:
        return self._sessions.get(document)

    def documents(self) -> List[Hashable]:
        return list(self._sessions)

    # ------------- editor events -------------

    def on_text_changed(self, document: Hashable) -> None:
        self.trigger(document)

    def on_cursor_moved(self, document: Hashable) -> None:
        self.trigger(document)

    def trigger(self, document: Hashable) -> None:
        """Instant feedback from the cache, then ask every source again."""
        session = self._sessions.get(document)
        if session is None:
            return
        if self.editor.has_selection(document):
            return

        self.show_cache(document)

        context = self.read_context(document)
        for source_id in list(session.source_ids):
            session.scheduler.trigger(source_id, context)

    def on_completion_accepted(self, document: Hashable, candidate: Candidate) -> None:
        """Apply the accepted item's extra edits, then start over with empty caches."""
        session = self._sessions.get(document)
        if session is None:
            log.debug("Completion accepted in %r after its session closed; ignoring", document)
            return
        if candidate.additional_edits:
            log.debug("Applying %d additional edit(s) from %r",
                      len(candidate.additional_edits), candidate.source_id)
            self.editor.apply_edits(document, list(candidate.additional_edits), candidate.source_id)
        session.cache.clear_all()

    # ------------- context -------------

    def read_context(self, document: Hashable) -> AnchorContext:
        line, col = self.editor.cursor(document)
        prefix, anchor = word_before_cursor(
            self.editor.line_text(document, line), col, self.options.keyword_pattern
        )
        return AnchorContext(prefix=prefix, anchor_column=anchor, line=line)

    def _params(self, document: Hashable, context: AnchorContext) -> RequestParams:
        _, col = self.editor.cursor(document)
        return RequestParams(
            document=document,
            line=context.line,
            column=col,
            prefix=context.prefix,
            anchor_column=context.anchor_column,
        )

    def _at_trigger_character(self, document: Hashable) -> bool:
        line, col = self.editor.cursor(document)
        ch = char_before_cursor(self.editor.line_text(document, line), col)
        return bool(ch) and ch in self.options.trigger_characters

    # ------------- rendering -------------

    def show_cache(self, document: Hashable, force: bool = False) -> None:
        session = self._sessions.get(document)
        if session is None:
            self.editor.hide(document)
            return

        context = self.read_context(document)
        reset = self._at_trigger_character(document)

        need_update = force
        for state in session.cache.states():
            if not state.differs_from(context):
                continue
            need_update = True
            log.debug("Source %r needs update: prefix %r (was %r)",
                      state.source_id, context.prefix, state.last_prefix)
            if reset:
                session.cache.clear(state.source_id)
            if state.anchor_moved(context):
                state.context_changed = True
                log.debug("Context changed for source %r", state.source_id)

        if not need_update and self.editor.is_visible(document):
            log.debug("No update needed and popup is visible")
            return

        caches = []
        for source_id in session.source_ids:
            state = session.cache.state(source_id)
            state.remember(context)
            caches.append(state.cache)
        combined = merge_caches(caches)
        log.debug("Combined %d entries from %d source(s)", len(combined), len(caches))

        session.render_generation += 1
        if not combined:
            self.editor.hide(document)
            return

        if len(combined) > self.options.defer_threshold:
            log.debug("Deferring sort for large result set (%d)", len(combined))
            generation = session.render_generation
            session.deferred[generation] = self.loop.call_soon(
                self._deferred_render, document, generation, combined, context
            )
            return

        self._render(document, combined, context)

    def _deferred_render(self, document: Hashable, generation: int,
                         combined: List[Candidate], context: AnchorContext) -> None:
        session = self._sessions.get(document)
        if session is None:
            return
        session.deferred.pop(generation, None)
        if generation != session.render_generation:
            return  # a newer pass already ran
        self._render(document, combined, context)

    def _render(self, document: Hashable, combined: List[Candidate], context: AnchorContext) -> None:
        opts = self.options
        scorer = ScoreCache(
            context.prefix,
            context.line,
            self.editor.lines(document),
            window=opts.proximity_window,
            suffix_bonuses=opts.suffix_bonuses,
        )
        ranked = rank_candidates(
            combined,
            context.prefix,
            scorer,
            adjust=opts.adjust_score,
            finalize=opts.sort_entries,
            likely_threshold=opts.likely_threshold,
        )
        if not ranked:
            self.editor.hide(document)
            return
        if self.editor.has_selection(document):
            return
        log.debug("Displaying %d entries at column %d", len(ranked), context.anchor_column)
        self.editor.show(document, context.anchor_column, ranked)

    # ------------- internals -------------

    def _new_session(self, document: Hashable) -> DocumentSession:
        log.debug("Initializing completion session for %r", document)
        cache = SourceCache(self.options)
        session = DocumentSession(document=document, cache=cache, scheduler=None)
        session.scheduler = RequestScheduler(
            document,
            cache,
            session.sources,
            read_context=lambda: self.read_context(document),
            make_params=lambda ctx: self._params(document, ctx),
            on_ingested=lambda source_id, rebuilt: self._on_ingested(document, source_id, rebuilt),
            options=self.options,
            accepting=lambda: not self.editor.has_selection(document),
            loop=self._loop,
        )
        return session

    def _on_ingested(self, document: Hashable, source_id: SourceId, rebuilt: bool) -> None:
        if rebuilt:
            log.debug("Cache for %r rebuilt after a context change", source_id)
        self.show_cache(document, force=True)

    async def drain(self, document: Optional[Hashable] = None) -> None:
        """Wait for armed timers, in-flight requests and deferred renders to settle."""
        docs = [document] if document is not None else list(self._sessions)
        while True:
            busy = False
            for doc in docs:
                session = self._sessions.get(doc)
                if session is None:
                    continue
                if session.scheduler.pending():
                    busy = True
                    await session.scheduler.drain()
                if session.deferred:
                    busy = True
                    await asyncio.sleep(0)
            if not busy:
                return
