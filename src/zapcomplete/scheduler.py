from __future__ import annotations
import asyncio
import dataclasses
import logging
from typing import Any, Callable, Dict, Hashable, Optional, Set

from .cache import SourceCache
from .config import CompletionOptions
from .models import AnchorContext, SourceId, SourceState
from .sources import CompletionSource, RequestParams, is_incomplete, normalize_response

log = logging.getLogger(__name__)


class RequestScheduler:
    """
    Decides when each source of one document is asked for suggestions.

      * prefix of 0-1 chars           -> request right away
      * in flight at the same anchor  -> mark pending, exactly one follow-up later
      * otherwise                     -> (re)start the debounce timer

    When the source still has cached entries but the cursor moved to another
    word, the request is made at the word start (the whole word's list) and
    a follow-up at the cursor is queued.

    Responses are ingested only if the live anchor (line + word start) still
    matches the one captured when the request was sent.

    Everything runs on one asyncio loop; SourceState flags are only touched
    from this class and from the loop's callbacks, so no locking is needed.
    """

    def __init__(
        self,
        document: Hashable,
        cache: SourceCache,
        sources: Dict[SourceId, CompletionSource],
        read_context: Callable[[], AnchorContext],
        make_params: Callable[[AnchorContext], RequestParams],
        on_ingested: Callable[[SourceId, bool], None],
        *,
        options: Optional[CompletionOptions] = None,
        accepting: Optional[Callable[[], bool]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.document = document
        self._cache = cache
        self._sources = sources
        self._read_context = read_context
        self._make_params = make_params
        self._on_ingested = on_ingested
        self._options = options or CompletionOptions()
        self._accepting = accepting or (lambda: True)
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    # ------------- triggering -------------

    def trigger(self, source_id: SourceId, context: AnchorContext) -> None:
        if self._closed:
            return
        state = self._cache.state(source_id)

        if state.request_in_flight and context.same_anchor(state.request_context):
            state.request_pending = True
            log.debug("Request in flight for %r at line %d col %d; request another set",
                      source_id, context.line, context.anchor_column)
            return

        self._cancel_timer(state)
        if len(context.prefix) <= 1:
            self._issue(state, context)
            return

        state.timer = self.loop.call_later(self._options.debounce_seconds, self._fire, source_id)

    def _fire(self, source_id: SourceId) -> None:
        state = self._live_state(source_id)
        if state is None:
            return
        state.timer = None
        context = self._read_context()
        if state.request_in_flight and context.same_anchor(state.request_context):
            state.request_pending = True
            return
        self._issue(state, context)

    def _issue(self, state: SourceState, context: AnchorContext) -> None:
        state.generation += 1
        state.request_in_flight = True
        state.request_pending = False
        state.request_context = context
        at_anchor = self._at_anchor(state)
        log.debug("Requesting %r: prefix %r, line %d, col %d",
                  state.source_id, context.prefix, context.line, context.anchor_column)
        task = self.loop.create_task(self._run(state.source_id, context, state.generation, at_anchor))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _at_anchor(self, state: SourceState) -> bool:
        if not state.cache or not state.context_changed:
            return False
        log.debug("Context changed for %r with entries cached; requesting at the word start", state.source_id)
        state.request_pending = True
        return True

    # ------------- responses -------------

    async def _run(self, source_id: SourceId, context: AnchorContext, generation: int, at_anchor: bool) -> None:
        while True:
            result = await self._fetch(source_id, context, at_anchor)

            state = self._live_state(source_id)
            if state is None:
                return
            current = state.generation == generation
            if current:
                state.request_in_flight = False

            ingested = self._deliver(source_id, result, context)
            if current and at_anchor and not ingested:
                state.request_pending = False  # the word-start answer was dropped; no chained follow-up

            if not current or not state.request_pending:
                return

            # one follow-up request, for whatever the context is now
            state.request_pending = False
            context = self._read_context()
            state.generation += 1
            generation = state.generation
            state.request_in_flight = True
            state.request_context = context
            at_anchor = self._at_anchor(state)
            log.debug("Triggering another request for %r", source_id)

    async def _fetch(self, source_id: SourceId, context: AnchorContext, at_anchor: bool = False) -> Any:
        source = self._sources.get(source_id)
        if source is None:
            return []
        params = self._make_params(context)
        if at_anchor:
            params = dataclasses.replace(params, column=context.anchor_column)
        try:
            return await source.request(params)
        except Exception:
            log.warning("Completion request to %r failed; treating as empty", source_id, exc_info=True)
            return []

    def _deliver(self, source_id: SourceId, result: Any, context: AnchorContext) -> bool:
        live = self._read_context()
        if not live.same_anchor(context):
            log.debug("Stale response from %r: requested line %d col %d, now line %d col %d",
                      source_id, context.line, context.anchor_column, live.line, live.anchor_column)
            return False
        if not self._accepting():
            log.debug("Dropping response from %r while an item is selected", source_id)
            return False

        items = normalize_response(result)
        if is_incomplete(result):
            log.debug("Source %r reported an incomplete list (%d items)", source_id, len(items))
        rebuilt = self._cache.ingest(source_id, items, live)
        self._on_ingested(source_id, rebuilt)
        return True

    # ------------- lifecycle -------------

    def pending(self) -> bool:
        """True while a timer is armed or a request task is running."""
        if self._tasks:
            return True
        return any(s.timer is not None for s in self._cache.states())

    async def drain(self) -> None:
        """Wait until no timer is armed and no request is in flight."""
        while not self._closed and self.pending():
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._options.debounce_seconds)

    def cancel(self, source_id: SourceId) -> None:
        state = self._live_state(source_id)
        if state is not None:
            self._cancel_timer(state)

    def close(self) -> None:
        self._closed = True
        for state in self._cache.states():
            self._cancel_timer(state)
            state.request_in_flight = False
            state.request_pending = False
        for task in list(self._tasks):
            task.cancel()

    def _live_state(self, source_id: SourceId) -> Optional[SourceState]:
        if self._closed or source_id not in self._cache:
            return None
        return self._cache.state(source_id)

    @staticmethod
    def _cancel_timer(state: SourceState) -> None:
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None
