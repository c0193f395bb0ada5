# src/e2e/test_request_scheduler.py

import asyncio
import logging
from typing import List, Tuple

import pytest

from zapcomplete import AnchorContext, CompletionOptions, RequestScheduler, SourceCache
from zapcomplete.sources import RequestParams
from conftest import DOC, FakeSource, settle


class Harness:
    """One scheduler over one FakeSource; the live context is set by hand."""

    def __init__(self, debounce_ms: float = 0, accepting=None) -> None:
        self.options = CompletionOptions(debounce_ms=debounce_ms)
        self.cache = SourceCache(self.options)
        self.cache.attach("s")
        self.source = FakeSource()
        self.live = AnchorContext(prefix="", anchor_column=0, line=0)
        self.ingested: List[Tuple[str, bool]] = []
        self.scheduler = RequestScheduler(
            DOC,
            self.cache,
            {"s": self.source},
            read_context=lambda: self.live,
            make_params=lambda ctx: RequestParams(DOC, ctx.line, ctx.anchor_column + len(ctx.prefix),
                                                  ctx.prefix, ctx.anchor_column),
            on_ingested=lambda sid, rebuilt: self.ingested.append((sid, rebuilt)),
            options=self.options,
            accepting=accepting,
        )

    @property
    def state(self):
        return self.cache.state("s")

    def type(self, prefix: str, anchor: int = 0, line: int = 0) -> None:
        self.live = AnchorContext(prefix=prefix, anchor_column=anchor, line=line)
        self.scheduler.trigger("s", self.live)


@pytest.mark.asyncio
async def test_short_prefix_requests_immediately():
    h = Harness(debounce_ms=50)
    h.type("a")
    assert h.state.timer is None
    assert h.state.request_in_flight
    await settle()
    assert [p.prefix for p in h.source.calls] == ["a"]
    h.scheduler.close()
    await settle()


@pytest.mark.asyncio
async def test_longer_prefix_is_debounced_and_timer_restarted():
    h = Harness(debounce_ms=50)
    h.type("ab")
    first = h.state.timer
    assert first is not None
    h.type("abc")
    assert first.cancelled()
    assert h.state.timer is not first
    await settle()
    assert h.source.calls == []

    await asyncio.sleep(0.1)
    assert [p.prefix for p in h.source.calls] == ["abc"]
    assert h.state.timer is None
    h.scheduler.close()
    await settle()


@pytest.mark.asyncio
async def test_keystrokes_while_in_flight_give_exactly_one_follow_up():
    h = Harness()
    h.type("a")
    await settle()
    for prefix in ("ab", "abc", "abcd"):
        h.type(prefix)
    assert h.state.request_pending
    await settle()
    assert len(h.source.calls) == 1

    h.source.respond(["abcdef"])
    await settle()
    assert [p.prefix for p in h.source.calls] == ["a", "abcd"]
    assert h.state.request_in_flight and not h.state.request_pending

    h.source.respond(["abcdxyz"])
    await settle()
    assert len(h.source.calls) == 2
    assert not h.state.request_in_flight
    assert [c.insert_text for c in h.cache.read("s")] == ["abcdef", "abcdxyz"]
    assert not h.scheduler.pending()


@pytest.mark.asyncio
async def test_response_for_another_anchor_is_discarded():
    h = Harness()
    h.type("a")
    await settle()
    h.live = AnchorContext(prefix="x", anchor_column=0, line=3)
    h.source.respond(["alpha"])
    await settle()
    assert h.ingested == []
    assert h.cache.count("s") == 0
    assert not h.state.request_in_flight


@pytest.mark.asyncio
async def test_response_is_kept_when_only_prefix_grew():
    h = Harness()
    h.type("a", anchor=4)
    await settle()
    h.live = AnchorContext(prefix="abc", anchor_column=4, line=0)
    h.source.respond({"isIncomplete": True, "items": ["abcdef"]})
    await settle()
    assert h.ingested == [("s", False)]
    assert [c.insert_text for c in h.cache.read("s")] == ["abcdef"]


@pytest.mark.asyncio
async def test_transport_failure_counts_as_empty_response(caplog):
    h = Harness()
    h.state.context_changed = True
    h.type("a")
    await settle()
    with caplog.at_level(logging.WARNING, logger="zapcomplete.scheduler"):
        h.source.fail(ConnectionError("server went away"))
        await settle()
    assert h.ingested == [("s", True)]
    assert h.cache.count("s") == 0
    assert not h.state.request_in_flight
    assert any("failed" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_responses_dropped_while_not_accepting():
    accepting = [False]
    h = Harness(accepting=lambda: accepting[0])
    h.type("a")
    await settle()
    h.source.respond(["alpha"])
    await settle()
    assert h.cache.count("s") == 0

    accepting[0] = True
    h.type("a")
    await settle()
    h.source.respond(["alpha"])
    await settle()
    assert h.cache.count("s") == 1


@pytest.mark.asyncio
async def test_close_cancels_timers_and_requests():
    h = Harness(debounce_ms=50)
    h.type("a")
    await settle()
    h.type("ab", anchor=5)
    assert h.state.timer is not None
    h.scheduler.close()
    assert h.state.timer is None
    assert not h.state.request_in_flight
    await settle()
    assert not h.scheduler.pending()

    h.type("a", anchor=9)
    await settle()
    assert len(h.source.calls) == 1


@pytest.mark.asyncio
async def test_drain_waits_for_debounced_request():
    h = Harness(debounce_ms=5)
    h.type("ab")

    async def answer():
        while not h.source.open_requests:
            await asyncio.sleep(0.001)
        h.source.respond(["abacus"])

    helper = asyncio.create_task(answer())
    await asyncio.wait_for(h.scheduler.drain(), timeout=2)
    await helper
    assert [c.insert_text for c in h.cache.read("s")] == ["abacus"]


@pytest.mark.asyncio
async def test_moved_word_with_cached_entries_requests_at_word_start_then_cursor():
    h = Harness()
    h.cache.ingest("s", ["alpha"], h.live)
    h.state.context_changed = True
    h.type("b", anchor=6)
    assert h.state.request_pending
    await settle()
    assert (h.source.calls[0].column, h.source.calls[0].anchor_column) == (6, 6)

    h.source.respond(["beta"])
    await settle()
    assert h.ingested == [("s", True)]
    assert len(h.source.calls) == 2
    assert h.source.calls[1].column == 7
    assert not h.state.request_pending

    h.source.respond(["bend"])
    await settle()
    assert len(h.source.calls) == 2
    assert not h.state.request_in_flight
    assert [c.insert_text for c in h.cache.read("s")] == ["beta", "bend"]


@pytest.mark.asyncio
async def test_dropped_word_start_answer_does_not_chain_a_follow_up():
    h = Harness()
    h.cache.ingest("s", ["alpha"], h.live)
    h.state.context_changed = True
    h.type("b", anchor=6)
    await settle()
    h.live = AnchorContext(prefix="", anchor_column=0, line=2)
    h.source.respond(["beta"])
    await settle()
    assert len(h.source.calls) == 1
    assert not h.state.request_pending and not h.state.request_in_flight


@pytest.mark.asyncio
async def test_older_answer_after_newer_one_is_dropped_when_stale():
    h = Harness()
    h.type("a", anchor=0)
    await settle()
    h.type("b", anchor=5)
    await settle()
    assert len(h.source.calls) == 2 and h.state.generation == 2

    h.source.respond(["bravo"], index=1)
    await settle()
    assert not h.state.request_in_flight
    h.source.respond(["alpha"], index=0)
    await settle()
    assert h.ingested == [("s", False)]
    assert [c.insert_text for c in h.cache.read("s")] == ["bravo"]
    assert len(h.source.calls) == 2


@pytest.mark.asyncio
async def test_only_latest_request_clears_in_flight_and_issues_follow_up():
    h = Harness()
    h.type("a", anchor=0)
    await settle()
    h.type("b", anchor=5)
    h.type("bc", anchor=5)
    await settle()
    assert h.state.request_pending

    h.source.respond(["alpha"], index=0)
    await settle()
    assert h.state.request_in_flight and h.state.request_pending
    assert len(h.source.calls) == 2

    h.source.respond(["bcd"], index=0)
    await settle()
    assert [p.prefix for p in h.source.calls] == ["a", "b", "bc"]
    assert h.state.request_in_flight and not h.state.request_pending

    h.source.respond(["bce"], index=0)
    await settle()
    assert not h.state.request_in_flight
    assert [c.insert_text for c in h.cache.read("s")] == ["bcd", "bce"]


@pytest.mark.asyncio
async def test_older_answer_still_ingested_when_its_word_is_live_again():
    h = Harness()
    h.type("a", anchor=0)
    await settle()
    h.type("b", anchor=5)
    await settle()
    h.live = AnchorContext(prefix="ab", anchor_column=0, line=0)

    h.source.respond(["bravo"], index=1)
    await settle()
    assert h.ingested == []
    assert not h.state.request_in_flight

    h.source.respond(["abacus"], index=0)
    await settle()
    assert h.ingested == [("s", False)]
    assert [c.insert_text for c in h.cache.read("s")] == ["abacus"]
    assert not h.state.request_in_flight
    assert len(h.source.calls) == 2
