# src/e2e/test_integration_accept_and_close.py

import pytest

from zapcomplete import FunctionSource
from conftest import DOC, FakeSource, cand, settle

pytestmark = pytest.mark.e2e


async def _show(editor, coord, src, text, items):
    for ch in text:
        editor.type_text(DOC, ch)
        coord.on_text_changed(DOC)
    await settle()
    src.respond(items, index=-1)
    await settle()


@pytest.mark.asyncio
async def test_accept_applies_additional_edits_and_clears_caches(editor, coord):
    src = FakeSource()
    coord.attach(DOC, "lsp", src)
    at_top = {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 0}}
    item = {"label": "deque", "additionalTextEdits": [{"range": at_top, "newText": "from collections import deque\n"}]}
    await _show(editor, coord, src, "d", [item, "dict"])
    assert editor.is_visible(DOC)

    picked = next(i for i, c in enumerate(editor.popup(DOC)) if c.insert_text == "deque")
    chosen = editor.accept(DOC, picked)
    coord.on_completion_accepted(DOC, chosen)

    assert editor.text(DOC) == "from collections import deque\ndeque"
    assert editor.cursor(DOC) == (1, 5)
    assert editor.buffer(DOC).applied_edits == item["additionalTextEdits"]
    session = coord.session(DOC)
    assert session.cache.count() == 0
    assert all(s.last_prefix is None for s in session.cache.states())


@pytest.mark.asyncio
async def test_accept_without_edits_leaves_text_alone(editor, coord):
    src = FakeSource()
    coord.attach(DOC, "s", src)
    await _show(editor, coord, src, "pr", ["print", "property"])
    chosen = editor.accept(DOC, 0)
    coord.on_completion_accepted(DOC, chosen)
    assert editor.text(DOC) in ("print", "property")
    assert editor.buffer(DOC).applied_edits == []


@pytest.mark.asyncio
async def test_accept_after_close_is_ignored(editor, coord):
    coord.attach(DOC, "s", FakeSource())
    coord.close(DOC)
    edit = {"range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 0}}, "newText": "x"}
    late = cand("os")
    late.additional_edits = (edit,)
    coord.on_completion_accepted(DOC, late)
    coord.on_completion_accepted("never-opened", cand("x"))
    assert editor.text(DOC) == ""
    assert coord.session(DOC) is None


@pytest.mark.asyncio
async def test_close_ignores_late_responses(editor, coord):
    src = FakeSource()
    coord.attach(DOC, "s", src)
    editor.type_text(DOC, "a")
    coord.on_text_changed(DOC)
    await settle()
    assert src.open_requests == 1

    coord.close(DOC)
    src.respond(["alpha"])
    await settle()
    assert coord.session(DOC) is None
    assert not editor.is_visible(DOC)

    coord.on_text_changed(DOC)
    await settle()
    assert len(src.calls) == 1


@pytest.mark.asyncio
async def test_attach_rules(editor, coord):
    src = FakeSource()
    coord.attach(DOC, "s", src)
    coord.attach(DOC, "s", FakeSource())
    assert coord.session(DOC).source_ids == ["s"]
    assert coord.session(DOC).sources["s"] is src

    with pytest.raises(TypeError):
        coord.attach(DOC, "bad", object())

    coord.detach(DOC, "s")
    assert coord.session(DOC) is None


@pytest.mark.asyncio
async def test_function_source_and_plain_list_answers(editor, coord):
    seen = []

    def sync_words(params):
        seen.append((params.prefix, params.anchor_column, params.column))
        return ["kiwi", "kale"]

    async def async_words(params):
        return {"isIncomplete": False, "items": [{"label": "kumquat", "detail": "fruit\nyellow"}]}

    coord.attach(DOC, "sync", FunctionSource(sync_words))
    coord.attach(DOC, "async", FunctionSource(async_words))
    editor.type_text(DOC, "k")
    coord.on_text_changed(DOC)
    await coord.drain(DOC)

    assert seen == [("k", 0, 1)]
    assert sorted(c.insert_text for c in editor.popup(DOC)) == ["kale", "kiwi", "kumquat"]
    kumquat = next(c for c in editor.popup(DOC) if c.insert_text == "kumquat")
    assert kumquat.detail_line == "fruit"
    assert kumquat.source_id == "async"
