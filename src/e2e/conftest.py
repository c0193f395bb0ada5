# src/e2e/conftest.py
from __future__ import annotations
import asyncio
from typing import Any, AsyncGenerator, List

import pytest
import pytest_asyncio

from zapcomplete import BufferEditor, Candidate, CompletionOptions, SessionCoordinator
from zapcomplete.sources import RequestParams

DOC = "doc"


class FakeSource:
    """
    Source double whose answers the test releases by hand:
      - calls: RequestParams of every request, in order
      - respond(items) / fail(exc): resolve the oldest open request
    """
    def __init__(self) -> None:
        self.calls: List[RequestParams] = []
        self._open: List[asyncio.Future] = []

    async def request(self, params: RequestParams) -> Any:
        fut = asyncio.get_running_loop().create_future()
        self.calls.append(params)
        self._open.append(fut)
        return await fut

    @property
    def open_requests(self) -> int:
        return len(self._open)

    def respond(self, items: Any, index: int = 0) -> None:
        fut = self._open.pop(index)
        if not fut.done():  # cancelled when the session closed
            fut.set_result(items)

    def fail(self, exc: BaseException, index: int = 0) -> None:
        fut = self._open.pop(index)
        if not fut.done():
            fut.set_exception(exc)


async def settle(rounds: int = 5) -> None:
    """Let callbacks and resumed tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def cand(text: str, source: str = "s", detail: str | None = None) -> Candidate:
    return Candidate(insert_text=text, display_label=text, kind_tag="t", detail_line=detail, source_id=source)


@pytest.fixture
def editor() -> BufferEditor:
    ed = BufferEditor()
    ed.open(DOC, "")
    return ed


@pytest_asyncio.fixture
async def coord(editor: BufferEditor) -> AsyncGenerator[SessionCoordinator, None]:
    c = SessionCoordinator(editor, CompletionOptions(debounce_ms=0))
    yield c
    c.shutdown()
    await settle()
