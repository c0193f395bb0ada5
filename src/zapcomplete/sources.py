# src/zapcomplete/sources.py
from __future__ import annotations
import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterable, List, Mapping, Protocol, Sequence, runtime_checkable

from .normalize import iter_identifiers


@dataclass(frozen=True)
class RequestParams:
    """What a source gets to see when asked for suggestions."""
    document: Hashable
    line: int            # 0-based cursor line
    column: int          # 0-based cursor column
    prefix: str
    anchor_column: int


@runtime_checkable
class CompletionSource(Protocol):
    async def request(self, params: RequestParams) -> Any:
        """Return a list of raw items, or a mapping with `items` (and `isIncomplete`)."""
        ...


def normalize_response(result: Any) -> List[Any]:
    """list | {items, isIncomplete} | None -> list of raw items"""
    if result is None:
        return []
    if isinstance(result, Mapping):
        return list(result.get("items") or [])
    items = getattr(result, "items", None)
    if items is not None and not callable(items):
        return list(items)
    return list(result)


def is_incomplete(result: Any) -> bool:
    if isinstance(result, Mapping):
        return bool(result.get("isIncomplete", False))
    return bool(getattr(result, "is_incomplete", False))


class FunctionSource:
    """Adapt a plain (async or sync) callable into a CompletionSource."""

    def __init__(self, fn: Callable[[RequestParams], Any]) -> None:
        self._fn = fn

    async def request(self, params: RequestParams) -> Any:
        result = self._fn(params)
        if inspect.isawaitable(result):
            result = await result
        return result


class WordListSource:
    """
    Static vocabulary. Returns every word, the way a language server returns
    its whole list for a position and leaves filtering to the client.
    """

    def __init__(self, words: Iterable[str], *, kind: Any = "Text",
                 detail: str | None = None, delay: float = 0.0) -> None:
        self.words: List[str] = list(dict.fromkeys(w for w in words if w))
        self.kind = kind
        self.detail = detail
        self.delay = delay  # simulated latency (seconds)

    async def request(self, params: RequestParams) -> Any:
        if self.delay:
            await asyncio.sleep(self.delay)
        return [{"label": w, "kind": self.kind, "detail": self.detail} for w in self.words]

    @classmethod
    def from_file(cls, path: str, **kwargs: Any) -> "WordListSource":
        with open(path, "r", encoding="utf-8", errors="ignore") as f:
            return cls((ln.strip() for ln in f), **kwargs)


class BufferWordsSource:
    """Identifiers harvested from the document itself, except the word being typed."""

    def __init__(self, get_lines: Callable[[Hashable], Sequence[str]], *, min_len: int = 3) -> None:
        self._get_lines = get_lines
        self.min_len = min_len

    async def request(self, params: RequestParams) -> Any:
        lines = list(self._get_lines(params.document))
        if 0 <= params.line < len(lines):
            # leave out the word under the cursor
            ln = lines[params.line]
            end = params.column
            while end < len(ln) and (ln[end].isalnum() or ln[end] == "_"):
                end += 1
            lines[params.line] = ln[:params.anchor_column] + ln[end:]
        return {
            "isIncomplete": False,
            "items": [{"label": w, "kind": "Text", "detail": "buffer"}
                      for w in iter_identifiers(lines, self.min_len)],
        }
