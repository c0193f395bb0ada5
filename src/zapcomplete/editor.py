# src/zapcomplete/editor.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Optional, Protocol, Sequence, Tuple

from .models import Candidate, SourceId


class EditorView(Protocol):
    """What the coordinator needs from the editor. All calls are synchronous."""
    # queries
    def cursor(self, document: Hashable) -> Tuple[int, int]: ...          # (line, col), 0-based
    def line_text(self, document: Hashable, line: int) -> str: ...
    def lines(self, document: Hashable, start: int = 0, end: Optional[int] = None) -> List[str]: ...
    def is_visible(self, document: Hashable) -> bool: ...
    def has_selection(self, document: Hashable) -> bool: ...
    # popup
    def show(self, document: Hashable, column: int, candidates: Sequence[Candidate]) -> None: ...
    def hide(self, document: Hashable) -> None: ...
    # side effects of an accepted completion
    def apply_edits(self, document: Hashable, edits: Sequence[Any], source_id: SourceId) -> None: ...


@dataclass
class Buffer:
    lines: List[str] = field(default_factory=lambda: [""])
    line: int = 0
    col: int = 0
    popup: Optional[List[Candidate]] = None     # None = hidden
    popup_column: int = 0
    selected: int = -1                          # -1 = nothing explicitly selected
    applied_edits: List[Any] = field(default_factory=list)


class BufferEditor:
    """
    In-memory multi-document editor. Holds text, a cursor and a popup per
    document; good enough to drive the coordinator from tests, the CLI and
    the playgrounds.
    """

    def __init__(self) -> None:
        self._docs: Dict[Hashable, Buffer] = {}

    # C
    def open(self, document: Hashable, text: str = "", *, cursor: Optional[Tuple[int, int]] = None) -> Buffer:
        buf = Buffer(lines=text.split("\n") if text else [""])
        if cursor is None:
            buf.line = len(buf.lines) - 1
            buf.col = len(buf.lines[-1])
        else:
            buf.line, buf.col = cursor
        self._docs[document] = buf
        return buf

    # R
    def buffer(self, document: Hashable) -> Buffer:
        try:
            return self._docs[document]
        except KeyError:
            raise KeyError(document)

    def text(self, document: Hashable) -> str:
        return "\n".join(self.buffer(document).lines)

    def cursor(self, document: Hashable) -> Tuple[int, int]:
        buf = self.buffer(document)
        return buf.line, buf.col

    def line_text(self, document: Hashable, line: int) -> str:
        buf = self.buffer(document)
        return buf.lines[line] if 0 <= line < len(buf.lines) else ""

    def lines(self, document: Hashable, start: int = 0, end: Optional[int] = None) -> List[str]:
        return list(self.buffer(document).lines[start:end])

    def is_visible(self, document: Hashable) -> bool:
        return document in self._docs and self._docs[document].popup is not None

    def has_selection(self, document: Hashable) -> bool:
        buf = self._docs.get(document)
        return buf is not None and buf.popup is not None and buf.selected >= 0

    def popup(self, document: Hashable) -> List[Candidate]:
        return list(self.buffer(document).popup or [])

    # U
    def set_text(self, document: Hashable, text: str) -> None:
        buf = self.buffer(document)
        buf.lines = text.split("\n")
        buf.line = min(buf.line, len(buf.lines) - 1)
        buf.col = min(buf.col, len(buf.lines[buf.line]))

    def type_text(self, document: Hashable, text: str) -> None:
        """Insert at the cursor; newlines split the line."""
        buf = self.buffer(document)
        for ch in text:
            cur = buf.lines[buf.line]
            if ch == "\n":
                buf.lines[buf.line] = cur[:buf.col]
                buf.lines.insert(buf.line + 1, cur[buf.col:])
                buf.line += 1
                buf.col = 0
            else:
                buf.lines[buf.line] = cur[:buf.col] + ch + cur[buf.col:]
                buf.col += 1

    def backspace(self, document: Hashable, count: int = 1) -> None:
        buf = self.buffer(document)
        for _ in range(count):
            if buf.col == 0:
                break
            cur = buf.lines[buf.line]
            buf.lines[buf.line] = cur[:buf.col - 1] + cur[buf.col:]
            buf.col -= 1

    def move_cursor(self, document: Hashable, line: int, col: int) -> None:
        buf = self.buffer(document)
        buf.line = max(0, min(line, len(buf.lines) - 1))
        buf.col = max(0, min(col, len(buf.lines[buf.line])))

    def select(self, document: Hashable, index: int) -> None:
        self.buffer(document).selected = index

    def show(self, document: Hashable, column: int, candidates: Sequence[Candidate]) -> None:
        buf = self.buffer(document)
        buf.popup = list(candidates)
        buf.popup_column = column
        buf.selected = -1

    def hide(self, document: Hashable) -> None:
        buf = self._docs.get(document)
        if buf is not None:
            buf.popup = None
            buf.selected = -1

    def accept(self, document: Hashable, index: Optional[int] = None) -> Candidate:
        """Replace the current word with the chosen item and close the popup."""
        buf = self.buffer(document)
        if not buf.popup:
            raise LookupError("no completion popup is visible")
        idx = buf.selected if index is None else index
        cand = buf.popup[max(idx, 0)]
        cur = buf.lines[buf.line]
        start = min(buf.popup_column, buf.col)
        buf.lines[buf.line] = cur[:start] + cand.insert_text + cur[buf.col:]
        buf.col = start + len(cand.insert_text)
        self.hide(document)
        return cand

    def apply_edits(self, document: Hashable, edits: Sequence[Any], source_id: SourceId) -> None:
        """
        Apply LSP TextEdits ({"range": {"start", "end"}, "newText"}) and record
        them. Edits are applied last-first so earlier ranges stay valid; the
        cursor moves with text inserted before it.
        """
        buf = self.buffer(document)
        text = "\n".join(buf.lines)
        starts = _line_starts(buf.lines)
        cursor = _offset(starts, buf.lines, buf.line, buf.col)

        spans = []
        for edit in edits:
            buf.applied_edits.append(edit)
            rng = edit.get("range") if isinstance(edit, dict) else None
            if not isinstance(rng, dict) or "newText" not in edit:
                continue
            start = _offset(starts, buf.lines, rng["start"]["line"], rng["start"]["character"])
            end = _offset(starts, buf.lines, rng["end"]["line"], rng["end"]["character"])
            spans.append((start, max(start, end), str(edit["newText"])))

        for start, end, new_text in sorted(spans, key=lambda s: (s[0], s[1]), reverse=True):
            text = text[:start] + new_text + text[end:]
            if end <= cursor:
                cursor += len(new_text) - (end - start)
            elif start < cursor:
                cursor = start + len(new_text)

        buf.lines = text.split("\n")
        before = text[:cursor].split("\n")
        buf.line = len(before) - 1
        buf.col = len(before[-1])

    # D
    def close(self, document: Hashable) -> None:
        self._docs.pop(document, None)

    def documents(self) -> Iterable[Hashable]:
        return list(self._docs)


def _line_starts(lines: Sequence[str]) -> List[int]:
    starts, pos = [], 0
    for ln in lines:
        starts.append(pos)
        pos += len(ln) + 1
    return starts


def _offset(starts: Sequence[int], lines: Sequence[str], line: int, character: int) -> int:
    """(line, character) -> offset into the joined text, clamped to the buffer."""
    if line >= len(lines):
        return starts[-1] + len(lines[-1])
    line = max(0, int(line))
    return starts[line] + max(0, min(int(character), len(lines[line])))
