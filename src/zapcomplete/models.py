# src/zapcomplete/models.py
"""
Data models for the completion aggregator.

- AnchorContext: the typed-prefix state at one point in time.
- RawSuggestion: one suggestion as a source sent it, with optional fields
  resolved to explicit defaults.
- Candidate: a formatted suggestion living in a source cache.
- SourceState: cache + request bookkeeping for one (document, source) pair.
- DocumentSession: the per-document registry entry owned by the coordinator.

Only SourceState and DocumentSession carry mutable bookkeeping; the scoring
and ranking code treats everything else as plain data.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Optional, Tuple

SourceId = Hashable
DedupKey = Tuple[str, Optional[str], str]


@dataclass(frozen=True, slots=True)
class AnchorContext:
    """
    prefix : str
        The word typed so far (text between anchor_column and the cursor).
    anchor_column : int
        0-based column where the current word begins.
    line : int
        0-based cursor line.
    """
    prefix: str
    anchor_column: int
    line: int

    def same_anchor(self, other: Optional["AnchorContext"]) -> bool:
        """Line and anchor column match; the prefix may have grown."""
        return (
            other is not None
            and self.anchor_column == other.anchor_column
            and self.line == other.line
        )


@dataclass(frozen=True, slots=True)
class RawSuggestion:
    label: str
    insert_text: Optional[str] = None
    new_text: Optional[str] = None          # textEdit.newText
    detail: Optional[str] = None
    kind: Any = None                        # LSP kind number or a name
    label_description: Optional[str] = None  # labelDetails.description
    additional_edits: Tuple[Any, ...] = ()
    payload: Any = None                     # the item exactly as received

    @classmethod
    def from_item(cls, item: Any) -> "RawSuggestion":
        """
        Accept a RawSuggestion, an LSP-style mapping, or a bare string.
        Raises ValueError when the item carries no usable text.
        """
        if isinstance(item, RawSuggestion):
            raw = item
        elif isinstance(item, str):
            raw = cls(label=item, payload=item)
        elif isinstance(item, Mapping):
            text_edit = item.get("textEdit")
            label_details = item.get("labelDetails")
            raw = cls(
                label=item.get("label") or "",
                insert_text=item.get("insertText"),
                new_text=text_edit.get("newText") if isinstance(text_edit, Mapping) else None,
                detail=item.get("detail"),
                kind=item.get("kind"),
                label_description=(
                    label_details.get("description") if isinstance(label_details, Mapping) else None
                ),
                additional_edits=tuple(item.get("additionalTextEdits") or ()),
                payload=item,
            )
        else:
            raise ValueError(f"Unsupported suggestion type: {type(item).__name__}")

        if not raw.text:
            raise ValueError(f"Suggestion without usable text: {item!r}")
        return raw

    @property
    def text(self) -> str:
        """Text inserted on acceptance: textEdit.newText > insertText > label."""
        return self.new_text or self.insert_text or self.label or ""


@dataclass(slots=True)
class Candidate:
    """
    One suggestion as shown in the popup.

    Everything but `score` is fixed at ingestion time. `score` holds the
    1-based ordinal assigned by the last ranking pass (0 before any pass).
    `raw_item` is the source's own payload; the core never looks inside it.
    """
    insert_text: str
    display_label: str
    kind_tag: str
    detail_line: Optional[str]
    source_id: SourceId
    raw_item: Any = None
    additional_edits: Tuple[Any, ...] = ()
    score: float = 0

    @property
    def key(self) -> DedupKey:
        return (self.insert_text, self.detail_line, self.display_label)


@dataclass(slots=True)
class SourceState:
    source_id: SourceId
    cache: List[Candidate] = field(default_factory=list)
    slots: Dict[DedupKey, int] = field(default_factory=dict)   # dedup key -> cache index
    last_prefix: Optional[str] = None
    last_anchor_column: Optional[int] = None
    last_line: Optional[int] = None
    context_changed: bool = False
    # request bookkeeping (RequestScheduler)
    request_in_flight: bool = False
    request_pending: bool = False
    request_context: Optional[AnchorContext] = None
    generation: int = 0
    timer: Optional[asyncio.TimerHandle] = None

    def differs_from(self, ctx: AnchorContext) -> bool:
        return (
            self.last_prefix != ctx.prefix
            or self.last_anchor_column != ctx.anchor_column
            or self.last_line != ctx.line
        )

    def anchor_moved(self, ctx: AnchorContext) -> bool:
        """True only when a previous context exists and its word/line differs."""
        return (
            (self.last_anchor_column is not None and self.last_anchor_column != ctx.anchor_column)
            or (self.last_line is not None and self.last_line != ctx.line)
        )

    def remember(self, ctx: AnchorContext) -> None:
        self.last_prefix = ctx.prefix
        self.last_anchor_column = ctx.anchor_column
        self.last_line = ctx.line

    def forget(self) -> None:
        self.last_prefix = None
        self.last_anchor_column = None
        self.last_line = None


@dataclass
class DocumentSession:
    """
    Registry entry for one open document. `cache` is its SourceCache (which
    owns the SourceStates) and `scheduler` its RequestScheduler.
    """
    document: Hashable
    cache: Any
    scheduler: Any
    source_ids: List[SourceId] = field(default_factory=list)   # attach order
    sources: Dict[SourceId, Any] = field(default_factory=dict)  # SourceId -> CompletionSource
    render_generation: int = 0
    deferred: Dict[int, asyncio.Handle] = field(default_factory=dict)   # render generation -> handle
    closed: bool = False
