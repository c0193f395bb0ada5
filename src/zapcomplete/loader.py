from __future__ import annotations
import logging
from typing import Any, Iterable, Iterator, Optional

from .config import CompletionOptions
from .models import Candidate, RawSuggestion, SourceId
from .normalize import first_line, fit_label

log = logging.getLogger(__name__)

# LSP CompletionItemKind
KIND_NAMES = {
    1: "Text", 2: "Method", 3: "Function", 4: "Constructor", 5: "Field",
    6: "Variable", 7: "Class", 8: "Interface", 9: "Module", 10: "Property",
    11: "Unit", 12: "Value", 13: "Enum", 14: "Keyword", 15: "Snippet",
    16: "Color", 17: "File", 18: "Reference", 19: "Folder", 20: "EnumMember",
    21: "Constant", 22: "Struct", 23: "Event", 24: "Operator", 25: "TypeParameter",
}


def kind_name(kind: Any) -> str:
    if isinstance(kind, str) and kind:
        return kind
    return KIND_NAMES.get(kind, "Unknown")


def build_candidate(raw: RawSuggestion, source_id: SourceId, options: CompletionOptions) -> Candidate:
    label = raw.label or raw.text
    if raw.label_description:
        label = f"{label} +{raw.label_description}"
    cand = Candidate(
        insert_text=raw.text,
        display_label=fit_label(label, options.pum_width),
        kind_tag=options.kind_format(kind_name(raw.kind)),
        detail_line=first_line(raw.detail),
        source_id=source_id,
        raw_item=raw.payload if raw.payload is not None else raw,
        additional_edits=raw.additional_edits,
    )
    return options.format_candidate(cand)


def load_candidates(items: Iterable[Any], source_id: SourceId, options: CompletionOptions) -> Iterator[Candidate]:
    """
    Turn a batch of raw items into Candidates. Items without usable text are
    skipped one by one; the rest of the batch is still processed.
    """
    skipped = 0
    for item in items:
        try:
            raw = RawSuggestion.from_item(item)
        except ValueError as exc:
            skipped += 1
            log.debug("Skipping suggestion from %r: %s", source_id, exc)
            continue
        cand: Optional[Candidate] = build_candidate(raw, source_id, options)
        if cand is None:
            skipped += 1
            continue
        yield cand
    if skipped:
        log.debug("Skipped %d malformed suggestion(s) from %r", skipped, source_id)
