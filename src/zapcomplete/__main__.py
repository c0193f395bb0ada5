from __future__ import annotations
import argparse, asyncio, json, logging, os, sys
from typing import List

from . import config as CFG
from .config import CompletionOptions
from .editor import BufferEditor
from .engine import SessionCoordinator
from .sources import BufferWordsSource, WordListSource

DOC = "cli"

def _supports_color() -> bool:
    return sys.stdout.isatty() and os.environ.get("NO_COLOR", "") == ""

CSI = "\033["
def _c(text: str, code: str) -> str:
    if not _supports_color(): return text
    return f"{CSI}{code}m{text}{CSI}0m"

def _print_table(rows: List[dict]) -> None:
    if not rows:
        print(_c("(no matches)", "2;37")); return
    print(_c("#   Kind  Source      Label                              Detail", "1;37"))
    for r in rows:
        print(f"{r['rank']:<3} {r['kind']:<5} {str(r['source'])[:10]:<11} {r['label']} {r['detail'] or ''}")

def _rows(editor: BufferEditor, k: int) -> List[dict]:
    return [
        {"rank": int(c.score), "word": c.insert_text, "label": c.display_label,
         "kind": c.kind_tag, "detail": c.detail_line, "source": c.source_id}
        for c in editor.popup(DOC)[:k]
    ]

async def _run(args: argparse.Namespace) -> int:
    text = ""
    if args.buffer:
        with open(args.buffer, "r", encoding="utf-8", errors="ignore") as f:
            text = f.read()

    opts = CompletionOptions(debounce_ms=args.debounce_ms, pum_width=args.pum_width)
    editor = BufferEditor()
    coord = SessionCoordinator(editor, opts)

    def reset(buffer_text: str) -> None:
        coord.close(DOC)
        editor.open(DOC, buffer_text)
        for path in args.words:
            coord.attach(DOC, os.path.basename(path), WordListSource.from_file(path, detail=os.path.basename(path)))
        if not args.no_buffer_words:
            coord.attach(DOC, "buffer", BufferWordsSource(editor.lines))

    async def type_and_show(typed: str) -> None:
        # one edit event per keystroke, answers arrive whenever they arrive
        for ch in typed:
            editor.type_text(DOC, ch)
            coord.on_text_changed(DOC)
            await asyncio.sleep(0)
        await coord.drain(DOC)
        rows = _rows(editor, args.k)
        if args.json:
            print(json.dumps(rows, ensure_ascii=False, indent=2, default=str))
        else:
            _print_table(rows)

    reset(text)
    try:
        if args.q is not None:
            await type_and_show(args.q)

        if args.repl:
            print("Type text to append at the cursor (empty line to exit).  Type '#' to reset the buffer.")
            loop = asyncio.get_running_loop()
            while True:
                try:
                    raw = await loop.run_in_executor(None, input, "> ")
                except (EOFError, KeyboardInterrupt):
                    print(); break
                if raw == "":
                    break
                if raw.strip() == "#":
                    reset(text); print(_c("(reset)", "2;36")); continue
                await type_and_show(raw)
        return 0
    finally:
        coord.shutdown()

def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Completion aggregator CLI: type into a buffer and print the popup")
    p.add_argument("--words", nargs="+", default=[], help="Word-list files, one word per line (one source each)")
    p.add_argument("--buffer", default=None, help="File whose text is the document being edited")
    p.add_argument("--no-buffer-words", action="store_true", help="Do not offer identifiers from the buffer")
    p.add_argument("--q", default=None, help="Text to type at the end of the buffer")
    p.add_argument("--repl", action="store_true", help="Interactive loop after --q")
    p.add_argument("-k", type=int, default=CFG.TOP_K, help="Rows to print")
    p.add_argument("--debounce-ms", type=float, default=CFG.DEBOUNCE_MS)
    p.add_argument("--pum-width", type=int, default=CFG.PUM_WIDTH)
    p.add_argument("--json", action="store_true", help="Emit JSON rows")
    p.add_argument("--verbose", action="store_true")
    args = p.parse_args(argv)

    if args.q is None and not args.repl:
        p.error("nothing to do: pass --q and/or --repl")
    if args.k <= 0:
        p.error("-k must be positive")

    if args.verbose or CFG.DEBUG:
        logging.basicConfig(level=logging.DEBUG)

    return asyncio.run(_run(args))

if __name__ == "__main__":
    raise SystemExit(main())
