from __future__ import annotations
import argparse
import asyncio
import logging
from typing import List

from flask import Flask, request, jsonify, Response
from zapcomplete import BufferEditor, BufferWordsSource, SessionCoordinator, WordListSource
from zapcomplete import config as CFG

app = Flask(__name__)
_vocabulary: List[str] = []
DOC = "web"

log = logging.getLogger(__name__)


async def _complete(text: str, line: int, col: int, words: List[str], k: int) -> dict:
    editor = BufferEditor()
    editor.open(DOC, text)
    editor.move_cursor(DOC, line, col)
    coord = SessionCoordinator(editor)
    try:
        coord.attach(DOC, "buffer", BufferWordsSource(editor.lines))
        vocab = list(dict.fromkeys(_vocabulary + words))
        if vocab:
            coord.attach(DOC, "words", WordListSource(vocab, detail="words"))
        coord.trigger(DOC)
        await coord.drain(DOC)
        ctx = coord.read_context(DOC)
        items = [
            {"word": c.insert_text, "label": c.display_label.rstrip(), "kind": c.kind_tag,
             "detail": c.detail_line, "source": str(c.source_id), "score": int(c.score)}
            for c in editor.popup(DOC)[:k]
        ]
        return {"prefix": ctx.prefix, "anchor": ctx.anchor_column, "line": ctx.line, "items": items}
    finally:
        coord.shutdown()


def _args() -> dict:
    data = request.get_json(silent=True) if request.method == "POST" else None
    if data is None:
        src = request.args
        words = [w for w in src.get("words", "", type=str).split(",") if w]
    else:
        src = data
        words = list(data.get("words") or [])
    text = str(src.get("text", "") or "")
    lines = text.split("\n")
    line = int(src.get("line", len(lines) - 1))
    col = int(src.get("col", len(lines[min(max(line, 0), len(lines) - 1)])))
    k = int(src.get("k", CFG.TOP_K))
    return {"text": text, "line": line, "col": col, "words": words, "k": k}

# ---------- API ----------
@app.route("/api/complete", methods=["GET", "POST"])
def api_complete():
    try:
        a = _args()
    except (TypeError, ValueError) as exc:
        return jsonify({"error": f"bad request: {exc}"}), 400
    if a["k"] <= 0:
        return jsonify({"error": "k must be positive"}), 400
    result = asyncio.run(_complete(a["text"], a["line"], a["col"], a["words"], a["k"]))
    return jsonify(result)


@app.get("/health")
def health():
    return jsonify({"ok": True, "words": len(_vocabulary)})

# ---------- UI ----------
@app.get("/")
def home():
    html = r"""
<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<title>Autocomplete playground</title>
<style>
body{margin:0;background:#0b0f14;color:#cfd8e3;font:15px/1.45 system-ui,sans-serif}
.container{max-width:980px;margin:24px auto;padding:0 16px}
textarea{width:100%;height:220px;background:#0b1117;color:#cfd8e3;border:1px solid #1c2530;
  border-radius:12px;padding:12px;font:14px ui-monospace,Menlo,Consolas,monospace}
.row{display:grid;grid-template-columns:3rem 3rem 1fr 12rem;gap:10px;padding:6px 10px;border-top:1px solid #1c2530}
.head{color:#8a94a6;font-weight:600}
.mono{font-family:ui-monospace,Menlo,Consolas,monospace}
</style>
</head>
<body>
<div class="container">
  <h1>Autocomplete playground</h1>
  <p>Type in the buffer; the popup for the word at the cursor is shown below.</p>
  <textarea id="buf" autofocus spellcheck="false"></textarea>
  <div id="meta">Ready.</div>
  <div class="row head"><div>#</div><div>Kind</div><div>Word</div><div>Detail</div></div>
  <div id="out"></div>
</div>
<script>
const buf = document.querySelector("#buf"), out = document.querySelector("#out"), meta = document.querySelector("#meta");
let t;
function cursor(){
  const before = buf.value.slice(0, buf.selectionStart).split("\n");
  return {line: before.length - 1, col: before[before.length - 1].length};
}
async function complete(){
  const c = cursor();
  const r = await fetch("/api/complete", {method: "POST", headers: {"Content-Type": "application/json"},
    body: JSON.stringify({text: buf.value, line: c.line, col: c.col, k: 15})});
  const data = await r.json();
  meta.textContent = `prefix "${data.prefix}" at column ${data.anchor}: ${data.items.length} item(s)`;
  out.innerHTML = data.items.map(i =>
    `<div class="row mono"><div>${i.score}</div><div>${i.kind}</div><div>${i.word}</div><div>${i.detail || ""}</div></div>`).join("");
}
buf.addEventListener("input", () => { clearTimeout(t); t = setTimeout(complete, 60); });
</script>
</body>
</html>
"""
    return Response(html, mimetype="text/html")

def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Run the Flask completion playground")
    ap.add_argument("--words", nargs="+", default=[], help="Word-list files, one word per line")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8000)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose or CFG.DEBUG:
        logging.basicConfig(level=logging.DEBUG)

    global _vocabulary
    vocab: List[str] = []
    for path in args.words:
        vocab.extend(WordListSource.from_file(path).words)
    _vocabulary = list(dict.fromkeys(vocab))
    log.info("Loaded %d words from %d file(s)", len(_vocabulary), len(args.words))

    app.run(host=args.host, port=args.port, debug=args.verbose)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
