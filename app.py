# app.py
# CustomTkinter playground for the completion aggregator (dark theme).
# - The left textbox is the "editor"; the right pane plays the popup menu.
# - Word lists load on a background thread (keeps UI responsive).
# - The asyncio loop that runs timers/requests is pumped from Tk's after().

from __future__ import annotations
import asyncio
import logging
import os
import threading
from typing import List, Optional, Sequence

import tkinter.filedialog as fd
import tkinter.messagebox as mb
import customtkinter as ctk

# Project imports (ensure PYTHONPATH=src or an installed package)
from zapcomplete import BufferEditor, BufferWordsSource, Candidate, SessionCoordinator, WordListSource
from zapcomplete import config as CFG

DOC = "playground"
PUMP_MS = 10


# -------------------- small helpers --------------------

def shorten_path(p: str, max_chars: int = 60) -> str:
    """Shorten long paths neatly for labels."""
    if len(p) <= max_chars:
        return p
    keep = max_chars // 2 - 3
    return p[:keep] + "..." + p[-keep:]


class TextboxEditor(BufferEditor):
    """BufferEditor mirrored from a CTkTextbox; show/hide paint the popup pane."""

    def __init__(self, app: "PlaygroundApp") -> None:
        super().__init__()
        self._app = app

    def sync(self) -> None:
        box = self._app.txt_editor
        text = box.get("1.0", "end-1c")
        line, col = (int(x) for x in box.index("insert").split("."))
        if DOC not in self.documents():
            self.open(DOC, text)
        else:
            self.set_text(DOC, text)
        self.move_cursor(DOC, line - 1, col)

    def show(self, document, column: int, candidates: Sequence[Candidate]) -> None:
        super().show(document, column, candidates)
        self._app.paint_popup(list(candidates))

    def hide(self, document) -> None:
        super().hide(document)
        self._app.paint_popup([])


# -------------------- main app --------------------

class PlaygroundApp(ctk.CTk):
    """Dark-themed editor playground: type on the left, watch the popup on the right."""

    def __init__(self) -> None:
        super().__init__()

        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        self.title("Completion Playground")
        self.geometry("1000x650")
        self.minsize(820, 560)

        # State
        self._loading_thread: Optional[threading.Thread] = None
        self._loop = asyncio.new_event_loop()
        self._pump_id: Optional[str] = None
        self._word_sources = 0

        self.font_title = ctk.CTkFont(size=18, weight="bold")
        self.font_mono = ctk.CTkFont(family="Cascadia Mono, Menlo, Consolas, Courier New", size=13)

        self.grid_columnconfigure(0, weight=3)
        self.grid_columnconfigure(1, weight=2)
        self.grid_rowconfigure(1, weight=1)

        self._build_header()
        self._build_editor()
        self._build_popup()
        self._build_log()

        self.editor = TextboxEditor(self)
        self.editor.sync()
        self.coord = SessionCoordinator(self.editor, loop=self._loop)
        self.coord.attach(DOC, "buffer", BufferWordsSource(self.editor.lines))

        self._log("Ready. Type in the editor; Tab accepts the top item.")
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self._pump_id = self.after(PUMP_MS, self._pump)

    # --------- UI sections ---------

    def _build_header(self) -> None:
        header = ctk.CTkFrame(self, corner_radius=10)
        header.grid(row=0, column=0, columnspan=2, sticky="ew", padx=12, pady=(12, 6))
        header.grid_columnconfigure(1, weight=1)

        ctk.CTkLabel(header, text="Completion Playground", font=self.font_title).grid(
            row=0, column=0, sticky="w", padx=12, pady=10
        )
        ctk.CTkButton(header, text="Add Word List", command=self._choose_words).grid(
            row=0, column=2, padx=12, pady=10
        )
        self.lbl_status = ctk.CTkLabel(header, text="Status: -", anchor="e")
        self.lbl_status.grid(row=0, column=1, sticky="e", padx=12, pady=10)

    def _build_editor(self) -> None:
        self.txt_editor = ctk.CTkTextbox(self, wrap="none", font=self.font_mono)
        self.txt_editor.grid(row=1, column=0, sticky="nsew", padx=(12, 6), pady=6)
        self.txt_editor.bind("<KeyRelease>", self._on_key)
        self.txt_editor.bind("<ButtonRelease-1>", self._on_click)
        self.txt_editor.bind("<Tab>", self._on_tab)

    def _build_popup(self) -> None:
        self.txt_popup = ctk.CTkTextbox(self, wrap="none", font=self.font_mono)
        self.txt_popup.grid(row=1, column=1, sticky="nsew", padx=(6, 12), pady=6)
        self.txt_popup.configure(state="disabled")

    def _build_log(self) -> None:
        self.txt_log = ctk.CTkTextbox(self, height=110, wrap="word", font=ctk.CTkFont(size=12))
        self.txt_log.grid(row=2, column=0, columnspan=2, sticky="nsew", padx=12, pady=(6, 12))

    # --------- editor events ---------

    def _on_key(self, ev=None) -> None:
        if ev is not None and ev.keysym in ("Tab", "Shift_L", "Shift_R", "Control_L", "Control_R"):
            return
        self.editor.sync()
        if ev is not None and ev.keysym in ("Left", "Right", "Up", "Down", "Home", "End"):
            self.coord.on_cursor_moved(DOC)
        else:
            self.coord.on_text_changed(DOC)

    def _on_click(self, _ev=None) -> None:
        self.editor.sync()
        self.coord.on_cursor_moved(DOC)

    def _on_tab(self, _ev=None) -> str:
        if not self.editor.is_visible(DOC):
            return ""
        cand = self.editor.accept(DOC, 0)
        self.coord.on_completion_accepted(DOC, cand)
        # additional edits may touch other lines: repaint the whole buffer
        self.txt_editor.delete("1.0", "end")
        self.txt_editor.insert("1.0", self.editor.text(DOC))
        line, col = self.editor.cursor(DOC)
        self.txt_editor.mark_set("insert", f"{line + 1}.{col}")
        self._log(f"Accepted {cand.insert_text!r} from {cand.source_id}")
        return "break"

    # --------- word lists (threaded) ---------

    def _choose_words(self) -> None:
        path = fd.askopenfilename(title="Choose word list", filetypes=[("Text", "*.txt"), ("All files", "*.*")])
        if not path:
            return
        if self._loading_thread and self._loading_thread.is_alive():
            mb.showinfo("Loading", "A word list is already loading. Please wait.")
            return
        self._set_status(f"Loading {shorten_path(path, 40)}…")
        self._loading_thread = threading.Thread(target=self._load_worker, args=(path,), daemon=True)
        self._loading_thread.start()

    def _load_worker(self, path: str) -> None:
        try:
            source = WordListSource.from_file(path, detail=os.path.basename(path))
        except OSError as exc:
            self.after(0, lambda: self._on_load_error(exc))
            return
        self.after(0, lambda: self._on_load_ok(path, source))

    def _on_load_ok(self, path: str, source: WordListSource) -> None:
        self._word_sources += 1
        self.coord.attach(DOC, f"words{self._word_sources}", source)
        self._set_status(f"{len(source.words):,} words from {os.path.basename(path)}")
        self._log(f"Attached word list {path} ({len(source.words)} words).")

    def _on_load_error(self, exc: Exception) -> None:
        self._set_status("Error while loading word list.")
        self._log(f"ERROR: {exc!r}")
        mb.showerror("Load error", "Failed to load word list.\nSee event log for details.")

    # --------- popup / misc UI helpers ---------

    def paint_popup(self, items: List[Candidate]) -> None:
        lines = [f"{int(c.score):<3} {c.kind_tag:<2} {c.display_label} {c.detail_line or ''}" for c in items]
        self.txt_popup.configure(state="normal")
        self.txt_popup.delete("0.0", "end")
        if lines:
            self.txt_popup.insert("end", "\n".join(lines))
        self.txt_popup.configure(state="disabled")

    def _set_status(self, text: str) -> None:
        self.lbl_status.configure(text=f"Status: {text}")

    def _log(self, msg: str) -> None:
        self.txt_log.insert("end", msg + "\n")
        self.txt_log.see("end")

    # --------- asyncio pump / lifecycle ---------

    def _pump(self) -> None:
        # run whatever is ready (timers that came due, finished requests), then yield to Tk
        self._loop.call_soon(self._loop.stop)
        self._loop.run_forever()
        self._pump_id = self.after(PUMP_MS, self._pump)

    def _on_close(self) -> None:
        if self._pump_id is not None:
            self.after_cancel(self._pump_id)
        self.coord.shutdown()
        self._loop.call_soon(self._loop.stop)
        self._loop.run_forever()
        self._loop.close()
        self.destroy()


if __name__ == "__main__":
    if CFG.DEBUG:
        logging.basicConfig(level=logging.DEBUG)
    app = PlaygroundApp()
    app.mainloop()
