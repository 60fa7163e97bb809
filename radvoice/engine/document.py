"""Document-edit capability consumed by the command executor.

Positions are 0-based offsets into the document's plain text. Any rich-text
editor can be adapted by implementing `EditTarget`; `InMemoryDocument` is a
plain-text implementation used by the CLI, the web sessions and the tests.
"""

from dataclasses import dataclass
from typing import Protocol


class EditTarget(Protocol):
    """Structural type for an editable document with a cursor."""

    def insert_text(self, text: str) -> None: ...

    def set_content(self, text: str) -> None: ...

    def clear(self) -> None: ...

    def delete_range(self, start: int, end: int) -> None: ...

    def replace_range(self, start: int, end: int, text: str) -> None: ...

    def hard_break(self) -> None: ...

    def split_block(self) -> None: ...

    def toggle_mark(self, mark: str) -> None: ...

    def set_alignment(self, alignment: str) -> None: ...

    def set_selection(self, start: int, end: int | None = None) -> None: ...

    def select_all(self) -> None: ...

    def undo(self) -> bool: ...

    def redo(self) -> bool: ...

    @property
    def selection(self) -> tuple[int, int]: ...

    def text_between(self, start: int, end: int) -> str: ...

    def current_block(self) -> tuple[int, int]: ...

    @property
    def text(self) -> str: ...

    @property
    def size(self) -> int: ...


@dataclass
class _Snapshot:
    text: str
    selection: tuple[int, int]
    marks: list[tuple[int, int, str]]
    alignments: dict[int, str]


class InMemoryDocument:
    """Plain-text document with selection, formatting marks and history.

    Lines are separated by "\\n"; a paragraph split leaves an empty line.
    Formatting is tracked as (start, end, mark) spans and per-line
    alignment keyed by the line's start offset.
    """

    def __init__(self, text: str = ""):
        self._text = text
        self._selection = (len(text), len(text))
        self.marks: list[tuple[int, int, str]] = []
        self.alignments: dict[int, str] = {}
        self._undo: list[_Snapshot] = []
        self._redo: list[_Snapshot] = []

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def text(self) -> str:
        return self._text

    @property
    def size(self) -> int:
        return len(self._text)

    @property
    def selection(self) -> tuple[int, int]:
        return self._selection

    def text_between(self, start: int, end: int) -> str:
        start, end = self._clamp(start), self._clamp(end)
        return self._text[start:end]

    def current_block(self) -> tuple[int, int]:
        pos = self._selection[0]
        start = self._text.rfind("\n", 0, pos) + 1
        end = self._text.find("\n", pos)
        return start, len(self._text) if end == -1 else end

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def insert_text(self, text: str):
        start, end = self._selection
        self.replace_range(start, end, text)

    def replace_range(self, start: int, end: int, text: str):
        start, end = self._check_range(start, end)
        self._checkpoint()
        self._text = self._text[:start] + text + self._text[end:]
        cursor = start + len(text)
        self._selection = (cursor, cursor)

    def delete_range(self, start: int, end: int):
        self.replace_range(start, end, "")

    def set_content(self, text: str):
        self._checkpoint()
        self._text = text
        self.marks = []
        self.alignments = {}
        self._selection = (len(text), len(text))

    def clear(self):
        self.set_content("")

    def hard_break(self):
        self.insert_text("\n")

    def split_block(self):
        self.insert_text("\n\n")

    def toggle_mark(self, mark: str):
        start, end = self._selection
        self._checkpoint()
        span = (start, end, mark)
        if span in self.marks:
            self.marks.remove(span)
        else:
            self.marks.append(span)

    def set_alignment(self, alignment: str):
        self._checkpoint()
        line_start, _ = self.current_block()
        self.alignments[line_start] = alignment

    def set_selection(self, start: int, end: int | None = None):
        if end is None:
            end = start
        self._selection = self._check_range(start, end)

    def select_all(self):
        self._selection = (0, len(self._text))

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._snapshot())
        self._restore(self._undo.pop())
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._snapshot())
        self._restore(self._redo.pop())
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _clamp(self, pos: int) -> int:
        return max(0, min(pos, len(self._text)))

    def _check_range(self, start: int, end: int) -> tuple[int, int]:
        if start < 0 or end > len(self._text) or start > end:
            raise ValueError(f"Invalid range [{start}, {end}] for document of size {len(self._text)}")
        return start, end

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(self._text, self._selection, list(self.marks), dict(self.alignments))

    def _restore(self, snap: _Snapshot):
        self._text = snap.text
        self._selection = snap.selection
        self.marks = snap.marks
        self.alignments = snap.alignments

    def _checkpoint(self):
        self._undo.append(self._snapshot())
        self._redo.clear()
