"""Bounded, index-pointered undo/redo log of whole-document snapshots.

WHY: Every edit must be undoable as one atomic step, including compound
edits such as "create speaker C and reassign two segments to it". Storing
whole immutable snapshots (instead of inverse operations) makes undo a
pointer move and makes compound edits trivially atomic.

HOW: push_history() is a pure function over (entries, index) so callers
can compute the next log without touching shared state. History wraps it
with undo/redo pointer moves.

RULES:
- push truncates the redo branch past index, appends, then evicts the
  oldest entries until the log fits max_len
- undo is a no-op when index <= 0; redo is a no-op when index >= len - 1
- Value-equal consecutive entries are NOT deduplicated
- An empty log has index -1
"""

from __future__ import annotations

from collections.abc import Sequence

from transcript_editor.config import MAX_HISTORY
from transcript_editor.core.models import DocumentSnapshot


def push_history(
    entries: Sequence[DocumentSnapshot],
    index: int,
    entry: DocumentSnapshot,
    max_len: int = MAX_HISTORY,
) -> tuple[list[DocumentSnapshot], int]:
    """Append an entry after the current index and cap the log length.

    Args:
        entries: The current log.
        index: Position of the entry the document currently reflects.
        entry: The new snapshot.
        max_len: Maximum number of retained entries.

    Returns:
        (new_entries, new_index) where new_index == len(new_entries) - 1.
    """
    if max_len < 1:
        raise ValueError("max_len must be at least 1")
    kept = list(entries[: index + 1])
    kept.append(entry)
    if len(kept) > max_len:
        kept = kept[len(kept) - max_len:]
    return kept, len(kept) - 1


class History:
    """Undo/redo log for one open document."""

    def __init__(self, max_len: int = MAX_HISTORY) -> None:
        self.max_len = max_len
        self._entries: list[DocumentSnapshot] = []
        self._index = -1

    @property
    def entries(self) -> tuple[DocumentSnapshot, ...]:
        return tuple(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, entry: DocumentSnapshot) -> None:
        self._entries, self._index = push_history(
            self._entries, self._index, entry, self.max_len
        )

    def reset(self, entry: DocumentSnapshot | None = None) -> None:
        """Replace the log with a single seed entry, or clear it."""
        if entry is None:
            self._entries, self._index = [], -1
        else:
            self._entries, self._index = [entry], 0

    def undo(self) -> DocumentSnapshot | None:
        """Step back one entry and return it, or None if nothing to undo."""
        if self._index <= 0:
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> DocumentSnapshot | None:
        """Step forward one entry and return it, or None if nothing to redo."""
        if self._index >= len(self._entries) - 1:
            return None
        self._index += 1
        return self._entries[self._index]
