"""Immutable document records for the transcript editor.

WHY: Undo/redo keeps whole-document snapshots. If any record inside a
snapshot could be mutated in place, an edit would silently rewrite
history. Frozen dataclasses with tuple collections make every snapshot
safe to share between the live store, the history log, the session
cache, and background AI runs.

HOW: Seven dataclasses describe the document:
  Word            : one timed token inside a segment
  Segment         : a timed span of text attributed to one speaker
  Speaker         : a named, colored entity assignable to segments
  Tag             : a named, colored label referenced by id
  Chapter         : a contiguous, non-overlapping range of segments
  DocumentSnapshot: the full document plus selection (one history entry)
  FileReference   : identity of an audio or transcript file

RULES:
- All records are frozen; edits build new records with dataclasses.replace()
- Collections are tuples, never lists
- Segment.speaker is a soft reference by speaker name, not id
- Segment.tags and Chapter.tags hold tag ids
- Times are float seconds
- Chapter.segment_count is derived and recomputed on every chapter commit
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from urllib.parse import quote

# Kept literal when quoting file names into session keys
_URI_SAFE = "!*'()"


def generate_id() -> str:
    """Return a fresh random identifier for segments, speakers, tags, chapters."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Word:
    """A single timed word inside a segment.

    RULES:
    - Words are ordered and non-overlapping within their segment
    - score is the ASR confidence (0.0–1.0); 1.0 once a human confirms
    """

    text: str
    start: float
    end: float
    speaker: str | None = None
    score: float | None = None


@dataclass(frozen=True)
class Segment:
    """A contiguous span of transcript text from a single speaker.

    WHY: Segments are the unit of editing. Speaker reassignment, text
    revision, splitting, merging, tagging, and chapter boundaries all
    address segments by id.

    RULES:
    - id is unique within a document
    - start < end; words lie within [start, end]
    - confirmed marks a human-verified segment (AI runs may skip it)
    """

    id: str
    speaker: str
    start: float
    end: float
    text: str
    words: tuple[Word, ...] = ()
    confirmed: bool = False
    bookmarked: bool = False
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class Speaker:
    """A named speaker with a palette color."""

    id: str
    name: str
    color: str


@dataclass(frozen=True)
class Tag:
    """A named label that segments and chapters reference by id."""

    id: str
    name: str
    color: str


@dataclass(frozen=True)
class Chapter:
    """A titled range of segments.

    WHY: Chapters give long transcripts an outline. They are created by
    hand or accepted from AI chapter detection.

    RULES:
    - start_segment_id / end_segment_id always reference existing segments
    - No two chapters' index ranges may intersect
    - segment_count = index(end) - index(start) + 1, recomputed on commit
    - source is "manual" or "ai"
    """

    id: str
    title: str
    start_segment_id: str
    end_segment_id: str
    segment_count: int = 0
    summary: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    created_at: float = field(default_factory=time.time)
    source: str = "manual"


@dataclass(frozen=True)
class DocumentSnapshot:
    """The whole document plus selection, used as one history entry.

    WHY: Undo must restore segments, speakers, tags, and chapters together.
    Restoring them separately would allow states that never existed
    (e.g. a chapter pointing at a segment from a different revision).

    RULES:
    - Immutable; the history log and the session cache share instances
    - selected_segment_id may be None (the store then keeps its selection)
    """

    segments: tuple[Segment, ...] = ()
    speakers: tuple[Speaker, ...] = ()
    tags: tuple[Tag, ...] = ()
    chapters: tuple[Chapter, ...] = ()
    selected_segment_id: str | None = None
    selected_chapter_id: str | None = None
    current_time: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.segments


HistoryEntry = DocumentSnapshot


@dataclass(frozen=True)
class FileReference:
    """Identity of a local file: name, byte size, and modification time."""

    name: str
    size: int
    last_modified: int

    def serialize(self) -> str:
        """Stable string form used inside session keys."""
        name = quote(self.name, safe=_URI_SAFE)
        return f"{name}:{self.size}:{self.last_modified}"
