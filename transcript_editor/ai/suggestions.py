"""Suggestion records and batch diagnostics produced by AI runs.

WHY: Each AI feature proposes a different kind of mutation (reassign a
speaker, rewrite text, add a chapter, merge two segments), but the
orchestrator and the lifecycle manager treat them uniformly: one pending
suggestion per target key, accepted or rejected by key. Explicit tagged
records make the shared shape visible and keep per-feature fields typed.

HOW: Four frozen dataclasses share target_key, status, confidence, and
reason, and carry a fixed `kind` discriminator. Issue and BatchLogEntry
describe what happened in each batch for the batch log.

RULES:
- target_key is unique among pending suggestions of one feature
- Speaker and revision keys are the segment id; merge keys are "a|b";
  chapter keys are "start|end"
- BatchLogEntry is append-only and never mutated after creation
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Union


class SuggestionStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Target keys
# ---------------------------------------------------------------------------


def segment_key(segment_id: str) -> str:
    return segment_id


def merge_key(first_id: str, second_id: str) -> str:
    return f"{first_id}|{second_id}"


def chapter_key(start_segment_id: str, end_segment_id: str) -> str:
    return f"{start_segment_id}|{end_segment_id}"


# ---------------------------------------------------------------------------
# Suggestions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SpeakerSuggestion:
    """Reassign a segment to another (possibly new) speaker."""

    target_key: str
    segment_id: str
    current_speaker: str
    suggested_speaker: str
    is_new_speaker: bool = False
    confidence: float | None = None
    reason: str | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    kind: str = field(default="speaker", init=False)

    @property
    def proposed_value(self) -> str:
        return self.suggested_speaker


@dataclass(frozen=True)
class TextChange:
    """One word-level difference between original and revised text."""

    type: str  # "insert", "delete", or "replace"
    position: int
    old_text: str = ""
    new_text: str = ""


@dataclass(frozen=True)
class RevisionSuggestion:
    """Replace a segment's text with an AI revision."""

    target_key: str
    segment_id: str
    original_text: str
    revised_text: str
    changes: tuple[TextChange, ...] = ()
    change_summary: str | None = None
    prompt_id: str | None = None
    confidence: float | None = None
    reason: str | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    kind: str = field(default="revision", init=False)

    @property
    def proposed_value(self) -> str:
        return self.revised_text


@dataclass(frozen=True)
class ChapterSuggestion:
    """Add a chapter spanning start_segment_id..end_segment_id."""

    target_key: str
    start_segment_id: str
    end_segment_id: str
    title: str
    summary: str | None = None
    notes: str | None = None
    tags: tuple[str, ...] = ()
    segment_count: int = 0
    confidence: float | None = None
    reason: str | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    kind: str = field(default="chapter", init=False)

    @property
    def proposed_value(self) -> str:
        return self.title


@dataclass(frozen=True)
class MergeSuggestion:
    """Merge two adjacent segments, optionally smoothing the joined text."""

    target_key: str
    segment_ids: tuple[str, str]
    merged_text: str
    smoothed_text: str | None = None
    smoothing_changes: str | None = None
    time_gap: float = 0.0
    confidence_level: str = "medium"
    confidence: float | None = None
    reason: str | None = None
    status: SuggestionStatus = SuggestionStatus.PENDING
    kind: str = field(default="merge", init=False)

    @property
    def proposed_value(self) -> str:
        return self.smoothed_text or self.merged_text


Suggestion = Union[SpeakerSuggestion, RevisionSuggestion, ChapterSuggestion, MergeSuggestion]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Issue:
    """A warning or error reported for one batch."""

    level: str  # "warn" or "error"
    message: str
    context: dict[str, Any] | None = None


@dataclass(frozen=True)
class BatchLogEntry:
    """What one batch asked for, what came back, and what was kept.

    RULES:
    - expected_count is the number of items sent in the batch
    - returned_count is the number of entries the model produced
    - used_count is the number of suggestions appended to the list
    - ignored_count counts returned entries dropped as invalid or duplicate
    - processed_total / total_expected are item counts for progress
    """

    batch_index: int
    expected_count: int
    returned_count: int
    used_count: int
    ignored_count: int
    duration_ms: int
    processed_total: int
    total_expected: int
    issues: tuple[Issue, ...] = ()
    fatal: bool = False
    unchanged_count: int = 0
    elapsed_ms: int = 0
    logged_at: float = field(default_factory=time.time)
