"""Chapter range utilities and the chapter conflict detector.

WHY: Chapters are ranges over segment positions, but they are stored by
segment id so that edits elsewhere in the transcript do not shift them.
Every chapter commit (manual or AI) has to translate ids back to indices,
recompute derived counts, and refuse any state where two ranges intersect.

HOW: build_segment_index_map() turns the segment tuple into an id→index
dict once per operation. The remaining helpers are pure functions over
(chapters, index map). check_chapter_conflicts() is the single gate used
before any multi-chapter commit.

RULES:
- A chapter whose start or end id is unknown, or whose start index is
  after its end index, has an invalid range and counts as a conflict
- segment_count is always recomputed, never trusted from input
- Canonical display order is ascending start index; unknown starts sort last
- On conflict nothing is returned for committing; callers must not mutate
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from transcript_editor.core.models import Chapter, Segment

CHAPTER_CONFLICT_MESSAGE = (
    "Detected chapters would overlap existing chapters. "
    "Reject conflicting suggestions or clear chapters before accepting."
)


def build_segment_index_map(segments: Sequence[Segment]) -> dict[str, int]:
    return {segment.id: index for index, segment in enumerate(segments)}


def get_chapter_range_indices(
    chapter: Chapter, index_by_id: Mapping[str, int]
) -> tuple[int, int] | None:
    """Return (start_index, end_index) or None when the range is invalid."""
    start = index_by_id.get(chapter.start_segment_id)
    end = index_by_id.get(chapter.end_segment_id)
    if start is None or end is None or start > end:
        return None
    return start, end


def sort_chapters_by_start(
    chapters: Iterable[Chapter], index_by_id: Mapping[str, int]
) -> list[Chapter]:
    missing = len(index_by_id) + 1
    return sorted(chapters, key=lambda ch: index_by_id.get(ch.start_segment_id, missing))


def has_overlapping_chapters(
    chapters: Iterable[Chapter], index_by_id: Mapping[str, int]
) -> bool:
    last_end = -1
    for chapter in sort_chapters_by_start(chapters, index_by_id):
        bounds = get_chapter_range_indices(chapter, index_by_id)
        if bounds is None or bounds[0] <= last_end:
            return True
        last_end = bounds[1]
    return False


def normalize_chapter_counts(
    chapters: Iterable[Chapter], index_by_id: Mapping[str, int]
) -> list[Chapter]:
    normalized = []
    for chapter in chapters:
        bounds = get_chapter_range_indices(chapter, index_by_id)
        count = 0 if bounds is None else bounds[1] - bounds[0] + 1
        if count != chapter.segment_count:
            chapter = dataclasses.replace(chapter, segment_count=count)
        normalized.append(chapter)
    return normalized


def recompute_chapter_ranges_from_starts(
    chapters: Iterable[Chapter],
    segments: Sequence[Segment],
    index_by_id: Mapping[str, int],
) -> list[Chapter]:
    """Make each chapter end right before the next chapter starts.

    The last chapter runs to the final segment. Returned in start order.
    """
    ordered = sort_chapters_by_start(chapters, index_by_id)
    result = []
    for position, chapter in enumerate(ordered):
        start = index_by_id.get(chapter.start_segment_id)
        if start is None:
            result.append(dataclasses.replace(chapter, segment_count=0))
            continue
        following = ordered[position + 1] if position + 1 < len(ordered) else None
        next_start = index_by_id.get(following.start_segment_id) if following else None
        if next_start is not None and next_start <= start:
            result.append(dataclasses.replace(chapter, segment_count=0))
            continue
        if next_start is not None:
            end = max(start, next_start - 1)
        else:
            end = max(start, len(segments) - 1)
        end_id = segments[end].id if end < len(segments) else chapter.end_segment_id
        result.append(
            dataclasses.replace(chapter, end_segment_id=end_id, segment_count=end - start + 1)
        )
    return result


def remap_and_filter_chapters(
    chapters: Iterable[Chapter],
    replacements: Mapping[str, tuple[str | None, str | None]],
    segments: Sequence[Segment],
) -> list[Chapter]:
    """Rewrite chapter boundaries after segments were replaced or removed.

    Args:
        chapters: Chapters before the segment edit.
        replacements: old segment id → (new start id, new end id). A None
            side leaves that boundary as it was.
        segments: The segments after the edit.

    Returns:
        Chapters whose boundaries still resolve, with fresh segment counts.
    """
    index_by_id = build_segment_index_map(segments)
    remapped = []
    for chapter in chapters:
        start_id, end_id = chapter.start_segment_id, chapter.end_segment_id
        if start_id in replacements and replacements[start_id][0]:
            start_id = replacements[start_id][0]
        if end_id in replacements and replacements[end_id][1]:
            end_id = replacements[end_id][1]
        if start_id not in index_by_id or end_id not in index_by_id:
            continue
        if (start_id, end_id) != (chapter.start_segment_id, chapter.end_segment_id):
            chapter = dataclasses.replace(chapter, start_segment_id=start_id, end_segment_id=end_id)
        remapped.append(chapter)
    return normalize_chapter_counts(remapped, index_by_id)


def dynamic_chapter_range(
    chapter_id: str,
    chapters: Sequence[Chapter],
    index_by_id: Mapping[str, int],
    segment_count: int,
) -> tuple[int, int] | None:
    """Index range from a chapter's start to just before the next chapter's start.

    Segments after an explicit end still belong to the chapter until the
    next one begins.
    """
    ordered = sort_chapters_by_start(chapters, index_by_id)
    for position, chapter in enumerate(ordered):
        if chapter.id != chapter_id:
            continue
        start = index_by_id.get(chapter.start_segment_id)
        if start is None:
            return None
        following = ordered[position + 1] if position + 1 < len(ordered) else None
        next_start = index_by_id.get(following.start_segment_id) if following else None
        if next_start is not None and next_start <= start:
            return None
        end = next_start - 1 if next_start is not None else max(0, segment_count - 1)
        return start, end
    return None


def chapter_for_segment(
    chapters: Sequence[Chapter], segments: Sequence[Segment], segment_id: str
) -> Chapter | None:
    """Return the chapter whose dynamic range covers the segment."""
    index_by_id = build_segment_index_map(segments)
    target = index_by_id.get(segment_id)
    if target is None:
        return None
    for chapter in chapters:
        bounds = dynamic_chapter_range(chapter.id, chapters, index_by_id, len(segments))
        if bounds is not None and bounds[0] <= target <= bounds[1]:
            return chapter
    return None


# ---------------------------------------------------------------------------
# Conflict detector
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChapterConflictResult:
    """Outcome of check_chapter_conflicts().

    ok=True carries the merged, normalized, start-ordered chapter list that
    may be committed as-is. ok=False carries one descriptive error.
    """

    ok: bool
    chapters: tuple[Chapter, ...] = ()
    error: str | None = None


def check_chapter_conflicts(
    existing: Iterable[Chapter],
    incoming: Iterable[Chapter],
    segments: Sequence[Segment],
) -> ChapterConflictResult:
    """Validate that existing + incoming chapters form non-overlapping ranges.

    WHY: Accepting several AI chapter suggestions at once must either
    commit all of them or none. Checking the merged result up front means
    the store is never left half-updated.

    HOW: Builds the index map once, merges both lists, recomputes every
    segment_count, sorts by start index, and checks adjacent ranges.

    RULES:
    - Returns ok=False with CHAPTER_CONFLICT_MESSAGE on any intersection
      or invalid range
    - Never mutates its inputs
    """
    index_by_id = build_segment_index_map(segments)
    merged = normalize_chapter_counts([*existing, *incoming], index_by_id)
    if has_overlapping_chapters(merged, index_by_id):
        return ChapterConflictResult(ok=False, error=CHAPTER_CONFLICT_MESSAGE)
    return ChapterConflictResult(ok=True, chapters=tuple(sort_chapters_by_start(merged, index_by_id)))
