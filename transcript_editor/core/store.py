"""Transactional document store for one open transcript.

WHY: Segments, speakers, tags, and chapters reference each other (segments
point at speaker names and tag ids, chapters point at segment ids). Edits
from the user and accepted AI suggestions both have to keep those
references consistent and must be undoable as a single step. Funnelling
every mutation through one object that owns the history log makes
"one edit = one undo step" a structural guarantee instead of a convention.

HOW: DocumentStore holds the current DocumentSnapshot. Each public mutation
computes a complete new snapshot from the current one and hands it to
commit(), which swaps the state, pushes exactly one history entry, and
notifies subscribers (e.g. the persistence scheduler). Selection and
playback-position changes that are not document edits go through _set()
and never touch history.

RULES:
- Every document mutation performs exactly one history push
- Compound mutations (create speaker + reassign segments) call commit() once
- Unknown ids make mutations a silent no-op (return None / False), never raise
- Collections that did not change keep their identity across commits
- Subscribers are called synchronously after the swap and must not block
- Chapter lists are always committed normalized and start-ordered
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from transcript_editor.config import MAX_HISTORY, palette_color
from transcript_editor.core.chapters import (
    build_segment_index_map,
    chapter_for_segment,
    dynamic_chapter_range,
    has_overlapping_chapters,
    normalize_chapter_counts,
    recompute_chapter_ranges_from_starts,
    remap_and_filter_chapters,
    sort_chapters_by_start,
)
from transcript_editor.core.history import History
from transcript_editor.core.models import (
    Chapter,
    DocumentSnapshot,
    Segment,
    Speaker,
    Tag,
    generate_id,
)
from transcript_editor.core.segment_text import apply_text_update

logger = logging.getLogger(__name__)

_KEEP: Any = object()

Listener = Callable[[DocumentSnapshot], None]


def build_initial_speakers(segments: Iterable[Segment]) -> tuple[Speaker, ...]:
    """One speaker per distinct segment speaker name, in first-seen order."""
    names = list(dict.fromkeys(segment.speaker for segment in segments))
    return tuple(
        Speaker(id=generate_id(), name=name, color=palette_color(i)) for i, name in enumerate(names)
    )


# ---------------------------------------------------------------------------
# Pure segment operations (shared with suggestion acceptance)
# ---------------------------------------------------------------------------


def merge_adjacent_segments(
    segments: Sequence[Segment],
    chapters: Sequence[Chapter],
    first_id: str,
    second_id: str,
    text: str | None = None,
) -> tuple[tuple[Segment, ...], list[Chapter], str] | None:
    """Merge two adjacent segments into a new one.

    Returns (segments, chapters, merged_id), or None when either id is
    missing or the segments are not neighbours. The merged segment takes
    the earlier segment's speaker, the union of both tag sets, and the
    joined text; an optional replacement text is applied with timing
    preservation.
    """
    index_by_id = build_segment_index_map(segments)
    i1, i2 = index_by_id.get(first_id), index_by_id.get(second_id)
    if i1 is None or i2 is None or abs(i1 - i2) != 1:
        return None
    low = min(i1, i2)
    first, second = segments[low], segments[low + 1]
    merged = Segment(
        id=generate_id(),
        speaker=first.speaker,
        start=first.start,
        end=second.end,
        text=f"{first.text} {second.text}",
        words=first.words + second.words,
        tags=tuple(dict.fromkeys(first.tags + second.tags)),
    )
    if text is not None:
        merged = apply_text_update(merged, text) or merged
    new_segments = (*segments[:low], merged, *segments[low + 2:])
    new_chapters = remap_and_filter_chapters(
        chapters,
        {first.id: (merged.id, merged.id), second.id: (merged.id, merged.id)},
        new_segments,
    )
    return new_segments, new_chapters, merged.id


class DocumentStore:
    """Canonical, undoable state of one transcript document.

    WHY: Every editing surface (HTTP actions, AI suggestion acceptance,
    session switching) needs the same consistency and undo guarantees.

    HOW: Wraps an immutable DocumentSnapshot plus a History log. Read access
    goes through properties; writes go through the mutation methods below.

    RULES:
    - Use commit() for any change to segments/speakers/tags/chapters
    - replace_document() is reserved for session switching and import
    """

    def __init__(self, max_history: int = MAX_HISTORY) -> None:
        self._state = DocumentSnapshot()
        self.history = History(max_history)
        self.is_whisperx_format = False
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def snapshot(self) -> DocumentSnapshot:
        return self._state

    @property
    def segments(self) -> tuple[Segment, ...]:
        return self._state.segments

    @property
    def speakers(self) -> tuple[Speaker, ...]:
        return self._state.speakers

    @property
    def tags(self) -> tuple[Tag, ...]:
        return self._state.tags

    @property
    def chapters(self) -> tuple[Chapter, ...]:
        return self._state.chapters

    @property
    def selected_segment_id(self) -> str | None:
        return self._state.selected_segment_id

    @property
    def selected_chapter_id(self) -> str | None:
        return self._state.selected_chapter_id

    @property
    def current_time(self) -> float:
        return self._state.current_time

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def get_segment(self, segment_id: str) -> Segment | None:
        for segment in self._state.segments:
            if segment.id == segment_id:
                return segment
        return None

    def find_speaker(self, name: str, case_insensitive: bool = False) -> Speaker | None:
        wanted = name.casefold() if case_insensitive else name
        for speaker in self._state.speakers:
            candidate = speaker.name.casefold() if case_insensitive else speaker.name
            if candidate == wanted:
                return speaker
        return None

    def get_tag(self, tag_id: str) -> Tag | None:
        return next((tag for tag in self._state.tags if tag.id == tag_id), None)

    def segments_by_tag(self, tag_id: str) -> list[Segment]:
        return [segment for segment in self._state.segments if tag_id in segment.tags]

    def tags_for_segment(self, segment_id: str) -> list[Tag]:
        segment = self.get_segment(segment_id)
        if segment is None:
            return []
        return [tag for tag in self._state.tags if tag.id in segment.tags]

    def untagged_segments(self) -> list[Segment]:
        return [segment for segment in self._state.segments if not segment.tags]

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        return next((ch for ch in self._state.chapters if ch.id == chapter_id), None)

    def chapter_for_segment(self, segment_id: str) -> Chapter | None:
        return chapter_for_segment(self._state.chapters, self._state.segments, segment_id)

    def segments_in_chapter(self, chapter_id: str) -> list[Segment]:
        """Segments from the chapter's start up to the next chapter's start."""
        segments = self._state.segments
        bounds = dynamic_chapter_range(
            chapter_id, self._state.chapters, build_segment_index_map(segments), len(segments)
        )
        if bounds is None:
            return []
        return list(segments[bounds[0]: bounds[1] + 1])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def commit(
        self,
        *,
        segments: Sequence[Segment] | None = None,
        speakers: Sequence[Speaker] | None = None,
        tags: Sequence[Tag] | None = None,
        chapters: Sequence[Chapter] | None = None,
        selected_segment_id: Any = _KEEP,
        selected_chapter_id: Any = _KEEP,
        current_time: float | None = None,
    ) -> DocumentSnapshot:
        """Apply one atomic document change and push exactly one history entry.

        Fields left as None (or unset for selections) keep their current
        value and identity.
        """
        changes: dict[str, Any] = {}
        if segments is not None:
            changes["segments"] = tuple(segments)
        if speakers is not None:
            changes["speakers"] = tuple(speakers)
        if tags is not None:
            changes["tags"] = tuple(tags)
        if chapters is not None:
            changes["chapters"] = tuple(chapters)
        if selected_segment_id is not _KEEP:
            changes["selected_segment_id"] = selected_segment_id
        if selected_chapter_id is not _KEEP:
            changes["selected_chapter_id"] = selected_chapter_id
        if current_time is not None:
            changes["current_time"] = current_time
        self._state = dataclasses.replace(self._state, **changes)
        self.history.push(self._state)
        self._notify()
        return self._state

    def _set(self, **changes: Any) -> None:
        """Change selection or playback state without recording history."""
        self._state = dataclasses.replace(self._state, **changes)
        self._notify()

    def replace_document(
        self,
        snapshot: DocumentSnapshot,
        *,
        is_whisperx_format: bool = False,
        seed_history: bool = True,
    ) -> None:
        """Swap in a whole document and restart history from it."""
        self._state = snapshot
        self.is_whisperx_format = is_whisperx_format
        self.history.reset(snapshot if seed_history else None)
        self._notify()

    def undo(self) -> bool:
        return self._restore(self.history.undo())

    def redo(self) -> bool:
        return self._restore(self.history.redo())

    def _restore(self, entry: DocumentSnapshot | None) -> bool:
        if entry is None:
            return False
        selected = entry.selected_segment_id or self._state.selected_segment_id
        self._state = dataclasses.replace(entry, selected_segment_id=selected)
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_transcript(
        self,
        segments: Sequence[Segment],
        *,
        speakers: Sequence[Speaker] | None = None,
        tags: Sequence[Tag] | None = None,
        chapters: Sequence[Chapter] | None = None,
        is_whisperx_format: bool = False,
    ) -> None:
        """Replace the document with freshly imported segments.

        WHY: Imported files name speakers and tags by string; the store
        works with Speaker records and tag ids.

        HOW: Speakers are derived from distinct segment speaker names unless
        given. Segment tag entries that match a known tag id are kept; ones
        that match a tag name map to that tag; any other name creates a new
        tag. Chapters are remapped onto the imported segments and any that
        would overlap an earlier chapter are dropped.

        RULES:
        - History restarts with exactly one entry
        - Selection moves to the first segment, playback to 0
        """
        known_tags = list(tags or ())
        by_id = {tag.id: tag for tag in known_tags}
        by_name = {tag.name: tag for tag in known_tags}

        def resolve_tag(raw: str) -> str | None:
            name = raw.strip()
            if not name:
                return None
            if name in by_id:
                return name
            if name not in by_name:
                tag = Tag(id=generate_id(), name=name, color=palette_color(len(known_tags)))
                known_tags.append(tag)
                by_name[name] = tag
                by_id[tag.id] = tag
            return by_name[name].id

        resolved = []
        for segment in segments:
            tag_ids = tuple(dict.fromkeys(t for t in map(resolve_tag, segment.tags) if t))
            if tag_ids != segment.tags:
                segment = dataclasses.replace(segment, tags=tag_ids)
            resolved.append(segment)
        resolved_segments = tuple(resolved)

        index_by_id = build_segment_index_map(resolved_segments)
        accepted: list[Chapter] = []
        for chapter in sort_chapters_by_start(
            remap_and_filter_chapters(chapters or (), {}, resolved_segments), index_by_id
        ):
            if not has_overlapping_chapters([*accepted, chapter], index_by_id):
                accepted.append(chapter)

        snapshot = DocumentSnapshot(
            segments=resolved_segments,
            speakers=tuple(speakers) if speakers else build_initial_speakers(resolved_segments),
            tags=tuple(known_tags),
            chapters=tuple(accepted),
            selected_segment_id=resolved_segments[0].id if resolved_segments else None,
            selected_chapter_id=None,
            current_time=0.0,
        )
        self.replace_document(snapshot, is_whisperx_format=is_whisperx_format)
        logger.info(
            "Loaded transcript with %d segments, %d speakers, %d chapters",
            len(snapshot.segments),
            len(snapshot.speakers),
            len(snapshot.chapters),
        )

    # ------------------------------------------------------------------
    # Selection and playback (no history)
    # ------------------------------------------------------------------

    def set_selected_segment_id(self, segment_id: str | None) -> None:
        if segment_id is not None and self.get_segment(segment_id) is None:
            return
        self._set(selected_segment_id=segment_id)

    def set_current_time(self, seconds: float) -> None:
        self._set(current_time=max(0.0, seconds))

    def select_chapter(self, chapter_id: str | None) -> None:
        if chapter_id is not None and self.get_chapter(chapter_id) is None:
            return
        self._set(selected_chapter_id=chapter_id)

    # ------------------------------------------------------------------
    # Segment edits
    # ------------------------------------------------------------------

    def _replace_segment(self, segment_id: str, update: Callable[[Segment], Segment | None]) -> bool:
        segments = list(self._state.segments)
        for i, segment in enumerate(segments):
            if segment.id == segment_id:
                updated = update(segment)
                if updated is None:
                    return False
                segments[i] = updated
                self.commit(segments=segments)
                return True
        return False

    def update_segment_text(self, segment_id: str, text: str) -> bool:
        return self.update_segments_texts({segment_id: text}) > 0

    def update_segments_texts(self, updates: Mapping[str, str]) -> int:
        """Apply several text edits as one undo step.

        Returns the number of segments that actually changed; when none did,
        no history entry is pushed.
        """
        segments = list(self._state.segments)
        changed = 0
        for i, segment in enumerate(segments):
            if segment.id not in updates:
                continue
            updated = apply_text_update(segment, updates[segment.id])
            if updated is not None:
                segments[i] = updated
                changed += 1
        if changed:
            self.commit(segments=segments)
        return changed

    def update_segment_speaker(self, segment_id: str, speaker: str) -> bool:
        def update(segment: Segment) -> Segment | None:
            if segment.speaker == speaker:
                return None
            return dataclasses.replace(segment, speaker=speaker)

        return self._replace_segment(segment_id, update)

    def confirm_segment(self, segment_id: str) -> bool:
        """Mark a segment human-verified and raise its word scores to 1.0."""

        def update(segment: Segment) -> Segment:
            words = tuple(dataclasses.replace(word, score=1.0) for word in segment.words)
            return dataclasses.replace(segment, confirmed=True, words=words)

        return self._replace_segment(segment_id, update)

    def toggle_segment_bookmark(self, segment_id: str) -> bool:
        return self._replace_segment(
            segment_id, lambda s: dataclasses.replace(s, bookmarked=not s.bookmarked)
        )

    def update_segment_timing(self, segment_id: str, start: float, end: float) -> bool:
        if start >= end:
            return False

        def update(segment: Segment) -> Segment | None:
            if segment.start == start and segment.end == end:
                return None
            return dataclasses.replace(segment, start=start, end=end)

        return self._replace_segment(segment_id, update)

    def split_segment(self, segment_id: str, word_index: int) -> tuple[str, str] | None:
        """Split a segment before the word at word_index.

        Both halves get new ids. Chapters that started at the original start
        at the first half; chapters that ended there end at the second half.
        Selection and playback move to the second half.
        """
        segments = self._state.segments
        index = build_segment_index_map(segments).get(segment_id)
        if index is None:
            return None
        segment = segments[index]
        if word_index <= 0 or word_index >= len(segment.words):
            return None

        head_words, tail_words = segment.words[:word_index], segment.words[word_index:]
        first = dataclasses.replace(
            segment,
            id=generate_id(),
            end=head_words[-1].end,
            text=" ".join(w.text for w in head_words),
            words=head_words,
            confirmed=False,
            bookmarked=False,
        )
        second = dataclasses.replace(
            segment,
            id=generate_id(),
            start=tail_words[0].start,
            text=" ".join(w.text for w in tail_words),
            words=tail_words,
            confirmed=False,
            bookmarked=False,
        )
        new_segments = (*segments[:index], first, second, *segments[index + 1:])
        chapters = remap_and_filter_chapters(
            self._state.chapters, {segment.id: (first.id, second.id)}, new_segments
        )
        self.commit(
            segments=new_segments,
            chapters=chapters,
            selected_segment_id=second.id,
            current_time=second.start,
        )
        return first.id, second.id

    def merge_segments(self, first_id: str, second_id: str, text: str | None = None) -> str | None:
        """Merge two adjacent segments; optional text replaces the joined text.

        Returns the merged segment id, or None if the ids are not neighbours.
        """
        result = merge_adjacent_segments(
            self._state.segments, self._state.chapters, first_id, second_id, text
        )
        if result is None:
            return None
        segments, chapters, merged_id = result
        self.commit(segments=segments, chapters=chapters, selected_segment_id=merged_id)
        return merged_id

    def delete_segment(self, segment_id: str) -> bool:
        segments = self._state.segments
        index = build_segment_index_map(segments).get(segment_id)
        if index is None:
            return False
        remaining = (*segments[:index], *segments[index + 1:])

        selected = self._state.selected_segment_id
        if selected == segment_id:
            later = next((s for s in remaining if s.start > self._state.current_time), None)
            if later is not None:
                selected = later.id
            else:
                selected = remaining[-1].id if remaining else None

        start_replacement = remaining[index].id if index < len(remaining) else None
        end_replacement = remaining[index - 1].id if index > 0 else None
        survivors = [
            ch
            for ch in self._state.chapters
            if not (ch.start_segment_id == segment_id and ch.end_segment_id == segment_id)
        ]
        chapters = remap_and_filter_chapters(
            survivors, {segment_id: (start_replacement, end_replacement)}, remaining
        )
        self.commit(segments=remaining, chapters=chapters, selected_segment_id=selected)
        return True

    # ------------------------------------------------------------------
    # Speakers
    # ------------------------------------------------------------------

    def add_speaker(self, name: str) -> Speaker | None:
        name = name.strip()
        if not name or self.find_speaker(name) is not None:
            return None
        speaker = Speaker(
            id=generate_id(), name=name, color=palette_color(len(self._state.speakers))
        )
        self.commit(speakers=(*self._state.speakers, speaker))
        return speaker

    def rename_speaker(self, old_name: str, new_name: str) -> bool:
        """Rename a speaker and every segment and word that references it."""
        new_name = new_name.strip()
        if not new_name or old_name == new_name or self.find_speaker(old_name) is None:
            return False
        speakers = [
            dataclasses.replace(s, name=new_name) if s.name == old_name else s
            for s in self._state.speakers
        ]
        segments = [
            dataclasses.replace(
                segment,
                speaker=new_name,
                words=tuple(
                    dataclasses.replace(w, speaker=new_name) if w.speaker == old_name else w
                    for w in segment.words
                ),
            )
            if segment.speaker == old_name
            else segment
            for segment in self._state.segments
        ]
        self.commit(segments=segments, speakers=speakers)
        return True

    def merge_speakers(self, from_name: str, to_name: str) -> bool:
        """Reassign all of from_name's segments to to_name and drop from_name."""
        if from_name == to_name:
            return False
        if self.find_speaker(from_name) is None or self.find_speaker(to_name) is None:
            return False
        segments = [
            dataclasses.replace(s, speaker=to_name) if s.speaker == from_name else s
            for s in self._state.segments
        ]
        speakers = [s for s in self._state.speakers if s.name != from_name]
        self.commit(segments=segments, speakers=speakers)
        return True

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def add_tag(self, name: str, color: str | None = None) -> Tag | None:
        name = name.strip()
        if not name:
            return None
        tag = Tag(
            id=generate_id(), name=name, color=color or palette_color(len(self._state.tags))
        )
        self.commit(tags=(*self._state.tags, tag))
        return tag

    def remove_tag(self, tag_id: str) -> bool:
        """Delete a tag and strip it from every segment and chapter."""
        if self.get_tag(tag_id) is None:
            return False
        segments = [
            dataclasses.replace(s, tags=tuple(t for t in s.tags if t != tag_id))
            if tag_id in s.tags
            else s
            for s in self._state.segments
        ]
        chapters = [
            dataclasses.replace(ch, tags=tuple(t for t in ch.tags if t != tag_id))
            if tag_id in ch.tags
            else ch
            for ch in self._state.chapters
        ]
        tags = [t for t in self._state.tags if t.id != tag_id]
        self.commit(segments=segments, tags=tags, chapters=chapters)
        return True

    def rename_tag(self, tag_id: str, name: str) -> bool:
        tag = self.get_tag(tag_id)
        name = name.strip()
        if tag is None or not name or tag.name == name:
            return False
        self.commit(
            tags=[dataclasses.replace(t, name=name) if t.id == tag_id else t for t in self._state.tags]
        )
        return True

    def update_tag_color(self, tag_id: str, color: str) -> bool:
        tag = self.get_tag(tag_id)
        if tag is None or tag.color == color:
            return False
        self.commit(
            tags=[dataclasses.replace(t, color=color) if t.id == tag_id else t for t in self._state.tags]
        )
        return True

    def assign_tag(self, segment_id: str, tag_id: str) -> bool:
        if self.get_tag(tag_id) is None:
            return False

        def update(segment: Segment) -> Segment | None:
            if tag_id in segment.tags:
                return None
            return dataclasses.replace(segment, tags=(*segment.tags, tag_id))

        return self._replace_segment(segment_id, update)

    def remove_tag_from_segment(self, segment_id: str, tag_id: str) -> bool:
        def update(segment: Segment) -> Segment | None:
            if tag_id not in segment.tags:
                return None
            return dataclasses.replace(segment, tags=tuple(t for t in segment.tags if t != tag_id))

        return self._replace_segment(segment_id, update)

    def toggle_tag_on_segment(self, segment_id: str, tag_id: str) -> bool:
        segment = self.get_segment(segment_id)
        if segment is None:
            return False
        if tag_id in segment.tags:
            return self.remove_tag_from_segment(segment_id, tag_id)
        return self.assign_tag(segment_id, tag_id)

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    def _commit_chapters(self, chapters: Iterable[Chapter], **kwargs: Any) -> bool:
        index_by_id = build_segment_index_map(self._state.segments)
        normalized = normalize_chapter_counts(chapters, index_by_id)
        if has_overlapping_chapters(normalized, index_by_id):
            return False
        self.commit(chapters=sort_chapters_by_start(normalized, index_by_id), **kwargs)
        return True

    def start_chapter(
        self, title: str, start_segment_id: str, tags: Sequence[str] = ()
    ) -> str | None:
        """Open a chapter at a segment; it runs until the next chapter starts.

        If a chapter already starts there it is selected instead. The
        chapter before the new one is trimmed to end right before it.
        Returns the chapter id, or None for an empty title, an unknown
        segment, or a result that would overlap.
        """
        segments = self._state.segments
        index_by_id = build_segment_index_map(segments)
        start = index_by_id.get(start_segment_id)
        if start is None:
            return None

        existing = next(
            (ch for ch in self._state.chapters if ch.start_segment_id == start_segment_id), None
        )
        if existing is not None:
            self.select_chapter(existing.id)
            return existing.id

        title = title.strip()
        if not title:
            return None

        previous = following = None
        for chapter in sort_chapters_by_start(self._state.chapters, index_by_id):
            chapter_start = index_by_id.get(chapter.start_segment_id)
            if chapter_start is None:
                continue
            if chapter_start > start:
                following = chapter
                break
            previous = chapter

        if following is not None:
            end = max(start, index_by_id[following.start_segment_id] - 1)
        else:
            end = max(start, len(segments) - 1)

        chapter = Chapter(
            id=generate_id(),
            title=title,
            start_segment_id=start_segment_id,
            end_segment_id=segments[end].id,
            segment_count=end - start + 1,
            tags=tuple(tags),
        )
        chapters = [
            dataclasses.replace(ch, end_segment_id=segments[start - 1].id)
            if previous is not None and ch.id == previous.id and start > 0
            else ch
            for ch in self._state.chapters
        ]
        chapters.append(chapter)
        if not self._commit_chapters(chapters, selected_chapter_id=chapter.id):
            return None
        return chapter.id

    def update_chapter(self, chapter_id: str, **updates: Any) -> bool:
        """Update title/summary/notes/tags/boundaries of one chapter.

        An empty title or a resulting overlap rejects the whole update.
        """
        chapter = self.get_chapter(chapter_id)
        if chapter is None:
            return False
        allowed = {"title", "summary", "notes", "tags", "start_segment_id", "end_segment_id"}
        unknown = set(updates) - allowed
        if unknown:
            raise TypeError(f"Unknown chapter fields: {', '.join(sorted(unknown))}")
        if "title" in updates:
            title = (updates["title"] or "").strip()
            if not title:
                return False
            updates["title"] = title
        if "tags" in updates:
            updates["tags"] = tuple(updates["tags"] or ())
        updated = dataclasses.replace(chapter, **updates)
        chapters = [updated if ch.id == chapter_id else ch for ch in self._state.chapters]
        return self._commit_chapters(chapters)

    def move_chapter_start(self, chapter_id: str, target_segment_id: str) -> bool:
        """Move a chapter's start between its neighbours and recompute ends."""
        chapter = self.get_chapter(chapter_id)
        if chapter is None or chapter.start_segment_id == target_segment_id:
            return False
        segments = self._state.segments
        index_by_id = build_segment_index_map(segments)
        target = index_by_id.get(target_segment_id)
        if target is None:
            return False

        ordered = sort_chapters_by_start(self._state.chapters, index_by_id)
        position = next(i for i, ch in enumerate(ordered) if ch.id == chapter_id)
        if position > 0:
            prev_start = index_by_id.get(ordered[position - 1].start_segment_id)
            if prev_start is not None and target <= prev_start:
                return False
        if position + 1 < len(ordered):
            next_start = index_by_id.get(ordered[position + 1].start_segment_id)
            if next_start is not None and target >= next_start:
                return False

        moved = [
            dataclasses.replace(ch, start_segment_id=target_segment_id) if ch.id == chapter_id else ch
            for ch in self._state.chapters
        ]
        recomputed = recompute_chapter_ranges_from_starts(moved, segments, index_by_id)
        if has_overlapping_chapters(recomputed, index_by_id):
            return False
        self.commit(chapters=recomputed)
        return True

    def delete_chapter(self, chapter_id: str) -> bool:
        if self.get_chapter(chapter_id) is None:
            return False
        selected = self._state.selected_chapter_id
        return self._commit_chapters(
            [ch for ch in self._state.chapters if ch.id != chapter_id],
            selected_chapter_id=None if selected == chapter_id else selected,
        )

    def clear_chapters(self) -> None:
        self.commit(chapters=(), selected_chapter_id=None)
