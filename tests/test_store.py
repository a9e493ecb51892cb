"""Unit tests for the transactional DocumentStore.

WHY: Every edit in the editor, whether typed by a person or accepted from
an AI suggestion, goes through the store. If a mutation skips the history
push, pushes twice, or leaves a chapter pointing at a removed segment,
undo breaks in ways that are hard to notice and impossible to repair.

HOW: Tests are organized by concern:
  - TestLoading: load_transcript seeds history and derives speakers/tags
  - TestSegmentEdits: text, speaker, timing, confirm, bookmark, delete
  - TestSplitAndMerge: split/merge including chapter boundary remapping
  - TestSpeakers: add, rename, merge
  - TestTags: create, assign, toggle, rename, recolor, remove
  - TestChapters: start, trim, update, move, delete, overlap refusal
  - TestUndoRedo: one edit = one undo step, bounded by max_history
  - TestSubscriptions: listeners fire on commit and can unsubscribe

RULES:
- Every test starts from the six-segment `store` fixture (history len 1)
- History length is asserted wherever a mutation should push exactly once
- Refused mutations must leave history untouched
"""

from __future__ import annotations

import dataclasses

import pytest

from transcript_editor.config import palette_color
from transcript_editor.core.models import Chapter
from transcript_editor.core.store import DocumentStore, merge_adjacent_segments


def _ids(store: DocumentStore) -> list:
    return [s.id for s in store.segments]


# ---------------------------------------------------------------------------
# TestLoading
# ---------------------------------------------------------------------------


class TestLoading:
    """load_transcript() replaces the document and restarts history."""

    def test_history_has_single_entry(self, store):
        assert len(store.history) == 1
        assert not store.can_undo
        assert not store.can_redo

    def test_speakers_derived_in_first_seen_order(self, store):
        assert [s.name for s in store.speakers] == ["SPEAKER_00", "SPEAKER_01"]
        assert store.speakers[0].color == palette_color(0)
        assert store.speakers[1].color == palette_color(1)

    def test_first_segment_selected(self, store):
        assert store.selected_segment_id == "s1"
        assert store.current_time == 0.0

    def test_tag_names_resolve_to_ids(self, segments):
        tagged = [dataclasses.replace(segments[0], tags=("intro", "intro", " "))] + segments[1:]
        store = DocumentStore()
        store.load_transcript(tagged)
        assert [t.name for t in store.tags] == ["intro"]
        assert store.segments[0].tags == (store.tags[0].id,)

    def test_overlapping_imported_chapters_dropped(self, segments):
        store = DocumentStore()
        store.load_transcript(
            segments,
            chapters=[
                Chapter(id="a", title="A", start_segment_id="s1", end_segment_id="s3"),
                Chapter(id="b", title="B", start_segment_id="s2", end_segment_id="s4"),
                Chapter(id="c", title="C", start_segment_id="s4", end_segment_id="s6"),
            ],
        )
        assert [c.id for c in store.chapters] == ["a", "c"]
        assert [c.segment_count for c in store.chapters] == [3, 3]

    def test_reload_resets_history(self, store, segments):
        store.update_segment_text("s1", "Changed.")
        store.load_transcript(segments)
        assert len(store.history) == 1
        assert store.get_segment("s1").text == "Welcome to the show."


# ---------------------------------------------------------------------------
# TestSegmentEdits
# ---------------------------------------------------------------------------


class TestSegmentEdits:
    """Single-segment edits push exactly one history entry."""

    def test_update_text(self, store):
        assert store.update_segment_text("s1", "Welcome to our show.")
        assert store.get_segment("s1").text == "Welcome to our show."
        assert len(store.history) == 2

    def test_unchanged_text_is_noop(self, store):
        assert not store.update_segment_text("s1", "  Welcome to the show.  ")
        assert len(store.history) == 1

    def test_update_several_texts_is_one_step(self, store):
        changed = store.update_segments_texts({"s1": "One.", "s2": "Two.", "s3": store.get_segment("s3").text})
        assert changed == 2
        assert len(store.history) == 2

    def test_unknown_segment_is_noop(self, store):
        assert not store.update_segment_text("missing", "text")
        assert not store.update_segment_speaker("missing", "X")
        assert not store.delete_segment("missing")
        assert len(store.history) == 1

    def test_update_speaker(self, store):
        assert store.update_segment_speaker("s1", "SPEAKER_01")
        assert store.get_segment("s1").speaker == "SPEAKER_01"
        assert not store.update_segment_speaker("s1", "SPEAKER_01")
        assert len(store.history) == 2

    def test_untouched_collections_keep_identity(self, store):
        speakers, chapters = store.speakers, store.chapters
        store.update_segment_speaker("s1", "SPEAKER_01")
        assert store.speakers is speakers
        assert store.chapters is chapters

    def test_update_timing(self, store):
        assert store.update_segment_timing("s1", 0.1, 2.2)
        segment = store.get_segment("s1")
        assert (segment.start, segment.end) == (0.1, 2.2)

    def test_timing_start_must_precede_end(self, store):
        assert not store.update_segment_timing("s1", 2.0, 2.0)
        assert not store.update_segment_timing("s1", 3.0, 1.0)
        assert len(store.history) == 1

    def test_confirm_sets_word_scores(self, store):
        assert store.confirm_segment("s3")
        segment = store.get_segment("s3")
        assert segment.confirmed
        assert all(w.score == 1.0 for w in segment.words)

    def test_toggle_bookmark(self, store):
        store.toggle_segment_bookmark("s2")
        assert store.get_segment("s2").bookmarked
        store.toggle_segment_bookmark("s2")
        assert not store.get_segment("s2").bookmarked
        assert len(store.history) == 3

    def test_delete_segment(self, store):
        assert store.delete_segment("s3")
        assert _ids(store) == ["s1", "s2", "s4", "s5", "s6"]
        assert store.selected_segment_id == "s1"

    def test_delete_selected_moves_selection_forward(self, store):
        store.set_current_time(5.0)
        store.set_selected_segment_id("s3")
        store.delete_segment("s3")
        assert store.selected_segment_id == "s4"

    def test_delete_last_selected_falls_back_to_last(self, store):
        store.set_current_time(20.0)
        store.set_selected_segment_id("s6")
        store.delete_segment("s6")
        assert store.selected_segment_id == "s5"

    def test_delete_moves_chapter_start(self, store):
        chapter_id = store.start_chapter("All", "s1")
        store.delete_segment("s1")
        chapter = store.get_chapter(chapter_id)
        assert chapter.start_segment_id == "s2"
        assert chapter.segment_count == 5

    def test_selection_changes_skip_history(self, store):
        store.set_selected_segment_id("s4")
        store.set_current_time(3.0)
        store.set_selected_segment_id("does-not-exist")
        assert store.selected_segment_id == "s4"
        assert store.current_time == 3.0
        assert len(store.history) == 1


# ---------------------------------------------------------------------------
# TestSplitAndMerge
# ---------------------------------------------------------------------------


class TestSplitAndMerge:
    """split_segment() and merge_segments() replace ids and remap chapters."""

    def test_split_creates_two_new_ids(self, store):
        first_id, second_id = store.split_segment("s1", 2)
        assert "s1" not in _ids(store)
        assert _ids(store)[:2] == [first_id, second_id]
        first, second = store.get_segment(first_id), store.get_segment(second_id)
        assert first.text == "Welcome to"
        assert second.text == "the show."
        assert first.end == first.words[-1].end
        assert second.start == second.words[0].start
        assert len(store.history) == 2

    def test_split_moves_selection_to_second_half(self, store):
        _, second_id = store.split_segment("s1", 1)
        assert store.selected_segment_id == second_id
        assert store.current_time == store.get_segment(second_id).start

    @pytest.mark.parametrize("index", [0, 4, 10, -1])
    def test_split_index_must_be_inside(self, store, index):
        assert store.split_segment("s1", index) is None
        assert len(store.history) == 1

    def test_split_remaps_chapter_end(self, store):
        intro = store.start_chapter("Intro", "s1")
        store.start_chapter("Main", "s4")
        _, second_id = store.split_segment("s3", 2)
        chapter = store.get_chapter(intro)
        assert chapter.end_segment_id == second_id
        assert chapter.segment_count == 4

    def test_merge_adjacent(self, store):
        merged_id = store.merge_segments("s1", "s2")
        merged = store.get_segment(merged_id)
        assert merged.text == "Welcome to the show. Today we talk about"
        assert (merged.start, merged.end) == (0.0, 4.0)
        assert merged.speaker == "SPEAKER_00"
        assert len(merged.words) == 8
        assert store.selected_segment_id == merged_id
        assert len(store.segments) == 5

    def test_merge_with_replacement_text(self, store):
        merged_id = store.merge_segments("s1", "s2", text="Welcome to the show. Today we talk about rain.")
        assert store.get_segment(merged_id).text.endswith("rain.")

    def test_merge_requires_adjacency(self, store):
        assert store.merge_segments("s1", "s3") is None
        assert len(store.history) == 1

    def test_merge_remaps_chapter_start(self, store):
        chapter_id = store.start_chapter("All", "s1")
        merged_id = store.merge_segments("s1", "s2")
        chapter = store.get_chapter(chapter_id)
        assert chapter.start_segment_id == merged_id
        assert chapter.segment_count == 5

    def test_pure_merge_does_not_touch_inputs(self, segments):
        before = tuple(segments)
        result = merge_adjacent_segments(segments, [], "s2", "s3")
        assert result is not None
        merged_segments, chapters, merged_id = result
        assert len(merged_segments) == 5
        assert merged_segments[1].id == merged_id
        assert chapters == []
        assert tuple(segments) == before

    def test_pure_merge_union_of_tags(self, segments):
        segments[0] = dataclasses.replace(segments[0], tags=("t1", "t2"))
        segments[1] = dataclasses.replace(segments[1], tags=("t2", "t3"))
        merged_segments, _, _ = merge_adjacent_segments(segments, [], "s1", "s2")
        assert merged_segments[0].tags == ("t1", "t2", "t3")


# ---------------------------------------------------------------------------
# TestSpeakers
# ---------------------------------------------------------------------------


class TestSpeakers:
    """Speaker edits keep segment references consistent."""

    def test_add_speaker(self, store):
        speaker = store.add_speaker(" Host ")
        assert speaker.name == "Host"
        assert speaker.color == palette_color(2)
        assert store.find_speaker("Host") is speaker
        assert len(store.history) == 2

    def test_add_existing_or_blank_speaker(self, store):
        assert store.add_speaker("SPEAKER_00") is None
        assert store.add_speaker("   ") is None
        assert len(store.history) == 1

    def test_find_speaker_case_insensitive(self, store):
        assert store.find_speaker("speaker_00") is None
        assert store.find_speaker("speaker_00", case_insensitive=True).name == "SPEAKER_00"

    def test_rename_updates_segments_and_words(self, store):
        assert store.rename_speaker("SPEAKER_00", "Alice")
        assert [s.speaker for s in store.segments] == [
            "Alice", "Alice", "SPEAKER_01", "SPEAKER_01", "Alice", "SPEAKER_01"
        ]
        assert all(w.speaker == "Alice" for w in store.get_segment("s1").words)
        assert store.find_speaker("SPEAKER_00") is None
        assert len(store.history) == 2

    def test_rename_rejects_blank_or_same(self, store):
        assert not store.rename_speaker("SPEAKER_00", " ")
        assert not store.rename_speaker("SPEAKER_00", "SPEAKER_00")
        assert not store.rename_speaker("Nobody", "Alice")

    def test_merge_speakers(self, store):
        assert store.merge_speakers("SPEAKER_01", "SPEAKER_00")
        assert {s.speaker for s in store.segments} == {"SPEAKER_00"}
        assert [s.name for s in store.speakers] == ["SPEAKER_00"]
        assert len(store.history) == 2

    def test_merge_speakers_requires_both(self, store):
        assert not store.merge_speakers("SPEAKER_01", "Nobody")
        assert not store.merge_speakers("SPEAKER_01", "SPEAKER_01")


# ---------------------------------------------------------------------------
# TestTags
# ---------------------------------------------------------------------------


class TestTags:
    """Tags are referenced by id from segments and chapters."""

    def test_add_tag_default_color(self, store):
        tag = store.add_tag("news")
        assert tag.color == palette_color(0)
        assert store.get_tag(tag.id) is tag

    def test_add_tag_explicit_color(self, store):
        assert store.add_tag("news", "#123456").color == "#123456"

    def test_assign_and_toggle(self, store):
        tag = store.add_tag("news")
        assert store.assign_tag("s5", tag.id)
        assert not store.assign_tag("s5", tag.id)
        assert store.segments_by_tag(tag.id)[0].id == "s5"
        assert store.toggle_tag_on_segment("s5", tag.id)
        assert store.get_segment("s5").tags == ()
        assert store.toggle_tag_on_segment("s5", tag.id)
        assert store.tags_for_segment("s5") == [tag]

    def test_assign_unknown_tag(self, store):
        assert not store.assign_tag("s1", "no-such-tag")

    def test_remove_tag_strips_references(self, store):
        tag = store.add_tag("news")
        store.assign_tag("s1", tag.id)
        chapter_id = store.start_chapter("Intro", "s1", tags=[tag.id])
        history_before = len(store.history)
        assert store.remove_tag(tag.id)
        assert store.get_segment("s1").tags == ()
        assert store.get_chapter(chapter_id).tags == ()
        assert store.tags == ()
        assert len(store.history) == history_before + 1

    def test_rename_and_recolor(self, store):
        tag = store.add_tag("news")
        assert store.rename_tag(tag.id, "weather")
        assert not store.rename_tag(tag.id, "weather")
        assert store.update_tag_color(tag.id, "red")
        assert not store.update_tag_color(tag.id, "red")
        assert store.get_tag(tag.id).name == "weather"
        assert store.get_tag(tag.id).color == "red"


# ---------------------------------------------------------------------------
# TestChapters
# ---------------------------------------------------------------------------


class TestChapters:
    """Chapters never overlap and are kept in start order."""

    def test_first_chapter_runs_to_end(self, store):
        chapter_id = store.start_chapter("Intro", "s1")
        chapter = store.get_chapter(chapter_id)
        assert (chapter.start_segment_id, chapter.end_segment_id) == ("s1", "s6")
        assert chapter.segment_count == 6
        assert store.selected_chapter_id == chapter_id
        assert len(store.history) == 2

    def test_new_chapter_trims_previous(self, store):
        intro = store.start_chapter("Intro", "s1")
        main = store.start_chapter("Main", "s4")
        assert store.get_chapter(intro).end_segment_id == "s3"
        assert store.get_chapter(intro).segment_count == 3
        assert store.get_chapter(main).end_segment_id == "s6"
        assert [c.id for c in store.chapters] == [intro, main]

    def test_chapter_before_existing_ends_before_it(self, store):
        main = store.start_chapter("Main", "s4")
        intro = store.start_chapter("Intro", "s1")
        assert store.get_chapter(intro).end_segment_id == "s3"
        assert [c.id for c in store.chapters] == [intro, main]

    def test_existing_start_selects_instead(self, store):
        intro = store.start_chapter("Intro", "s1")
        store.select_chapter(None)
        assert store.start_chapter("Other", "s1") == intro
        assert store.selected_chapter_id == intro
        assert len(store.chapters) == 1
        assert len(store.history) == 2

    def test_blank_title_or_unknown_segment(self, store):
        assert store.start_chapter("  ", "s1") is None
        assert store.start_chapter("Intro", "missing") is None
        assert len(store.history) == 1

    def test_update_chapter_fields(self, store):
        chapter_id = store.start_chapter("Intro", "s1")
        assert store.update_chapter(chapter_id, title=" Opening ", summary="Hello", tags=["x"])
        chapter = store.get_chapter(chapter_id)
        assert chapter.title == "Opening"
        assert chapter.summary == "Hello"
        assert chapter.tags == ("x",)

    def test_update_chapter_rejects_blank_title(self, store):
        chapter_id = store.start_chapter("Intro", "s1")
        assert not store.update_chapter(chapter_id, title="  ")
        assert store.get_chapter(chapter_id).title == "Intro"

    def test_update_chapter_unknown_field(self, store):
        chapter_id = store.start_chapter("Intro", "s1")
        with pytest.raises(TypeError):
            store.update_chapter(chapter_id, colour="red")

    def test_update_chapter_refuses_overlap(self, store):
        intro = store.start_chapter("Intro", "s1")
        store.start_chapter("Main", "s4")
        history_before = len(store.history)
        assert not store.update_chapter(intro, end_segment_id="s5")
        assert store.get_chapter(intro).end_segment_id == "s3"
        assert len(store.history) == history_before

    def test_move_chapter_start_recomputes_ranges(self, store):
        intro = store.start_chapter("Intro", "s1")
        main = store.start_chapter("Main", "s4")
        assert store.move_chapter_start(main, "s3")
        assert store.get_chapter(intro).end_segment_id == "s2"
        assert store.get_chapter(intro).segment_count == 2
        assert store.get_chapter(main).segment_count == 4

    def test_move_chapter_must_stay_between_neighbours(self, store):
        store.start_chapter("Intro", "s1")
        main = store.start_chapter("Main", "s4")
        assert not store.move_chapter_start(main, "s1")
        assert not store.move_chapter_start(main, "s4")

    def test_delete_chapter_clears_selection(self, store):
        chapter_id = store.start_chapter("Intro", "s1")
        assert store.delete_chapter(chapter_id)
        assert store.chapters == ()
        assert store.selected_chapter_id is None
        assert not store.delete_chapter(chapter_id)

    def test_clear_chapters(self, store):
        store.start_chapter("Intro", "s1")
        store.start_chapter("Main", "s4")
        store.clear_chapters()
        assert store.chapters == ()

    def test_segments_in_chapter_and_lookup(self, store):
        store.start_chapter("Intro", "s1")
        main = store.start_chapter("Main", "s4")
        assert [s.id for s in store.segments_in_chapter(main)] == ["s4", "s5", "s6"]
        assert store.chapter_for_segment("s5").id == main


# ---------------------------------------------------------------------------
# TestUndoRedo
# ---------------------------------------------------------------------------


class TestUndoRedo:
    """Each mutation is exactly one undo step."""

    def test_undo_and_redo_text_edit(self, store):
        store.update_segment_text("s1", "Hi.")
        assert store.undo()
        assert store.get_segment("s1").text == "Welcome to the show."
        assert store.redo()
        assert store.get_segment("s1").text == "Hi."

    def test_undo_at_start_is_noop(self, store):
        assert not store.undo()
        assert not store.redo()

    def test_undo_split_restores_original(self, store):
        store.split_segment("s1", 2)
        store.undo()
        assert _ids(store) == ["s1", "s2", "s3", "s4", "s5", "s6"]

    def test_undo_chapter_creation(self, store):
        store.start_chapter("Intro", "s1")
        store.undo()
        assert store.chapters == ()

    def test_max_history_bounds_undo(self, segments):
        store = DocumentStore(max_history=3)
        store.load_transcript(segments)
        for i in range(5):
            store.update_segment_text("s1", "Edit {}.".format(i))
        assert len(store.history) == 3
        assert store.undo()
        assert store.undo()
        assert not store.undo()
        assert store.get_segment("s1").text == "Edit 2."


# ---------------------------------------------------------------------------
# TestSubscriptions
# ---------------------------------------------------------------------------


class TestSubscriptions:
    """subscribe() listeners see every state change."""

    def test_listener_receives_snapshot(self, store):
        seen = []
        store.subscribe(seen.append)
        store.update_segment_text("s1", "Hi.")
        assert len(seen) == 1
        assert seen[0] is store.snapshot()

    def test_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        store.update_segment_text("s1", "Hi.")
        assert seen == []
