"""Chapter detection: propose titled chapter ranges over the transcript.

WHY: Long recordings are easier to navigate in chapters, and topic shifts
are something a language model spots well. The editor reviews proposed
ranges before they become real chapters.

HOW: Segments are sent in large batches as `simpleId | speaker | text`
lines, so the model only ever sees small integers. The model returns
{chapters: [{title, summary, notes, tags, start, end}]} with simple ids,
which are mapped back to real segment ids for this batch. The last
chapter of each batch is passed to the next batch as context so a topic
spanning a batch boundary is described consistently.

RULES:
- Chapter suggestion keys are "start|end" using real segment ids
- A chapter whose start or end id cannot be mapped, or whose start comes
  after its end, is ignored with a warning
- Only tag ids that exist in the document are kept
- Acceptance is all-or-nothing: any overlap rejects the whole accept
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from transcript_editor.ai.batching import Batch, BatchIdMapping
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.features.base import AIFeature, ApplyResult, FeatureBatchResult, RunContext
from transcript_editor.ai.parsing import parse_response
from transcript_editor.ai.prompts import PromptTemplate, build_messages
from transcript_editor.ai.suggestions import ChapterSuggestion, Issue, Suggestion, chapter_key
from transcript_editor.config import CHAPTER_BATCH_SIZE, MAX_CHAPTER_BATCH_SIZE
from transcript_editor.core.chapters import build_segment_index_map, check_chapter_conflicts
from transcript_editor.core.models import Chapter, Segment, Tag, generate_id
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You analyze transcripts to identify natural chapter boundaries.

TASK
----
Split the transcript into non-overlapping chapters based on:
- topic shifts
- structural shifts (agenda sections, Q&A, wrap-up)
- significant speaker or mode changes

CONSTRAINTS
-----------
- Chapters must be contiguous and non-overlapping.
- Use segment simple IDs only (numbers). Never invent IDs.
- Keep titles short (3 to 8 words) and descriptive.
- Write summaries as 1 sentence, content-focused.
- Tags (if any) must be from the provided list of tag IDs.

OUTPUT
------
Return JSON that matches the schema."""

USER_PROMPT_TEMPLATE = """TRANSCRIPT (BATCH)
------------------
Batch: {{batch_index}} / {{total_batches}}
Batch size: {{batch_size}}
Min chapter length (segments): {{min_chapter_length}}
Max chapter length (segments): {{max_chapter_length}}

AVAILABLE TAG IDS
-----------------
{{tags_available}}

{{#if previous_chapter}}
PREVIOUS CHAPTER (from the prior batch)
---------------------------------------
{{previous_chapter}}
{{/if}}

SEGMENTS (SimpleID | Speaker | Text)
-----------------------------------
{{segments}}

Return JSON in this exact format:
{
  "chapters": [
    {"title": "...", "summary": "...", "tags": ["tag-id-1"], "start": 1, "end": 3}
  ]
}"""

DEFAULT_TEMPLATE = PromptTemplate(
    id="builtin-chapter-detection",
    name="Chapter Detection",
    feature="chapter",
    system_prompt=SYSTEM_PROMPT,
    user_prompt_template=USER_PROMPT_TEMPLATE,
)

RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "chapters": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "summary": {"type": "string"},
                    "notes": {"type": "string"},
                    "tags": {"type": "array", "items": {"type": "string"}},
                    "start": {"type": ["number", "string"]},
                    "end": {"type": ["number", "string"]},
                },
                "required": ["title", "start", "end"],
            },
        },
    },
    "required": ["chapters"],
}

DEFAULT_MIN_CHAPTER_LENGTH = 3
DEFAULT_MAX_CHAPTER_LENGTH = 50


def format_tags_for_prompt(tags: Iterable[Tag]) -> str:
    lines = [f"- {tag.id}: {tag.name}" for tag in tags]
    return "\n".join(lines) if lines else "(none)"


def format_segments_for_prompt(segments: Sequence[Segment], mapping: BatchIdMapping) -> str:
    return "\n".join(
        f"{mapping.real_to_simple[s.id]} | {s.speaker.strip() or '[Unknown]'} | {s.text.strip()}"
        for s in segments
    )


def _optional_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ChapterFeature(AIFeature):
    key = "chapter"
    label = "Chapter detection"
    default_batch_size = CHAPTER_BATCH_SIZE
    max_batch_size = MAX_CHAPTER_BATCH_SIZE
    counts_per_item = False

    def pending_item_keys(self, suggestions: Iterable[Suggestion]) -> set[str]:
        # Detection always re-reads its whole scope; duplicates are dropped by key.
        return set()

    async def invoke(
        self, batch: Batch[Segment], context: RunContext, token: CancellationToken
    ) -> FeatureBatchResult:
        mapping = BatchIdMapping.for_ids(s.id for s in batch.items)
        options = context.options
        variables = {
            "batch_index": batch.number,
            "total_batches": batch.total_batches,
            "batch_size": len(batch.items),
            "min_chapter_length": options.get("min_chapter_length", DEFAULT_MIN_CHAPTER_LENGTH),
            "max_chapter_length": options.get("max_chapter_length", DEFAULT_MAX_CHAPTER_LENGTH),
            "tags_available": format_tags_for_prompt(context.snapshot.tags),
            "previous_chapter": context.state.get("previous_chapter"),
            "segments": format_segments_for_prompt(batch.items, mapping),
        }
        template = options.get("template") or DEFAULT_TEMPLATE
        response = await context.provider.chat(build_messages(template, variables), token=token)
        data = parse_response(response, RESPONSE_SCHEMA)

        raw_chapters = data["chapters"]
        result = FeatureBatchResult(raw_count=len(raw_chapters))
        for item in raw_chapters:
            suggestion = self.to_suggestion(item, context, mapping=mapping)
            if suggestion is None:
                result.issues.append(
                    Issue(
                        "warn",
                        f"Chapter {str(item.get('title', '')).strip()!r} has an invalid segment range",
                        {"start": item.get("start"), "end": item.get("end")},
                    )
                )
                result.ignored_count += 1
                continue
            result.results.append(suggestion)

        if result.results:
            last = result.results[-1]
            context.state["previous_chapter"] = (
                f"{last.title}: {last.summary}" if last.summary else last.title
            )
        result.summary = f"{len(result.results)} chapters detected"
        return result

    def to_suggestion(
        self, item: dict[str, Any], context: RunContext, **extra: Any
    ) -> ChapterSuggestion | None:
        mapping: BatchIdMapping = extra["mapping"]
        title = str(item.get("title") or "").strip()
        start_id = mapping.to_real(item.get("start"))
        end_id = mapping.to_real(item.get("end"))
        if not title or start_id is None or end_id is None:
            return None
        index_by_id = context.state.get("index_by_id")
        if index_by_id is None:
            index_by_id = context.state["index_by_id"] = build_segment_index_map(context.snapshot.segments)
        start, end = index_by_id[start_id], index_by_id[end_id]
        if start > end:
            return None
        known_tags = {tag.id for tag in context.snapshot.tags}
        return ChapterSuggestion(
            target_key=chapter_key(start_id, end_id),
            start_segment_id=start_id,
            end_segment_id=end_id,
            title=title,
            summary=_optional_text(item.get("summary")),
            notes=_optional_text(item.get("notes")),
            tags=tuple(str(t) for t in item.get("tags") or () if str(t) in known_tags),
            segment_count=end - start + 1,
        )

    def apply(self, store: DocumentStore, suggestions: Sequence[ChapterSuggestion]) -> ApplyResult:
        result = ApplyResult()
        incoming = []
        for suggestion in suggestions:
            if store.get_segment(suggestion.start_segment_id) is None or store.get_segment(
                suggestion.end_segment_id
            ) is None:
                result.stale_keys.append(suggestion.target_key)
                continue
            incoming.append(
                Chapter(
                    id=generate_id(),
                    title=suggestion.title,
                    start_segment_id=suggestion.start_segment_id,
                    end_segment_id=suggestion.end_segment_id,
                    summary=suggestion.summary,
                    notes=suggestion.notes,
                    tags=suggestion.tags,
                    source="ai",
                )
            )
            result.applied_keys.append(suggestion.target_key)
        if not incoming:
            return result

        checked = check_chapter_conflicts(store.chapters, incoming, store.segments)
        if not checked.ok:
            logger.warning("Rejected chapter acceptance: %s", checked.error)
            return ApplyResult(error=checked.error)
        store.commit(chapters=checked.chapters)
        logger.info("Applied %d chapter suggestions", len(incoming))
        return result
