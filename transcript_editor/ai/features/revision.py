"""Text revision: propose a cleaned-up version of each segment.

Each segment is sent on its own together with its neighbours' text for
context, so one batch makes one provider call per segment. The reply is
plain text, not JSON. Replies that only differ in whitespace count as
unchanged; others become a RevisionSuggestion carrying a word-level diff.
"""

from __future__ import annotations

import difflib
import logging
import re
from collections.abc import Sequence
from typing import Any

from transcript_editor.ai.batching import Batch
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.errors import AICancellationError, AIError
from transcript_editor.ai.features.base import AIFeature, ApplyResult, FeatureBatchResult, RunContext
from transcript_editor.ai.prompts import PromptTemplate, build_messages
from transcript_editor.ai.suggestions import Issue, RevisionSuggestion, TextChange, segment_key
from transcript_editor.config import REVISION_BATCH_SIZE
from transcript_editor.core.chapters import build_segment_index_map
from transcript_editor.core.models import Segment
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)

_USER_TEMPLATE = """{{#if previous_text}}
CONTEXT (previous segment): {{previous_text}}
{{/if}}

TEXT TO REVISE:
{{text}}

{{#if next_text}}
CONTEXT (next segment): {{next_text}}
{{/if}}

Provide the revised text:"""

_OUTPUT_RULES = """OUTPUT FORMAT
-------------
Return ONLY the revised text. No explanations, no markdown, no quotes.
If no changes are needed, return the original text exactly."""

BUILTIN_PROMPTS: dict[str, PromptTemplate] = {
    p.id: p
    for p in (
        PromptTemplate(
            id="builtin-text-cleanup",
            name="Transcript Cleanup",
            feature="revision",
            system_prompt=(
                "You are a professional transcript editor.\n\n"
                "Fix spelling, grammar, and punctuation. Remove filler words (um, uh, you know)\n"
                "unless they add meaning. Preserve the speaker's voice, technical terms, and\n"
                "proper nouns.\n\n" + _OUTPUT_RULES
            ),
            user_prompt_template=_USER_TEMPLATE,
        ),
        PromptTemplate(
            id="builtin-clarity",
            name="Improve Clarity",
            feature="revision",
            system_prompt=(
                "You are a professional editor focused on clarity.\n\n"
                "Simplify complex sentences, use clearer word choices, and fix run-on\n"
                "sentences. Preserve the speaker's voice and all key information.\n\n" + _OUTPUT_RULES
            ),
            user_prompt_template=_USER_TEMPLATE,
        ),
        PromptTemplate(
            id="builtin-formalize",
            name="Formalize",
            feature="revision",
            system_prompt=(
                "You are a professional editor for formal documents.\n\n"
                "Convert informal speech to formal, professional language. Remove\n"
                "contractions and keep technical terms unchanged.\n\n" + _OUTPUT_RULES
            ),
            user_prompt_template=_USER_TEMPLATE,
        ),
    )
}
DEFAULT_PROMPT_ID = "builtin-text-cleanup"

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?|\n?```$")
_WHITESPACE = re.compile(r"\s+")


def clean_revision_response(response: str) -> str:
    """Strip code fences and one level of wrapping quotes."""
    text = _FENCE.sub("", response.strip()).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text


def has_substantive_changes(original: str, revised: str) -> bool:
    return _WHITESPACE.sub(" ", original.strip()) != _WHITESPACE.sub(" ", revised.strip())


def compute_text_changes(original: str, revised: str) -> tuple[TextChange, ...]:
    """Word-level differences; position is the word index in the original."""
    old_words, new_words = original.split(), revised.split()
    matcher = difflib.SequenceMatcher(a=old_words, b=new_words, autojunk=False)
    return tuple(
        TextChange(
            type=op,
            position=i1,
            old_text=" ".join(old_words[i1:i2]),
            new_text=" ".join(new_words[j1:j2]),
        )
        for op, i1, i2, j1, j2 in matcher.get_opcodes()
        if op != "equal"
    )


def summarize_changes(changes: Sequence[TextChange]) -> str:
    counts: dict[str, int] = {}
    for change in changes:
        counts[change.type] = counts.get(change.type, 0) + 1
    labels = {"replace": "replaced", "insert": "inserted", "delete": "removed"}
    return ", ".join(f"{n} {labels[kind]}" for kind, n in counts.items())


class RevisionFeature(AIFeature):
    key = "revision"
    label = "Text revision"
    default_batch_size = REVISION_BATCH_SIZE

    def _template(self, options: dict[str, Any]) -> PromptTemplate:
        template = options.get("template")
        if template is not None:
            return template
        return BUILTIN_PROMPTS.get(options.get("prompt_id") or DEFAULT_PROMPT_ID) or BUILTIN_PROMPTS[DEFAULT_PROMPT_ID]

    async def invoke(
        self, batch: Batch[Segment], context: RunContext, token: CancellationToken
    ) -> FeatureBatchResult:
        all_segments = context.snapshot.segments
        index_by_id = context.state.get("index_by_id")
        if index_by_id is None:
            index_by_id = context.state["index_by_id"] = build_segment_index_map(all_segments)
        template = self._template(context.options)

        result = FeatureBatchResult()
        for segment in batch.items:
            token.raise_if_cancelled()
            index = index_by_id.get(segment.id, -1)
            variables = {
                "text": segment.text,
                "speaker": segment.speaker,
                "previous_text": all_segments[index - 1].text if index > 0 else None,
                "next_text": all_segments[index + 1].text if 0 <= index < len(all_segments) - 1 else None,
            }
            try:
                response = await context.provider.chat(build_messages(template, variables), token=token)
            except AICancellationError:
                raise
            except AIError as exc:
                result.issues.append(
                    Issue("error", f"Revision failed for segment {segment.id}: {exc.user_message()}")
                )
                continue
            result.raw_count += 1
            revised = clean_revision_response(response)
            if not revised:
                result.issues.append(Issue("warn", f"Empty revision for segment {segment.id}"))
                result.ignored_count += 1
                continue
            suggestion = self.to_suggestion({"revised_text": revised}, context, segment=segment, template=template)
            if suggestion is None:
                result.unchanged_count += 1
            else:
                result.results.append(suggestion)
        return result

    def to_suggestion(
        self, item: dict[str, Any], context: RunContext, **extra: Any
    ) -> RevisionSuggestion | None:
        segment: Segment = extra["segment"]
        revised = item["revised_text"]
        if not has_substantive_changes(segment.text, revised):
            return None
        changes = compute_text_changes(segment.text, revised)
        template: PromptTemplate | None = extra.get("template")
        return RevisionSuggestion(
            target_key=segment_key(segment.id),
            segment_id=segment.id,
            original_text=segment.text,
            revised_text=revised,
            changes=changes,
            change_summary=summarize_changes(changes) or None,
            prompt_id=template.id if template else None,
        )

    def apply(self, store: DocumentStore, suggestions: Sequence[RevisionSuggestion]) -> ApplyResult:
        result = ApplyResult()
        updates: dict[str, str] = {}
        for suggestion in suggestions:
            if store.get_segment(suggestion.segment_id) is None:
                result.stale_keys.append(suggestion.target_key)
                continue
            updates[suggestion.segment_id] = suggestion.revised_text
            result.applied_keys.append(suggestion.target_key)
        if updates:
            changed = store.update_segments_texts(updates)
            logger.info("Applied %d revisions (%d segments changed)", len(updates), changed)
        return result
