"""Segment merge analysis: find adjacent segments that belong together.

WHY: ASR engines break sentences at pauses, leaving fragments like
"So what we're trying to." / "Achieve here is better". Spotting these
needs language understanding, but which pairs are even eligible is a
simple timing rule, so only eligible pairs are sent to the model.

HOW: Within each batch, consecutive document-adjacent segments whose gap
is between 0 and max_time_gap (and, by default, share a speaker) form the
candidate pairs. Segments carry 1-based prompt ids. The model answers
with [{segmentIds: [a, b], confidence, reason, smoothedText?,
smoothingChanges?}]. Scores map to high/medium/low confidence levels and
anything below min_confidence is dropped.

RULES:
- Merge keys are "first_id|second_id"
- A returned pair that is not one of the candidate pairs is ignored
- Acceptance merges every pair in one commit and skips pairs whose
  segments are gone or no longer adjacent
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from transcript_editor.ai.batching import Batch, BatchIdMapping
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.features.base import AIFeature, ApplyResult, FeatureBatchResult, RunContext
from transcript_editor.ai.parsing import extract_json, validate_item
from transcript_editor.ai.prompts import PromptTemplate, build_messages
from transcript_editor.ai.suggestions import Issue, MergeSuggestion, Suggestion, SuggestionStatus, merge_key
from transcript_editor.config import MERGE_BATCH_SIZE
from transcript_editor.core.chapters import build_segment_index_map
from transcript_editor.core.models import Segment
from transcript_editor.core.store import DocumentStore, merge_adjacent_segments

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You analyze transcript segments to identify which ones should be merged together.

TASK
----
Evaluate consecutive segment pairs and decide whether each pair should be merged.
All pairs were pre-filtered for speaker and time gap; judge only the CONTENT:
- Does the first segment's sentence continue in the next one?
- Are both segments part of the same thought?
- Would merging improve readability?

Watch for incorrect sentence breaks, where a period and capital letter were
inserted mid-sentence.

CONFIDENCE SCORING:
- 0.9-1.0: obvious merge (incomplete sentence, clear continuation)
- 0.7-0.89: likely merge
- 0.5-0.69: possible merge
- below 0.5: probably should not merge

OUTPUT FORMAT
-------------
Return a JSON array. Each entry MUST look like:
{"segmentIds": [1, 2], "confidence": 0.95, "reason": "..."}
When smoothing is requested also include "smoothedText" (the corrected merged
text) and "smoothingChanges" (what was changed).
If no merges are suggested, return []."""

USER_PROMPT_TEMPLATE = """Analyze these transcript segment pairs for potential merges.

CONTEXT:
- Maximum time gap allowed: {{max_time_gap}} seconds
{{#if enable_smoothing}}- Text smoothing: ENABLED, provide smoothedText for each merge{{/if}}

SEGMENT PAIRS TO ANALYZE:
{{segment_pairs}}

Return your merge suggestions as a JSON array."""

DEFAULT_TEMPLATE = PromptTemplate(
    id="builtin-segment-merge",
    name="Segment Merge Analysis",
    feature="merge",
    system_prompt=SYSTEM_PROMPT,
    user_prompt_template=USER_PROMPT_TEMPLATE,
)

ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "segmentIds": {"type": "array", "minItems": 2, "maxItems": 2},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "reason": {"type": "string"},
        "smoothedText": {"type": "string"},
        "smoothingChanges": {"type": "string"},
    },
    "required": ["segmentIds", "confidence"],
}

DEFAULT_MAX_TIME_GAP = 2.0
CONFIDENCE_LEVELS = ("low", "medium", "high")


def score_to_confidence_level(score: float) -> str:
    if score >= 0.8:
        return "high"
    if score >= 0.5:
        return "medium"
    return "low"


def format_time(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes):02d}:{secs:04.1f}"


def find_candidate_pairs(
    segments: Sequence[Segment],
    index_by_id: dict[str, int],
    max_time_gap: float,
    same_speaker_only: bool = True,
) -> list[tuple[Segment, Segment, float]]:
    """Consecutive document-adjacent pairs that satisfy the timing rules."""
    pairs = []
    for first, second in zip(segments, segments[1:]):
        if index_by_id.get(second.id) != index_by_id.get(first.id, -2) + 1:
            continue
        gap = second.start - first.end
        if not 0 <= gap <= max_time_gap:
            continue
        if same_speaker_only and first.speaker != second.speaker:
            continue
        pairs.append((first, second, gap))
    return pairs


def format_pairs_for_prompt(pairs: Iterable[tuple[Segment, Segment, float]], mapping: BatchIdMapping) -> str:
    blocks = []
    for n, (first, second, gap) in enumerate(pairs, start=1):
        lines = [f"Pair {n} (gap {gap:.1f}s):"]
        for segment in (first, second):
            lines.append(
                f"  [{mapping.real_to_simple[segment.id]}] {segment.speaker} "
                f"({format_time(segment.start)} - {format_time(segment.end)}): \"{segment.text}\""
            )
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class MergeFeature(AIFeature):
    key = "merge"
    label = "Segment merge analysis"
    default_batch_size = MERGE_BATCH_SIZE
    counts_per_item = False

    def pending_item_keys(self, suggestions: Iterable[Suggestion]) -> set[str]:
        keys: set[str] = set()
        for suggestion in suggestions:
            if suggestion.status == SuggestionStatus.PENDING:
                keys.update(suggestion.segment_ids)
        return keys

    def validate_targets(self, targets: Sequence[Segment]) -> str | None:
        if len(targets) < 2:
            return "At least 2 segments required for merge analysis"
        return None

    async def invoke(
        self, batch: Batch[Segment], context: RunContext, token: CancellationToken
    ) -> FeatureBatchResult:
        options = context.options
        index_by_id = context.state.get("index_by_id")
        if index_by_id is None:
            index_by_id = context.state["index_by_id"] = build_segment_index_map(context.snapshot.segments)
        max_gap = float(options.get("max_time_gap", DEFAULT_MAX_TIME_GAP))
        pairs = find_candidate_pairs(
            batch.items, index_by_id, max_gap, bool(options.get("same_speaker_only", True))
        )
        if not pairs:
            return FeatureBatchResult(summary="No eligible pairs in batch")

        mapping = BatchIdMapping.for_ids(s.id for s in batch.items)
        smoothing = bool(options.get("enable_smoothing", True))
        variables = {
            "max_time_gap": max_gap,
            "enable_smoothing": smoothing,
            "segment_pairs": format_pairs_for_prompt(pairs, mapping),
        }
        template = options.get("template") or DEFAULT_TEMPLATE
        response = await context.provider.chat(build_messages(template, variables), token=token)
        parsed = extract_json(response)
        if isinstance(parsed, dict):
            parsed = parsed.get("merges") or parsed.get("suggestions") or [parsed]
        items = parsed if isinstance(parsed, list) else []

        eligible = {(a.id, b.id): (a, b, gap) for a, b, gap in pairs}
        min_level = CONFIDENCE_LEVELS.index(options.get("min_confidence", "medium"))
        result = FeatureBatchResult(raw_count=len(items))
        for item in items:
            valid, messages = validate_item(item, ITEM_SCHEMA)
            if not valid:
                result.issues.append(Issue("warn", f"Invalid merge entry: {'; '.join(messages)}"))
                result.ignored_count += 1
                continue
            suggestion = self.to_suggestion(
                item, context, mapping=mapping, eligible=eligible, smoothing=smoothing
            )
            if suggestion is None:
                result.issues.append(
                    Issue("warn", "Model referenced a pair that is not eligible", {"segmentIds": item["segmentIds"]})
                )
                result.ignored_count += 1
            elif CONFIDENCE_LEVELS.index(suggestion.confidence_level) < min_level:
                result.ignored_count += 1
            else:
                result.results.append(suggestion)
        result.summary = f"{len(result.results)} of {len(pairs)} pairs suggested"
        return result

    def to_suggestion(
        self, item: dict[str, Any], context: RunContext, **extra: Any
    ) -> MergeSuggestion | None:
        mapping: BatchIdMapping = extra["mapping"]
        first_id, second_id = (mapping.to_real(v) for v in item["segmentIds"])
        pair = extra["eligible"].get((first_id, second_id))
        if pair is None:
            return None
        first, second, gap = pair
        score = max(0.0, min(1.0, float(item["confidence"])))
        smoothed = item.get("smoothedText") if extra.get("smoothing", True) else None
        return MergeSuggestion(
            target_key=merge_key(first.id, second.id),
            segment_ids=(first.id, second.id),
            merged_text=f"{first.text} {second.text}",
            smoothed_text=smoothed.strip() if isinstance(smoothed, str) and smoothed.strip() else None,
            smoothing_changes=item.get("smoothingChanges") if smoothed else None,
            time_gap=gap,
            confidence_level=score_to_confidence_level(score),
            confidence=score,
            reason=item.get("reason"),
        )

    def apply(self, store: DocumentStore, suggestions: Sequence[MergeSuggestion]) -> ApplyResult:
        result = ApplyResult()
        segments, chapters = store.segments, list(store.chapters)
        merged_ids = []
        for suggestion in suggestions:
            merged = merge_adjacent_segments(
                segments, chapters, *suggestion.segment_ids, text=suggestion.smoothed_text
            )
            if merged is None:
                result.stale_keys.append(suggestion.target_key)
                continue
            segments, chapters, merged_id = merged
            merged_ids.append(merged_id)
            result.applied_keys.append(suggestion.target_key)
        if not merged_ids:
            return result

        selected = store.selected_segment_id
        if selected is not None and all(s.id != selected for s in segments):
            selected = merged_ids[-1]
        store.commit(segments=segments, chapters=chapters, selected_segment_id=selected)
        logger.info("Applied %d merge suggestions", len(merged_ids))
        return result
