"""Speaker classification: suggest who said each segment.

WHY: Diarization often splits one person into several speaker labels or
merges two people into one. A model reading the text can usually tell who
is talking from content and style, and propose reassignments the editor
confirms one by one or in bulk.

HOW: Each batch is rendered as numbered lines `[n] [speaker]: "text"` next
to the list of known speakers. The model answers with one
{tag, confidence, reason} entry per line, in order. Tags are matched
against known speakers by normalized alphanumerics; anything that does not
match exactly one known speaker becomes a new speaker suggestion.

RULES:
- Entries are matched to segments by position, not by id
- A suggestion equal (case-insensitively) to the current speaker is unchanged
- Acceptance creates each new speaker once, matched case-insensitively,
  and reassigns all segments in one commit
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any

from transcript_editor.ai.batching import Batch
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.errors import AIParseError
from transcript_editor.ai.features.base import AIFeature, ApplyResult, FeatureBatchResult, RunContext
from transcript_editor.ai.parsing import extract_json, validate_item
from transcript_editor.ai.prompts import PromptTemplate, build_messages
from transcript_editor.ai.suggestions import Issue, SpeakerSuggestion, segment_key
from transcript_editor.config import SPEAKER_BATCH_SIZE, palette_color
from transcript_editor.core.models import Segment, Speaker, generate_id
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a classifier for speaker-diarized transcripts.

TASK
----
You receive a numbered list of transcript sections. For EACH section,
assign exactly ONE speaker tag from the available speakers list.

OUTPUT FORMAT
-------------
Return ONLY valid JSON:

[
  {"tag": "<speaker>", "confidence": <number between 0 and 1>, "reason": "<one sentence>"},
  ...
]

IMPORTANT:
- Output order MUST match the order of the sections 1:1.
- Do not skip or add entries.
- Only JSON, no additional text.
- If no listed speaker fits, use a short descriptive new name.
- If unsure, prefer lower confidence over guessing."""

USER_PROMPT_TEMPLATE = """AVAILABLE SPEAKERS
------------------
{{speakers}}

SECTIONS TO CLASSIFY
--------------------
{{segments}}

Respond with ONLY the JSON array as specified."""

DEFAULT_TEMPLATE = PromptTemplate(
    id="builtin-speaker-classification",
    name="Speaker Classification",
    feature="speaker",
    system_prompt=SYSTEM_PROMPT,
    user_prompt_template=USER_PROMPT_TEMPLATE,
)

ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "tag": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "reason": {"type": "string"},
    },
    "required": ["tag"],
}

_REGEX_ITEM = re.compile(
    r'\{\s*"tag"\s*:\s*"([^"]+)"(?:\s*,\s*"confidence"\s*:\s*([\d.]+))?'
    r'(?:\s*,\s*"reason"\s*:\s*"([^"]*)")?\s*}',
    re.IGNORECASE,
)
_TAG_EDGES = re.compile(r"^[\[<(\s]+|[\]>)\s]+$")


def normalize_speaker_tag(tag: str) -> str:
    """Lowercased ASCII alphanumerics only: "[SPEAKER_01]" → "speaker01"."""
    return "".join(ch.lower() for ch in tag if ch.isascii() and ch.isalnum())


def resolve_suggested_speaker(raw_tag: str, available: Iterable[str]) -> str | None:
    """Find the one known speaker a model tag refers to.

    Returns None when nothing matches or the tag is ambiguous.
    """
    wanted = normalize_speaker_tag(raw_tag)
    if not wanted:
        return None
    match = None
    for speaker in available:
        candidate = normalize_speaker_tag(speaker)
        if candidate and (candidate == wanted or wanted in candidate):
            if match is not None and match != speaker:
                return None
            match = speaker
    return match


def mark_new_speaker(tag: str) -> str:
    return tag.strip().removeprefix("[").removesuffix("]").strip()


def format_segments_for_prompt(segments: Sequence[Segment]) -> str:
    return "\n".join(f'[{i}] [{s.speaker}]: "{s.text}"' for i, s in enumerate(segments, start=1))


def _extract_items(response: str) -> list[Any]:
    try:
        parsed = extract_json(response)
    except AIParseError:
        items = [
            {
                "tag": m.group(1),
                **({"confidence": float(m.group(2))} if m.group(2) else {}),
                **({"reason": m.group(3)} if m.group(3) else {}),
            }
            for m in _REGEX_ITEM.finditer(response)
        ]
        if not items:
            raise AIParseError(
                "Response did not contain any parseable speaker entries", raw_response=response[:200]
            )
        return items
    return parsed if isinstance(parsed, list) else [parsed]


class SpeakerFeature(AIFeature):
    key = "speaker"
    label = "Speaker classification"
    default_batch_size = SPEAKER_BATCH_SIZE

    async def invoke(
        self, batch: Batch[Segment], context: RunContext, token: CancellationToken
    ) -> FeatureBatchResult:
        known = [speaker.name for speaker in context.snapshot.speakers]
        variables = {
            "speakers": ", ".join(known),
            "segments": format_segments_for_prompt(batch.items),
        }
        template = context.options.get("template") or DEFAULT_TEMPLATE
        response = await context.provider.chat(build_messages(template, variables), token=token)
        items = _extract_items(response)

        pool = list(dict.fromkeys([*known, *(s.speaker for s in batch.items)]))
        min_confidence = float(context.options.get("min_confidence") or 0.0)
        result = FeatureBatchResult(raw_count=len(items))
        for position, segment in enumerate(batch.items, start=1):
            if position > len(items):
                result.issues.append(
                    Issue("warn", f"Missing response entry for segment {segment.id}", {"position": position})
                )
                continue
            item = items[position - 1]
            valid, messages = validate_item(item, ITEM_SCHEMA)
            if not valid:
                result.issues.append(
                    Issue("warn", f"Invalid entry for segment {segment.id}: {'; '.join(messages)}")
                )
                result.ignored_count += 1
                continue
            suggestion = self.to_suggestion(item, context, segment=segment, pool=pool)
            if suggestion is None:
                result.issues.append(
                    Issue("warn", f"Empty speaker tag for segment {segment.id}", {"tag": item.get("tag")})
                )
                result.ignored_count += 1
            elif suggestion.suggested_speaker.casefold() == segment.speaker.casefold():
                result.unchanged_count += 1
            elif (suggestion.confidence or 0.0) < min_confidence:
                result.ignored_count += 1
            else:
                result.results.append(suggestion)

        extra = len(items) - len(batch.items)
        if extra > 0:
            result.issues.append(
                Issue(
                    "warn",
                    f"Model returned {extra} extra entries",
                    {"returned": len(items), "expected": len(batch.items)},
                )
            )
            result.ignored_count += extra
        return result

    def to_suggestion(
        self, item: dict[str, Any], context: RunContext, **extra: Any
    ) -> SpeakerSuggestion | None:
        segment: Segment = extra["segment"]
        cleaned = _TAG_EDGES.sub("", str(item.get("tag") or "")).strip()
        if not cleaned:
            return None
        resolved = resolve_suggested_speaker(cleaned, extra.get("pool") or ())
        name = resolved if resolved is not None else mark_new_speaker(cleaned)
        confidence = item.get("confidence")
        confidence = 0.5 if not isinstance(confidence, (int, float)) else max(0.0, min(1.0, float(confidence)))
        return SpeakerSuggestion(
            target_key=segment_key(segment.id),
            segment_id=segment.id,
            current_speaker=segment.speaker,
            suggested_speaker=name,
            is_new_speaker=resolved is None,
            confidence=confidence,
            reason=item.get("reason"),
        )

    def apply(self, store: DocumentStore, suggestions: Sequence[SpeakerSuggestion]) -> ApplyResult:
        snapshot = store.snapshot()
        existing_ids = {segment.id for segment in snapshot.segments}
        speakers = list(snapshot.speakers)
        canonical = {speaker.name.casefold(): speaker.name for speaker in speakers}
        assignments: dict[str, str] = {}
        result = ApplyResult()

        for suggestion in suggestions:
            name = suggestion.suggested_speaker.strip()
            if suggestion.segment_id not in existing_ids or not name:
                result.stale_keys.append(suggestion.target_key)
                continue
            folded = name.casefold()
            if folded not in canonical:
                speakers.append(Speaker(id=generate_id(), name=name, color=palette_color(len(speakers))))
                canonical[folded] = name
            assignments[suggestion.segment_id] = canonical[folded]
            result.applied_keys.append(suggestion.target_key)

        if not assignments:
            return result
        segments = [
            dataclasses.replace(segment, speaker=assignments[segment.id])
            if segment.id in assignments
            else segment
            for segment in snapshot.segments
        ]
        added = len(speakers) - len(snapshot.speakers)
        store.commit(segments=segments, speakers=speakers if added else None)
        logger.info("Applied %d speaker suggestions (%d new speakers)", len(assignments), added)
        return result
