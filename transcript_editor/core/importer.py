"""Parse Whisper and WhisperX transcript JSON into document records.

WHY: Transcripts arrive as JSON produced by different ASR tools. Plain
Whisper emits a list of {timestamp, text}; WhisperX emits {segments: [...]}
with speakers, word timings, and optionally tags and chapters. The store
should only ever see one shape.

HOW: parse_transcript_data() sniffs the format and returns an
ImportedTranscript holding Segment records (tag names unresolved) plus any
tag and chapter records found in the file. DocumentStore.load_transcript()
resolves tag names to ids.

RULES:
- Whisper segments get ids "seg-<index>" and speaker SPEAKER_00
- WhisperX segments keep their id when present, else "seg-<index>"
- Segments without word timings get words spread evenly over the segment
- Unknown input raises TranscriptFormatError
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from transcript_editor.config import DEFAULT_SPEAKER_NAME, palette_color
from transcript_editor.core.models import Chapter, Segment, Tag, Word, generate_id
from transcript_editor.core.segment_text import spread_words

logger = logging.getLogger(__name__)


class TranscriptFormatError(ValueError):
    """Raised when a file is neither Whisper nor WhisperX JSON."""


@dataclass
class ImportedTranscript:
    segments: list[Segment]
    is_whisperx_format: bool
    tags: list[Tag]
    chapters: list[Chapter]


def is_whisper_format(data: Any) -> bool:
    return isinstance(data, list) and bool(data) and isinstance(data[0], dict) and "timestamp" in data[0]


def is_whisperx_format(data: Any) -> bool:
    return isinstance(data, dict) and "segments" in data


def _whisper_segments(data: list[dict]) -> list[Segment]:
    segments = []
    for index, item in enumerate(data):
        start, end = float(item["timestamp"][0]), float(item["timestamp"][1])
        text = str(item.get("text", "")).strip()
        segments.append(
            Segment(
                id=f"seg-{index}",
                speaker=DEFAULT_SPEAKER_NAME,
                start=start,
                end=end,
                text=text,
                words=tuple(spread_words(text.split(), start, end)),
            )
        )
    return segments


def _whisperx_segments(data: dict) -> list[Segment]:
    segments = []
    for index, item in enumerate(data["segments"]):
        start, end = float(item["start"]), float(item["end"])
        text = str(item.get("text", "")).strip()
        speaker = item.get("speaker") or DEFAULT_SPEAKER_NAME
        raw_words = item.get("words")
        if raw_words:
            words = tuple(
                Word(
                    text=str(w["word"]),
                    start=float(w["start"]),
                    end=float(w["end"]),
                    speaker=w.get("speaker"),
                    score=w["score"] if isinstance(w.get("score"), (int, float)) else None,
                )
                for w in raw_words
                if "start" in w and "end" in w
            )
        else:
            words = tuple(spread_words(text.split(), start, end))
        tags = tuple(str(t) for t in item.get("tags") or ())
        segments.append(
            Segment(
                id=str(item.get("id") or f"seg-{index}"),
                speaker=speaker,
                start=start,
                end=end,
                text=text,
                words=words,
                confirmed=bool(item.get("confirmed", False)),
                bookmarked=bool(item.get("bookmarked", False)),
                tags=tags,
            )
        )
    return segments


def _tags(raw: Any) -> list[Tag]:
    tags = []
    for index, item in enumerate(raw if isinstance(raw, list) else ()):
        if not isinstance(item, dict) or not str(item.get("name", "")).strip():
            continue
        tags.append(
            Tag(
                id=str(item.get("id") or generate_id()),
                name=str(item["name"]).strip(),
                color=str(item.get("color") or palette_color(index)),
            )
        )
    return tags


def _chapters(raw: Any) -> list[Chapter]:
    chapters = []
    for item in raw if isinstance(raw, list) else ():
        try:
            chapters.append(
                Chapter(
                    id=str(item.get("id") or generate_id()),
                    title=str(item["title"]).strip(),
                    start_segment_id=str(item.get("startSegmentId", item.get("start_segment_id"))),
                    end_segment_id=str(item.get("endSegmentId", item.get("end_segment_id"))),
                    summary=item.get("summary"),
                    notes=item.get("notes"),
                    tags=tuple(item.get("tags") or ()),
                    source=item.get("source", "manual"),
                )
            )
        except (KeyError, TypeError, AttributeError):
            logger.warning("Skipping malformed chapter entry: %r", item)
    return chapters


def parse_transcript_data(data: Any) -> ImportedTranscript:
    """Convert decoded transcript JSON into an ImportedTranscript.

    Raises:
        TranscriptFormatError: If the data matches neither known format.
    """
    if is_whisper_format(data):
        return ImportedTranscript(_whisper_segments(data), False, [], [])
    if is_whisperx_format(data):
        return ImportedTranscript(
            _whisperx_segments(data), True, _tags(data.get("tags")), _chapters(data.get("chapters"))
        )
    raise TranscriptFormatError(
        "Unrecognized transcript format: expected a Whisper segment list "
        "or a WhisperX object with a 'segments' key."
    )


def load_transcript_file(path: Path) -> ImportedTranscript:
    """Read and parse a transcript JSON file from disk."""
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as exc:
            raise TranscriptFormatError(f"{path.name} is not valid JSON: {exc}") from exc
    return parse_transcript_data(data)
