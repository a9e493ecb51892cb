"""Shared test fixtures for the transcript_editor test suite.

WHY: Store, session, feature, orchestrator, and API tests all need the
same small diarized transcript and a chat provider that answers without
a network. Centralizing them here keeps every module working on the
same, easy-to-reason-about document.

HOW: Pytest fixtures provide a six-segment, two-speaker transcript (as
records, as a loaded DocumentStore, and as Whisper/WhisperX JSON), a
factory for longer transcripts, and a factory for ScriptedProvider, a
ChatProvider whose replies are queued up front.

RULES:
- Segment ids are deterministic ("s1".."s6", "seg-0".."seg-N")
- ScriptedProvider never opens a socket; it records every message list
- A queued reply may be a string, an exception to raise, or a callable
  receiving the messages
- An optional asyncio.Event gate holds every reply until it is set
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from transcript_editor.ai.providers import ChatProvider
from transcript_editor.core.models import Segment
from transcript_editor.core.segment_text import spread_words
from transcript_editor.core.store import DocumentStore


# ---------------------------------------------------------------------------
# Sample transcript
# ---------------------------------------------------------------------------

SAMPLE_ROWS = [
    ("s1", "SPEAKER_00", 0.0, 2.0, "Welcome to the show."),
    ("s2", "SPEAKER_00", 2.5, 4.0, "Today we talk about"),
    ("s3", "SPEAKER_01", 4.5, 7.0, "Thanks for having me here."),
    ("s4", "SPEAKER_01", 7.2, 9.0, "It is great to be back."),
    ("s5", "SPEAKER_00", 9.5, 12.0, "Let us start with the news."),
    ("s6", "SPEAKER_01", 12.5, 15.0, "Sure, the big story is rain."),
]


def _segment(seg_id: str, speaker: str, start: float, end: float, text: str) -> Segment:
    return Segment(
        id=seg_id,
        speaker=speaker,
        start=start,
        end=end,
        text=text,
        words=tuple(spread_words(text.split(), start, end, speaker)),
    )


@pytest.fixture
def segments() -> List[Segment]:
    """Six segments, two speakers, 0.2-0.5s gaps."""
    return [_segment(*row) for row in SAMPLE_ROWS]


@pytest.fixture
def store(segments) -> DocumentStore:
    """A DocumentStore with the sample transcript loaded (history length 1)."""
    document = DocumentStore()
    document.load_transcript(segments)
    return document


@pytest.fixture
def make_segments() -> Callable[..., List[Segment]]:
    """Factory for n evenly spaced segments "seg-0".."seg-{n-1}".

    Speakers alternate between the given names; by default every segment
    belongs to SPEAKER_00.
    """

    def factory(count: int, speakers: tuple = ("SPEAKER_00",), gap: float = 0.5) -> List[Segment]:
        result = []
        for i in range(count):
            start = i * (2.0 + gap)
            result.append(
                _segment(
                    "seg-{}".format(i),
                    speakers[i % len(speakers)],
                    start,
                    start + 2.0,
                    "Sentence number {} goes here.".format(i),
                )
            )
        return result

    return factory


@pytest.fixture
def whisper_data() -> List[Dict[str, Any]]:
    """Plain Whisper output: a list of {timestamp, text}."""
    return [
        {"timestamp": [0.0, 2.0], "text": " Hello there."},
        {"timestamp": [2.0, 4.5], "text": " How are you doing today?"},
    ]


@pytest.fixture
def whisperx_data() -> Dict[str, Any]:
    """WhisperX output with speakers, word timings, tags, and one chapter."""
    return {
        "segments": [
            {
                "id": "a",
                "start": 0.0,
                "end": 1.5,
                "text": "Good morning everyone.",
                "speaker": "SPEAKER_00",
                "words": [
                    {"word": "Good", "start": 0.0, "end": 0.4, "score": 0.91},
                    {"word": "morning", "start": 0.4, "end": 0.9, "score": 0.88},
                    {"word": "everyone.", "start": 0.9, "end": 1.5, "score": 0.95},
                ],
                "tags": ["intro"],
            },
            {
                "id": "b",
                "start": 1.8,
                "end": 3.0,
                "text": "Morning!",
                "speaker": "SPEAKER_01",
                "confirmed": True,
            },
            {
                "id": "c",
                "start": 3.2,
                "end": 6.0,
                "text": "Let's get started with the agenda.",
                "speaker": "SPEAKER_00",
                "bookmarked": True,
            },
        ],
        "tags": [{"id": "tag-agenda", "name": "agenda", "color": "#ff0000"}],
        "chapters": [
            {"id": "ch-1", "title": "Opening", "startSegmentId": "a", "endSegmentId": "b"},
        ],
    }


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------


class ScriptedProvider(ChatProvider):
    """Replays queued replies instead of calling a model."""

    name = "scripted"

    def __init__(self, replies=(), gate: Optional[asyncio.Event] = None, default: str = "[]") -> None:
        super().__init__(base_url="http://scripted.test", model="scripted-model")
        self.replies = list(replies)
        self.gate = gate
        self.default = default
        self.calls: List[List[Dict[str, str]]] = []

    async def _chat(self, messages, temperature, max_tokens) -> str:
        self.calls.append(messages)
        if self.gate is not None:
            await self.gate.wait()
        if not self.replies:
            return self.default
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(messages)
        return reply


@pytest.fixture
def make_provider() -> Callable[..., ScriptedProvider]:
    """Factory: make_provider(["reply 1", "reply 2"], gate=None)."""
    return ScriptedProvider
