"""AI feature registry.

WHY: The workspace, HTTP API, and CLI look features up by name
("speaker", "revision", "chapter", "merge"). One dict keeps that mapping
in a single place; adding a feature is one module plus one line here.

HOW: FEATURES maps the feature key to its AIFeature *class*. The
workspace instantiates one of each and gives every instance its own
BatchOrchestrator.

RULES:
- Keys equal the class's `key` attribute
- Every feature listed here must be importable without side effects
"""

from transcript_editor.ai.features.base import (
    AIFeature,
    ApplyResult,
    FeatureBatchResult,
    RunContext,
)
from transcript_editor.ai.features.chapters import ChapterFeature
from transcript_editor.ai.features.merge import MergeFeature
from transcript_editor.ai.features.revision import RevisionFeature
from transcript_editor.ai.features.speaker import SpeakerFeature

FEATURES: dict[str, type[AIFeature]] = {
    SpeakerFeature.key: SpeakerFeature,
    RevisionFeature.key: RevisionFeature,
    ChapterFeature.key: ChapterFeature,
    MergeFeature.key: MergeFeature,
}

__all__ = [
    "AIFeature",
    "ApplyResult",
    "ChapterFeature",
    "FEATURES",
    "FeatureBatchResult",
    "MergeFeature",
    "RevisionFeature",
    "RunContext",
    "SpeakerFeature",
]
