"""Contract between the batch orchestrator and individual AI features.

WHY: The orchestrator owns run lifecycle (single flight, cancellation,
progress, batch log) and must not care whether a feature reassigns
speakers or detects chapters. Each feature in turn should only describe
what to send to the model and how to turn the reply into suggestions.

HOW: AIFeature is an ABC. A feature picks its targets from a document
snapshot, invokes the provider for one batch, and applies accepted
suggestions to the store in a single commit. RunContext carries the
provider and a per-run scratch dict for state that flows between batches.

RULES:
- invoke() must not touch the store; it only reads the run's snapshot
- apply() performs at most one store commit for all given suggestions
- Feature-level item keys are segment ids unless a feature overrides
  pending_item_keys()
"""

from __future__ import annotations

import abc
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from transcript_editor.ai.batching import Batch, TargetFilter, filter_segments
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.providers import ChatProvider
from transcript_editor.ai.suggestions import Issue, Suggestion, SuggestionStatus
from transcript_editor.core.models import DocumentSnapshot, Segment
from transcript_editor.core.store import DocumentStore


@dataclass
class RunContext:
    """Everything a feature needs for one run besides the batch itself."""

    provider: ChatProvider
    snapshot: DocumentSnapshot
    options: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)


@dataclass
class FeatureBatchResult:
    """What one invoke() produced.

    raw_count is the number of entries the model returned; results are the
    suggestions built from them. ignored_count and unchanged_count account
    for returned entries that did not become suggestions.
    """

    results: list[Suggestion] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    raw_count: int = 0
    ignored_count: int = 0
    unchanged_count: int = 0
    summary: str | None = None


@dataclass
class ApplyResult:
    """Outcome of applying accepted suggestions to the store."""

    applied_keys: list[str] = field(default_factory=list)
    stale_keys: list[str] = field(default_factory=list)
    error: str | None = None


class AIFeature(abc.ABC):
    """One AI-assisted editing feature."""

    key: str = ""
    label: str = ""
    default_batch_size: int = 10
    max_batch_size: int | None = None
    counts_per_item = True
    """When True the model is expected to return one entry per batch item."""

    empty_targets_message = "All selected segments already have suggestions"

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def build_targets(self, snapshot: DocumentSnapshot, options: dict[str, Any]) -> list[Segment]:
        return filter_segments(snapshot.segments, TargetFilter.from_options(options))

    def target_key(self, item: Segment) -> str:
        return item.id

    def pending_item_keys(self, suggestions: Iterable[Suggestion]) -> set[str]:
        """Item keys already covered by a pending suggestion."""
        return {s.target_key for s in suggestions if s.status == SuggestionStatus.PENDING}

    def validate_targets(self, targets: Sequence[Segment]) -> str | None:
        """Return an error message when targets cannot form a run."""
        return None

    def batch_size(self, options: dict[str, Any]) -> int:
        size = int(options.get("batch_size") or self.default_batch_size)
        size = max(1, size)
        if self.max_batch_size is not None:
            size = min(size, self.max_batch_size)
        return size

    # ------------------------------------------------------------------
    # Model round trip
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def invoke(
        self, batch: Batch[Segment], context: RunContext, token: CancellationToken
    ) -> FeatureBatchResult:
        ...

    @abc.abstractmethod
    def to_suggestion(self, item: dict[str, Any], context: RunContext, **extra: Any) -> Suggestion | None:
        """Turn one validated response item into a suggestion, or None to ignore it."""

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def apply(self, store: DocumentStore, suggestions: Sequence[Suggestion]) -> ApplyResult:
        ...
