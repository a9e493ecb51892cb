"""Accept and reject pending AI suggestions.

WHY: Accepting suggestions is where AI output becomes document content,
so it has to uphold the same guarantees as a hand edit: one accept is one
undo step, new speakers are never duplicated, chapters never overlap.
Rejecting, by contrast, only tidies the suggestion list and must not
clutter the undo history.

HOW: SuggestionLifecycle resolves keys against the feature's pending
suggestions and hands the resolved ones to the feature's apply(), which
performs a single store commit. Applied and stale suggestions are then
removed from the list. A refused apply (chapter overlap) sets the
feature's error and changes nothing else.

RULES:
- accept_many() with no resolvable key is a complete no-op
- Unknown keys are skipped silently
- reject() and reject_all() never touch the store or its history
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from transcript_editor.ai.orchestrator import BatchOrchestrator
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)


class SuggestionLifecycle:
    def __init__(self, store: DocumentStore, orchestrators: Mapping[str, BatchOrchestrator]) -> None:
        self.store = store
        self.orchestrators = orchestrators

    def _orchestrator(self, feature: str) -> BatchOrchestrator:
        try:
            return self.orchestrators[feature]
        except KeyError:
            raise KeyError(f"Unknown AI feature: {feature!r}") from None

    def accept_one(self, feature: str, key: str) -> bool:
        return self.accept_many(feature, [key])

    def accept_many(self, feature: str, keys: Iterable[str]) -> bool:
        """Apply the pending suggestions for keys as a single undo step.

        Returns True when at least one suggestion was applied.
        """
        orchestrator = self._orchestrator(feature)
        pending = {s.target_key: s for s in orchestrator.state.pending()}
        chosen = [pending[k] for k in dict.fromkeys(keys) if k in pending]
        if not chosen:
            return False

        outcome = orchestrator.feature.apply(self.store, chosen)
        if outcome.error:
            orchestrator.state.error = outcome.error
            return False

        done = {*outcome.applied_keys, *outcome.stale_keys}
        if done:
            orchestrator.state.suggestions = [
                s for s in orchestrator.state.suggestions if s.target_key not in done
            ]
        if outcome.stale_keys:
            logger.info(
                "Dropped %d stale %s suggestions whose targets no longer exist",
                len(outcome.stale_keys), feature,
            )
        logger.info("Accepted %d %s suggestions", len(outcome.applied_keys), feature)
        return bool(outcome.applied_keys)

    def accept_all_high_confidence(self, feature: str = "merge") -> bool:
        """Accept every pending suggestion whose confidence level is high."""
        orchestrator = self._orchestrator(feature)
        keys = [
            s.target_key
            for s in orchestrator.state.pending()
            if getattr(s, "confidence_level", None) == "high"
        ]
        return self.accept_many(feature, keys)

    def reject(self, feature: str, key: str) -> bool:
        orchestrator = self._orchestrator(feature)
        remaining = [s for s in orchestrator.state.suggestions if s.target_key != key]
        if len(remaining) == len(orchestrator.state.suggestions):
            return False
        orchestrator.state.suggestions = remaining
        return True

    def reject_all(self, feature: str) -> int:
        orchestrator = self._orchestrator(feature)
        count = len(orchestrator.state.suggestions)
        if count:
            orchestrator.state.suggestions = []
        return count
