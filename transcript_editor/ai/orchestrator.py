"""Single-flight batch runner for one AI feature.

WHY: AI runs take minutes and race against live edits. The editor may
start a run, keep editing, cancel it, or start it again with a different
scope before the first one finished. Without a strict run identity a
superseded run keeps appending stale suggestions or flips the status of
the run that replaced it. Batches also fail independently: one garbled
reply should cost one batch, not the whole run.

HOW: BatchOrchestrator owns a FeatureState and at most one active run,
identified by (run_id, CancellationToken). start() picks targets, drops
those already covered by pending suggestions, slices them into batches
and schedules _run() as an asyncio.Task. Every write into FeatureState
made on behalf of a run is gated on that run still being the active one.

RULES:
- Starting a run cancels the previous run's token first
- An empty target set sets a non-fatal error and starts nothing
- Cancellation is checked before each batch and ends in CANCELLED with
  no error; suggestions already appended stay
- A batch exception logs a fatal batch entry and a notice, then the run
  continues with the next batch
- An exception outside the batch boundary ends in FAILED
- No pending suggestion shares its target_key with another
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from transcript_editor.ai.batching import Batch, slice_batches
from transcript_editor.ai.cancellation import CancellationToken
from transcript_editor.ai.errors import AICancellationError
from transcript_editor.ai.features.base import AIFeature, FeatureBatchResult, RunContext
from transcript_editor.ai.parsing import summarize_error, summarize_messages
from transcript_editor.ai.providers import ChatProvider
from transcript_editor.ai.suggestions import BatchLogEntry, Issue, Suggestion, SuggestionStatus
from transcript_editor.core.models import generate_id
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)

NO_TARGETS_MESSAGE = "No segments match the selected scope"


class RunStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class FeatureState:
    """Observable state of one feature: its suggestions and its last run."""

    status: RunStatus = RunStatus.IDLE
    suggestions: list[Suggestion] = field(default_factory=list)
    processed_count: int = 0
    total_to_process: int = 0
    error: str | None = None
    notice: str | None = None
    batch_log: list[BatchLogEntry] = field(default_factory=list)
    run_id: str | None = None

    @property
    def is_processing(self) -> bool:
        return self.status == RunStatus.RUNNING

    def pending(self) -> list[Suggestion]:
        return [s for s in self.suggestions if s.status == SuggestionStatus.PENDING]


def _ms_since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class BatchOrchestrator:
    def __init__(self, feature: AIFeature, store: DocumentStore) -> None:
        self.feature = feature
        self.store = store
        self.state = FeatureState()
        self._active_run_id: str | None = None
        self._token: CancellationToken | None = None
        self._task: asyncio.Task | None = None
        self._run_batches: list[Batch] = []
        self._run_started = 0.0

    @property
    def active_run_id(self) -> str | None:
        return self._active_run_id

    def _is_active(self, run_id: str) -> bool:
        return run_id == self._active_run_id

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, provider: ChatProvider, options: dict[str, Any] | None = None) -> asyncio.Task | None:
        """Begin a new run; returns its task, or None when nothing was started.

        Must be called from inside a running event loop.
        """
        options = dict(options or {})
        self._supersede()

        snapshot = self.store.snapshot()
        targets = self.feature.build_targets(snapshot, options)
        if not targets:
            self.state.error = NO_TARGETS_MESSAGE
            return None
        covered = self.feature.pending_item_keys(self.state.suggestions)
        targets = [t for t in targets if self.feature.target_key(t) not in covered]
        error = self.feature.validate_targets(targets) if targets else self.feature.empty_targets_message
        if error:
            self.state.error = error
            logger.info("Not starting %s: %s", self.feature.key, error)
            return None

        run_id, token = generate_id(), CancellationToken()
        self._active_run_id, self._token = run_id, token
        batches = slice_batches(targets, self.feature.batch_size(options))
        self._run_batches, self._run_started = batches, time.monotonic()
        self.state.status = RunStatus.RUNNING
        self.state.run_id = run_id
        self.state.error = None
        self.state.notice = None
        self.state.batch_log = []
        self.state.processed_count = 0
        self.state.total_to_process = len(targets)

        context = RunContext(provider=provider, snapshot=snapshot, options=options)
        logger.info(
            "Starting %s run %s: %d items in %d batches",
            self.feature.key, run_id, len(targets), len(batches),
        )
        self._task = asyncio.get_running_loop().create_task(self._run(run_id, token, batches, context))
        return self._task

    def _supersede(self) -> None:
        """Retire the active run so nothing it does later reaches the state."""
        if self._token is None or self._active_run_id is None:
            return
        run_id = self._active_run_id
        self._token.cancel("Superseded by a new run")
        self._finish_cancelled(run_id, self._run_batches, self._run_started)
        self._active_run_id = None

    def cancel(self) -> bool:
        """Ask the active run to stop; returns False when nothing is running."""
        if self._token is None or self._token.cancelled:
            return False
        self._token.cancel(f"{self.feature.label} cancelled by user")
        return True

    async def wait(self) -> None:
        """Wait for the most recently started run to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def clear_error(self) -> None:
        self.state.error = None

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def _run(
        self,
        run_id: str,
        token: CancellationToken,
        batches: list[Batch],
        context: RunContext,
    ) -> None:
        started = time.monotonic()
        try:
            for batch in batches:
                if token.cancelled:
                    break
                await self._run_batch(run_id, token, batch, context, started)
                if not self._is_active(run_id):
                    return
            if token.cancelled:
                self._finish_cancelled(run_id, batches, started)
                return
            if self._is_active(run_id):
                self.state.status = RunStatus.COMPLETED
                self._release(run_id)
                logger.info(
                    "%s run %s completed: %d suggestions pending",
                    self.feature.key, run_id, len(self.state.pending()),
                )
        except asyncio.CancelledError:
            self._finish_cancelled(run_id, batches, started)
            raise
        except Exception as exc:
            if not self._is_active(run_id):
                return
            logger.exception("%s run %s failed", self.feature.key, run_id)
            self.state.status = RunStatus.FAILED
            self.state.error = summarize_error(exc)
            self._release(run_id)

    async def _run_batch(
        self,
        run_id: str,
        token: CancellationToken,
        batch: Batch,
        context: RunContext,
        run_started: float,
    ) -> None:
        batch_started = time.monotonic()
        try:
            outcome = await self.feature.invoke(batch, context, token)
        except AICancellationError as exc:
            token.cancel(exc.message)
            return
        except Exception as exc:
            if not self._is_active(run_id):
                return
            logger.exception("%s batch %d/%d failed", self.feature.key, batch.number, batch.total_batches)
            message = summarize_error(exc)
            self.state.processed_count += len(batch)
            self.state.batch_log.append(
                BatchLogEntry(
                    batch_index=batch.index,
                    expected_count=len(batch),
                    returned_count=0,
                    used_count=0,
                    ignored_count=0,
                    duration_ms=_ms_since(batch_started),
                    elapsed_ms=_ms_since(run_started),
                    processed_total=self.state.processed_count,
                    total_expected=self.state.total_to_process,
                    issues=(Issue("error", message, {"batch_index": batch.index}),),
                    fatal=True,
                )
            )
            self.state.notice = f"Batch {batch.number} failed: {message}. See batch log."
            return

        if not self._is_active(run_id):
            return
        used, collisions = self._append_suggestions(outcome.results)
        ignored = outcome.ignored_count + collisions
        self.state.processed_count += len(batch)
        self.state.batch_log.append(
            BatchLogEntry(
                batch_index=batch.index,
                expected_count=len(batch),
                returned_count=outcome.raw_count,
                used_count=used,
                ignored_count=ignored,
                duration_ms=_ms_since(batch_started),
                elapsed_ms=_ms_since(run_started),
                processed_total=self.state.processed_count,
                total_expected=self.state.total_to_process,
                issues=tuple(outcome.issues),
                unchanged_count=outcome.unchanged_count,
            )
        )
        mismatch = self.feature.counts_per_item and outcome.raw_count != len(batch)
        if mismatch or outcome.issues:
            self.state.notice = self._discrepancy_notice(batch, outcome, used, ignored)
            logger.warning("%s: %s", self.feature.key, self.state.notice)

    def _append_suggestions(self, results: list[Suggestion]) -> tuple[int, int]:
        pending = {s.target_key for s in self.state.pending()}
        fresh = []
        for suggestion in results:
            if suggestion.target_key in pending:
                continue
            pending.add(suggestion.target_key)
            fresh.append(suggestion)
        if fresh:
            self.state.suggestions = [*self.state.suggestions, *fresh]
        return len(fresh), len(results) - len(fresh)

    def _discrepancy_notice(self, batch: Batch, outcome: FeatureBatchResult, used: int, ignored: int) -> str:
        returned, expected = outcome.raw_count, len(batch)
        if self.feature.counts_per_item and not ignored:
            head = f"Batch {batch.number}: model returned {returned} of {expected} expected entries."
        elif self.feature.counts_per_item:
            head = (
                f"Batch {batch.number}: model returned {returned} "
                f"(expected {expected}, used {used}, ignored {ignored})."
            )
        else:
            head = f"Batch {batch.number}: model returned {returned} entries (used {used}, ignored {ignored})."
        issues = summarize_messages(outcome.issues)
        parts = [head, f"Issues: {issues}." if issues else "", "See batch log."]
        return " ".join(p for p in parts if p)

    def _finish_cancelled(self, run_id: str, batches: list[Batch], run_started: float) -> None:
        if not self._is_active(run_id):
            return
        processed_batches = len(self.state.batch_log)
        self.state.batch_log.append(
            BatchLogEntry(
                batch_index=processed_batches,
                expected_count=0,
                returned_count=0,
                used_count=0,
                ignored_count=0,
                duration_ms=0,
                elapsed_ms=_ms_since(run_started),
                processed_total=self.state.processed_count,
                total_expected=self.state.total_to_process,
                issues=(
                    Issue(
                        "warn",
                        f"{self.feature.label} cancelled by user",
                        {"processed_batches": processed_batches, "total_batches": len(batches)},
                    ),
                ),
            )
        )
        self.state.status = RunStatus.CANCELLED
        self.state.error = None
        self._release(run_id)
        logger.info("%s run %s cancelled after %d batches", self.feature.key, run_id, processed_batches)

    def _release(self, run_id: str) -> None:
        if self._is_active(run_id):
            self._token = None
