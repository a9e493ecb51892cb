"""Unit tests for the single-flight batch orchestrator.

WHY: The orchestrator is where runs race each other. A superseded run
that keeps writing, a batch failure that kills the whole run, or a
cancelled run that reports an error are each visible to the user as
"the AI did something weird". These tests pin down run identity,
per-batch failure isolation, and the batch log.

HOW: Orchestrators wrap real features over the `store` fixture (or a
longer transcript from `make_segments`). ScriptedProvider replies are
queued; an asyncio.Event gate holds replies back where a test needs a run
to be in flight. Every scenario runs inside one asyncio.run() call.

RULES:
- Runs are awaited through orchestrator.wait() or their own task
- Notice strings are asserted on their stable prefix and suffix
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

from transcript_editor.ai.features import ChapterFeature, FeatureBatchResult, MergeFeature, SpeakerFeature
from transcript_editor.ai.orchestrator import NO_TARGETS_MESSAGE, BatchOrchestrator, RunStatus
from transcript_editor.ai.suggestions import SpeakerSuggestion
from transcript_editor.core.store import DocumentStore


def _speaker_reply(name: str, count: int) -> str:
    return json.dumps([{"tag": name, "confidence": 0.9}] * count)


class _ShortReplyFeature(SpeakerFeature):
    """Answers every batch with suggestions for its first `returned` items and no issues."""

    def __init__(self, returned: int) -> None:
        self.returned = returned

    async def invoke(self, batch, context, token):
        items = batch.items[: self.returned]
        return FeatureBatchResult(
            results=[SpeakerSuggestion(s.id, s.id, s.speaker, "Host") for s in items],
            raw_count=len(items),
        )


# ---------------------------------------------------------------------------
# Happy path and batch accounting
# ---------------------------------------------------------------------------


class TestRunCompletion:
    """Batches run in order and every batch lands in the log."""

    def test_short_reply_is_logged_and_run_completes(self, make_segments, make_provider):
        store = DocumentStore()
        store.load_transcript(make_segments(12))
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)
        provider = make_provider([_speaker_reply("Host", 7), _speaker_reply("Host", 2)])

        async def run():
            task = orchestrator.start(provider, {"batch_size": 10})
            assert orchestrator.state.is_processing
            await task

        asyncio.run(run())
        state = orchestrator.state
        assert state.status == RunStatus.COMPLETED
        assert (state.processed_count, state.total_to_process) == (12, 12)
        first, second = state.batch_log
        assert (first.expected_count, first.returned_count, first.used_count, first.ignored_count) == (10, 7, 7, 0)
        assert (second.expected_count, second.returned_count, second.used_count) == (2, 2, 2)
        assert second.processed_total == 12
        assert state.notice.startswith("Batch 1: model returned 7 of 10 expected entries. Issues: ")
        assert state.notice.endswith("See batch log.")
        assert len(state.pending()) == 9
        assert state.error is None

    def test_ignored_entries_change_the_notice(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)
        reply = json.dumps([{"tag": "Host"}] * 6 + [{"tag": "Extra"}])

        async def run():
            await orchestrator.start(make_provider([reply]))

        asyncio.run(run())
        assert orchestrator.state.notice.startswith("Batch 1: model returned 7 (expected 6, used 6, ignored 1).")

    def test_whole_range_notice(self, store, make_provider):
        reply = json.dumps(
            {"chapters": [{"title": "Good", "start": 1, "end": 3}, {"title": "Bad", "start": 5, "end": 4}]}
        )
        orchestrator = BatchOrchestrator(ChapterFeature(), store)

        async def run():
            await orchestrator.start(make_provider([reply]))

        asyncio.run(run())
        assert orchestrator.state.notice == (
            "Batch 1: model returned 2 entries (used 1, ignored 1). "
            "Issues: Chapter 'Bad' has an invalid segment range. See batch log."
        )

    def test_short_reply_without_issues(self, make_segments, make_provider):
        store = DocumentStore()
        store.load_transcript(make_segments(10))
        orchestrator = BatchOrchestrator(_ShortReplyFeature(returned=7), store)

        async def run():
            await orchestrator.start(make_provider(), {"batch_size": 10})

        asyncio.run(run())
        state = orchestrator.state
        assert state.status == RunStatus.COMPLETED
        assert state.notice == "Batch 1: model returned 7 of 10 expected entries. See batch log."
        [entry] = state.batch_log
        assert (entry.expected_count, entry.returned_count, entry.used_count, entry.ignored_count) == (10, 7, 7, 0)
        assert entry.issues == ()
        assert len(state.pending()) == 7

    def test_clean_run_has_no_notice(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            await orchestrator.start(make_provider([_speaker_reply("Host", 6)]))

        asyncio.run(run())
        assert orchestrator.state.notice is None
        assert orchestrator.state.batch_log[0].unchanged_count == 0


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TestTargets:
    """Runs that have nothing to do never start."""

    def test_empty_scope(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)
        assert orchestrator.start(make_provider(), {"speakers": ["Nobody"]}) is None
        assert orchestrator.state.error == NO_TARGETS_MESSAGE
        assert orchestrator.state.status == RunStatus.IDLE

    def test_pending_targets_are_skipped(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)
        provider = make_provider([_speaker_reply("Host", 2), _speaker_reply("Guest", 4)])

        async def run():
            await orchestrator.start(provider, {"segment_ids": ["s1", "s2"]})
            await orchestrator.start(provider)

        asyncio.run(run())
        assert '[1] [SPEAKER_01]: "Thanks for having me here."' in provider.calls[1][1]["content"]
        assert orchestrator.state.total_to_process == 4
        assert [s.target_key for s in orchestrator.state.pending()] == ["s1", "s2", "s3", "s4", "s5", "s6"]

    def test_everything_already_covered(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            await orchestrator.start(make_provider([_speaker_reply("Host", 6)]))
            return orchestrator.start(make_provider())

        assert asyncio.run(run()) is None
        assert orchestrator.state.error == "All selected segments already have suggestions"
        assert len(orchestrator.state.suggestions) == 6

    def test_feature_rejects_targets(self, store, make_provider):
        orchestrator = BatchOrchestrator(MergeFeature(), store)
        assert orchestrator.start(make_provider(), {"segment_ids": ["s1"]}) is None
        assert orchestrator.state.error == "At least 2 segments required for merge analysis"
        orchestrator.clear_error()
        assert orchestrator.state.error is None

    def test_duplicate_keys_are_not_appended(self, store, make_provider):
        reply = json.dumps({"chapters": [{"title": "All", "start": 1, "end": 6}]})
        orchestrator = BatchOrchestrator(ChapterFeature(), store)

        async def run():
            await orchestrator.start(make_provider([reply]))
            await orchestrator.start(make_provider([reply]))

        asyncio.run(run())
        assert len(orchestrator.state.suggestions) == 1
        entry = orchestrator.state.batch_log[0]
        assert (entry.used_count, entry.ignored_count) == (0, 1)


# ---------------------------------------------------------------------------
# Run identity and cancellation
# ---------------------------------------------------------------------------


class TestRunIdentity:
    """Only the active run may write into the feature state."""

    def test_new_run_supersedes_old_one(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            gate = asyncio.Event()
            slow = make_provider([_speaker_reply("Host", 6)], gate=gate)
            first = orchestrator.start(slow)
            first_run = orchestrator.state.run_id
            await asyncio.sleep(0)
            second = orchestrator.start(make_provider([_speaker_reply("Guest", 6)]))
            await second
            gate.set()
            await asyncio.gather(first, return_exceptions=True)
            return first_run

        first_run = asyncio.run(run())
        state = orchestrator.state
        assert state.run_id != first_run
        assert state.run_id == orchestrator.active_run_id
        assert state.status == RunStatus.COMPLETED
        assert {s.suggested_speaker for s in state.suggestions} == {"Guest"}
        assert len(state.batch_log) == 1

    def test_cancel(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            gate = asyncio.Event()
            orchestrator.start(make_provider([_speaker_reply("Host", 6)], gate=gate), {"batch_size": 3})
            await asyncio.sleep(0)
            assert orchestrator.cancel()
            await orchestrator.wait()

        asyncio.run(run())
        state = orchestrator.state
        assert state.status == RunStatus.CANCELLED
        assert state.error is None
        assert state.suggestions == []
        [entry] = state.batch_log
        assert entry.issues[0].level == "warn"
        assert entry.issues[0].message == "Speaker classification cancelled by user"
        assert entry.issues[0].context == {"processed_batches": 0, "total_batches": 2}
        assert not orchestrator.cancel()

    def test_restart_without_targets_keeps_its_error(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            gate = asyncio.Event()
            first = orchestrator.start(make_provider([_speaker_reply("Host", 6)], gate=gate))
            await asyncio.sleep(0)
            assert orchestrator.start(make_provider(), {"speakers": ["Nobody"]}) is None
            gate.set()
            await asyncio.gather(first, return_exceptions=True)

        asyncio.run(run())
        state = orchestrator.state
        assert state.error == NO_TARGETS_MESSAGE
        assert state.status == RunStatus.CANCELLED
        assert state.suggestions == []
        assert state.batch_log[-1].issues[0].level == "warn"
        assert orchestrator.active_run_id is None
        assert not orchestrator.cancel()

    def test_cancel_without_run(self, store):
        assert not BatchOrchestrator(SpeakerFeature(), store).cancel()


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    """A failing batch costs one batch; a failing run loop fails the run."""

    def test_batch_exception_is_isolated(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)
        provider = make_provider([RuntimeError("model exploded"), _speaker_reply("Host", 3)])

        async def run():
            await orchestrator.start(provider, {"batch_size": 3})

        asyncio.run(run())
        state = orchestrator.state
        assert state.status == RunStatus.COMPLETED
        assert state.notice == "Batch 1 failed: model exploded. See batch log."
        failed, succeeded = state.batch_log
        assert failed.fatal
        assert failed.issues[0].level == "error"
        assert not succeeded.fatal
        assert [s.target_key for s in state.pending()] == ["s4", "s5", "s6"]
        assert state.processed_count == 6

    def test_unparseable_batch(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            await orchestrator.start(make_provider(["no idea"]))

        asyncio.run(run())
        assert orchestrator.state.status == RunStatus.COMPLETED
        assert orchestrator.state.notice.startswith("Batch 1 failed: Response did not contain any parseable")

    def test_run_loop_failure(self, store, make_provider):
        orchestrator = BatchOrchestrator(SpeakerFeature(), store)

        async def run():
            with patch.object(orchestrator, "_run_batch", side_effect=RuntimeError("boom")):
                await orchestrator.start(make_provider())

        asyncio.run(run())
        assert orchestrator.state.status == RunStatus.FAILED
        assert orchestrator.state.error == "boom"
        assert not orchestrator.state.is_processing
