"""Unit tests for persisted state and the throttled write-behind scheduler.

WHY: State is written behind the user's back. If the scheduler writes on
every commit the event loop stalls; if it drops the newest payload the
user loses their last edits on restart; if a bad file on disk crashes
startup the editor cannot open at all.

HOW: The scheduler is driven with a recording sink, inside asyncio.run()
where timing matters and outside any loop where flush() is the only
writer. JsonFileSink is exercised against tmp_path.

RULES:
- Sinks record (state, config) tuples in completion order
- Only the slow-sink test sleeps longer than 100ms
"""

from __future__ import annotations

import asyncio
import time

import pytest
from pydantic import ValidationError

from transcript_editor.core.models import DocumentSnapshot, FileReference
from transcript_editor.core.sessions import Session
from transcript_editor.persistence import (
    GlobalConfig,
    JsonFileSink,
    MergeConfig,
    PersistedFile,
    PersistedState,
    ProviderConfig,
    ThrottledPersistenceScheduler,
)


def _state(key: str) -> PersistedState:
    return PersistedState(active_session_key=key)


class _RecordingSink:
    def __init__(self, fail: bool = False, slow_keys=()) -> None:
        self.writes = []
        self.fail = fail
        self.slow_keys = set(slow_keys)

    def __call__(self, state, config) -> None:
        if self.fail:
            raise OSError("disk full")
        if state.active_session_key in self.slow_keys:
            time.sleep(0.3)
        self.writes.append((state, config))

    @property
    def keys(self):
        return [state.active_session_key for state, _ in self.writes]


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class TestScheduler:
    """Many schedule() calls, few writes, newest payload wins."""

    def test_burst_is_coalesced(self):
        sink = _RecordingSink()
        scheduler = ThrottledPersistenceScheduler(sink, throttle_ms=20)

        async def run():
            for key in ("a", "b", "c"):
                scheduler.schedule(_state(key), GlobalConfig())
            await asyncio.sleep(0.1)
            await scheduler.aclose()

        asyncio.run(run())
        assert sink.keys == ["c"]
        assert scheduler.write_count == 1
        assert not scheduler.has_pending

    def test_aclose_flushes_what_the_timer_has_not_written(self):
        sink = _RecordingSink()
        scheduler = ThrottledPersistenceScheduler(sink, throttle_ms=60_000)

        async def run():
            scheduler.schedule(_state("first"), GlobalConfig())
            await asyncio.sleep(0.05)
            scheduler.schedule(_state("second"), GlobalConfig())
            scheduler.schedule(_state("third"), GlobalConfig())
            assert scheduler.has_pending
            await scheduler.aclose()

        asyncio.run(run())
        assert sink.keys == ["first", "third"]

    def test_slow_write_is_not_overtaken(self):
        sink = _RecordingSink(slow_keys=["old"])
        scheduler = ThrottledPersistenceScheduler(sink, throttle_ms=10)

        async def run():
            scheduler.schedule(_state("old"), GlobalConfig())
            await asyncio.sleep(0.05)
            scheduler.schedule(_state("new"), GlobalConfig())
            await asyncio.sleep(0.1)
            assert sink.keys == []
            await asyncio.sleep(0.4)
            await scheduler.aclose()

        asyncio.run(run())
        assert sink.keys == ["old", "new"]
        assert scheduler.write_count == 2

    def test_without_loop_only_flush_writes(self):
        sink = _RecordingSink()
        scheduler = ThrottledPersistenceScheduler(sink, throttle_ms=0)
        scheduler.schedule(_state("a"), GlobalConfig())
        scheduler.schedule(_state("b"), GlobalConfig())
        assert scheduler.has_pending
        assert sink.writes == []
        scheduler.flush()
        assert sink.keys == ["b"]
        scheduler.flush()
        assert scheduler.write_count == 1

    def test_sink_failure_is_logged_not_raised(self, caplog):
        scheduler = ThrottledPersistenceScheduler(_RecordingSink(fail=True))
        scheduler.schedule(_state("a"), GlobalConfig())
        scheduler.flush()
        assert scheduler.write_count == 0
        assert not scheduler.has_pending
        assert "Failed to persist editor state" in caplog.text


# ---------------------------------------------------------------------------
# JSON file sink
# ---------------------------------------------------------------------------


class TestJsonFileSink:
    """One JSON file holds sessions and config."""

    def test_round_trip(self, tmp_path, segments):
        ref = FileReference(name="talk.json", size=10, last_modified=20)
        session = Session(
            audio_ref=None,
            transcript_ref=ref,
            snapshot=DocumentSnapshot(segments=tuple(segments), selected_segment_id="s2"),
            updated_at=123.0,
            label="talk.json",
        )
        config = GlobalConfig(provider=ProviderConfig(provider="openai", model="gpt-test"))
        sink = JsonFileSink(tmp_path / "state" / "editor.json")
        sink(PersistedState.from_sessions({"k": session}, "k"), config)

        loaded = sink.load()
        assert loaded.state.active_session_key == "k"
        assert loaded.state.to_sessions()["k"] == session
        assert loaded.config.provider.model == "gpt-test"
        assert not (tmp_path / "state" / "editor.json.tmp").exists()

    def test_api_key_never_written(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AI_API_KEY", "sk-secret")
        path = tmp_path / "editor.json"
        JsonFileSink(path)(PersistedState(), GlobalConfig())
        assert "sk-secret" not in path.read_text(encoding="utf-8")
        assert "api_key" not in path.read_text(encoding="utf-8")

    def test_missing_file_gives_defaults(self, tmp_path):
        loaded = JsonFileSink(tmp_path / "nope.json").load()
        assert isinstance(loaded, PersistedFile)
        assert loaded.state.sessions == {}
        assert loaded.state.active_session_key is None
        assert loaded.config == GlobalConfig()

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "editor.json"
        path.write_text("{not json", encoding="utf-8")
        loaded = JsonFileSink(path).load()
        assert loaded.state.sessions == {}
        assert loaded.config == GlobalConfig()


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    """Per-feature sections supply run defaults."""

    def test_feature_options(self):
        options = GlobalConfig().feature_options("merge")
        assert options["max_time_gap"] == 2.0
        assert options["min_confidence"] == "medium"
        assert options["batch_size"] == 20

    @pytest.mark.parametrize("name", ["provider", "translation"])
    def test_unknown_feature(self, name):
        with pytest.raises(KeyError):
            GlobalConfig().feature_options(name)

    def test_validation(self):
        with pytest.raises(ValidationError):
            MergeConfig(min_confidence="extreme")
        with pytest.raises(ValidationError):
            MergeConfig(batch_size=1)
