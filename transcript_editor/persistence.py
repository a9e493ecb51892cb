"""Persisted editor state and the throttled write-behind scheduler.

WHY: Every keystroke-level edit commits to the store, but writing the
whole session cache to disk on each commit would stall the event loop and
hammer the disk. The editor only needs the *latest* state to survive a
restart, so writes are coalesced: many commits inside one throttle window
produce one write, carrying whatever was newest when the timer fired.

HOW: pydantic models describe the on-disk layout:
  PersistedSession: one cached Session (documents stay as dataclasses)
  PersistedState  : all sessions plus the active session key
  GlobalConfig    : AI provider settings and per-feature run defaults
ThrottledPersistenceScheduler keeps only the newest pending payload and
arms a single loop.call_later() timer. When it fires the payload is handed
to a sink in the default executor. JsonFileSink writes both models into
one JSON file via a temp file and os.replace().

RULES:
- schedule() never blocks and never raises
- Last write wins; intermediate payloads are dropped
- At most one sink call runs at a time, so writes land in schedule order
- Outside a running event loop, schedule() only records the payload;
  flush() writes it synchronously
- API keys are never persisted
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel, Field

from transcript_editor.config import (
    AI_BASE_URL,
    AI_MODEL,
    AI_PROVIDER,
    CHAPTER_BATCH_SIZE,
    MERGE_BATCH_SIZE,
    PERSIST_THROTTLE_MS,
    REVISION_BATCH_SIZE,
    SPEAKER_BATCH_SIZE,
)
from transcript_editor.core.models import DocumentSnapshot, FileReference
from transcript_editor.core.sessions import Session

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global configuration
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """Chat provider selection. The API key stays in the environment."""

    provider: str = Field(default=AI_PROVIDER, description="'ollama' or 'openai'.")
    base_url: str = Field(default=AI_BASE_URL, description="Provider base URL.")
    model: str = Field(default=AI_MODEL, description="Model name passed to the provider.")


class SpeakerConfig(BaseModel):
    batch_size: int = Field(default=SPEAKER_BATCH_SIZE, ge=1)
    exclude_confirmed: bool = Field(default=False, description="Skip human-confirmed segments.")
    min_confidence: float = Field(default=0.0, ge=0, le=1)


class RevisionConfig(BaseModel):
    batch_size: int = Field(default=REVISION_BATCH_SIZE, ge=1)
    prompt_id: str = Field(default="builtin-text-cleanup", description="Built-in revision prompt id.")
    exclude_confirmed: bool = False


class ChapterConfig(BaseModel):
    batch_size: int = Field(default=CHAPTER_BATCH_SIZE, ge=1)
    min_chapter_length: int = Field(default=3, ge=1)
    max_chapter_length: int = Field(default=50, ge=1)


class MergeConfig(BaseModel):
    batch_size: int = Field(default=MERGE_BATCH_SIZE, ge=2)
    max_time_gap: float = Field(default=2.0, ge=0)
    min_confidence: str = Field(default="medium", pattern="^(low|medium|high)$")
    same_speaker_only: bool = True
    enable_smoothing: bool = True


class GlobalConfig(BaseModel):
    """Settings shared by every session.

    RULES:
    - Per-feature sections supply run defaults; start options override them
    """

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    speaker: SpeakerConfig = Field(default_factory=SpeakerConfig)
    revision: RevisionConfig = Field(default_factory=RevisionConfig)
    chapter: ChapterConfig = Field(default_factory=ChapterConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)

    def feature_options(self, feature: str) -> Dict[str, Any]:
        section = getattr(self, feature, None)
        if not isinstance(section, BaseModel) or feature == "provider":
            raise KeyError(f"Unknown AI feature: {feature!r}")
        return section.model_dump()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class PersistedSession(BaseModel):
    audio_ref: Optional[FileReference] = None
    transcript_ref: Optional[FileReference] = None
    snapshot: DocumentSnapshot
    is_whisperx_format: bool = False
    updated_at: float = 0.0
    kind: str = "current"
    label: Optional[str] = None
    base_session_key: Optional[str] = None

    @classmethod
    def from_session(cls, session: Session) -> "PersistedSession":
        return cls(
            audio_ref=session.audio_ref,
            transcript_ref=session.transcript_ref,
            snapshot=session.snapshot,
            is_whisperx_format=session.is_whisperx_format,
            updated_at=session.updated_at,
            kind=session.kind,
            label=session.label,
            base_session_key=session.base_session_key,
        )

    def to_session(self) -> Session:
        return Session(
            audio_ref=self.audio_ref,
            transcript_ref=self.transcript_ref,
            snapshot=self.snapshot,
            is_whisperx_format=self.is_whisperx_format,
            updated_at=self.updated_at,
            kind=self.kind,
            label=self.label,
            base_session_key=self.base_session_key,
        )


class PersistedState(BaseModel):
    sessions: Dict[str, PersistedSession] = Field(default_factory=dict)
    active_session_key: Optional[str] = None
    saved_at: float = Field(default_factory=time.time)

    @classmethod
    def from_sessions(
        cls, sessions: Dict[str, Session], active_session_key: Optional[str]
    ) -> "PersistedState":
        return cls(
            sessions={key: PersistedSession.from_session(s) for key, s in sessions.items()},
            active_session_key=active_session_key,
        )

    def to_sessions(self) -> Dict[str, Session]:
        return {key: s.to_session() for key, s in self.sessions.items()}


class PersistedFile(BaseModel):
    state: PersistedState = Field(default_factory=PersistedState)
    config: GlobalConfig = Field(default_factory=GlobalConfig)


# ---------------------------------------------------------------------------
# Sink
# ---------------------------------------------------------------------------

Sink = Callable[[PersistedState, GlobalConfig], None]

RETRY_DELAY_S = 0.05


class JsonFileSink:
    """Writes and reads the persisted layout as one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def __call__(self, state: PersistedState, config: GlobalConfig) -> None:
        payload = PersistedFile(state=state, config=config).model_dump_json(indent=2)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug("Wrote %d sessions to %s", len(state.sessions), self.path)

    def load(self) -> PersistedFile:
        """Read the file; a missing or unreadable file yields empty defaults."""
        if not self.path.exists():
            return PersistedFile()
        try:
            return PersistedFile.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return PersistedFile()


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class ThrottledPersistenceScheduler:
    """Coalesces persistence requests into at most one write per window."""

    def __init__(self, sink: Sink, throttle_ms: int = PERSIST_THROTTLE_MS) -> None:
        self.sink = sink
        self.throttle_s = max(0, throttle_ms) / 1000
        self._pending: Optional[Tuple[PersistedState, GlobalConfig]] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._inflight: Optional[asyncio.Future] = None
        self._last_write = 0.0
        self.write_count = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def schedule(self, sessions_snapshot: PersistedState, global_snapshot: GlobalConfig) -> None:
        self._pending = (sessions_snapshot, global_snapshot)
        if self._handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        delay = max(0.0, self.throttle_s - (time.monotonic() - self._last_write))
        self._handle = loop.call_later(delay, self._fire, loop)

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = None
        if self._pending is None:
            return
        if self._inflight is not None and not self._inflight.done():
            # One write at a time; retry once the current one has landed.
            self._handle = loop.call_later(max(self.throttle_s, RETRY_DELAY_S), self._fire, loop)
            return
        payload, self._pending = self._pending, None
        self._last_write = time.monotonic()
        self._inflight = loop.run_in_executor(None, self._write, *payload)

    def _write(self, state: PersistedState, config: GlobalConfig) -> None:
        try:
            self.sink(state, config)
            self.write_count += 1
        except Exception:
            logger.exception("Failed to persist editor state")

    def flush(self) -> None:
        """Write any pending payload now, on the calling thread."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        payload, self._pending = self._pending, None
        if payload is not None:
            self._last_write = time.monotonic()
            self._write(*payload)

    async def aclose(self) -> None:
        """Wait for an in-flight write, then flush what is still pending."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        while self._inflight is not None and not self._inflight.done():
            await asyncio.gather(self._inflight, return_exceptions=True)
        self._inflight = None
        self.flush()

