"""One editor instance: document, sessions, AI features, and persistence.

WHY: The HTTP API and the CLI both need the same wiring: a store, the
session cache that swaps documents in and out of it, one batch
orchestrator per AI feature, the suggestion lifecycle on top, and a
write-behind scheduler subscribed to store changes. Building that graph
in one place keeps the surfaces thin and lets tests create isolated
instances.

HOW: Workspace owns every collaborator and exposes the operations that
span more than one of them (opening a transcript, switching sessions,
starting a feature with merged config defaults). Single-component
operations are reached through the public attributes directly.

RULES:
- A document switch cancels running AI jobs and clears their suggestions
- Start options override the GlobalConfig section for that feature
- A provider configuration error becomes the feature's error; no run starts
- Persistence is opt-in via enable_persistence()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from transcript_editor.ai.errors import AIConfigurationError
from transcript_editor.ai.features import FEATURES
from transcript_editor.ai.lifecycle import SuggestionLifecycle
from transcript_editor.ai.orchestrator import BatchOrchestrator
from transcript_editor.ai.providers import ChatProvider, create_provider
from transcript_editor.config import PERSIST_THROTTLE_MS
from transcript_editor.core.importer import ImportedTranscript
from transcript_editor.core.models import FileReference
from transcript_editor.core.sessions import SessionManager
from transcript_editor.core.store import DocumentStore
from transcript_editor.persistence import (
    GlobalConfig,
    JsonFileSink,
    PersistedState,
    ProviderConfig,
    Sink,
    ThrottledPersistenceScheduler,
)

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderConfig], ChatProvider]


def provider_from_config(config: ProviderConfig) -> ChatProvider:
    return create_provider(config.provider, config.base_url, config.model)


class Workspace:
    def __init__(
        self,
        config: GlobalConfig | None = None,
        provider_factory: ProviderFactory | None = None,
    ) -> None:
        self.store = DocumentStore()
        self.sessions = SessionManager(self.store)
        self.config = config or GlobalConfig()
        self.orchestrators = {key: BatchOrchestrator(cls(), self.store) for key, cls in FEATURES.items()}
        self.lifecycle = SuggestionLifecycle(self.store, self.orchestrators)
        self.provider_factory = provider_factory or provider_from_config
        self.scheduler: ThrottledPersistenceScheduler | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_state_file(cls, path: Path, **kwargs: Any) -> "Workspace":
        """Restore sessions and config from a state file and keep it updated."""
        workspace = cls(**kwargs)
        workspace.attach_state_file(path)
        return workspace

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def enable_persistence(self, sink: Sink, throttle_ms: int = PERSIST_THROTTLE_MS) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
        self.scheduler = ThrottledPersistenceScheduler(sink, throttle_ms)
        self._unsubscribe = self.store.subscribe(lambda _snapshot: self.request_persist())

    def attach_state_file(self, path: Path) -> None:
        sink = JsonFileSink(path)
        persisted = sink.load()
        self.config = persisted.config
        self.restore(persisted.state)
        self.enable_persistence(sink)
        logger.info("Restored %d sessions from %s", len(persisted.state.sessions), path)

    def persisted_state(self) -> PersistedState:
        return PersistedState.from_sessions(self.sessions.snapshot_sessions(), self.sessions.session_key)

    def request_persist(self) -> None:
        if self.scheduler is not None:
            self.scheduler.schedule(self.persisted_state(), self.config.model_copy(deep=True))

    def restore(self, state: PersistedState) -> None:
        self.sessions.sessions.update(state.to_sessions())
        if state.active_session_key:
            self.sessions.activate_session(state.active_session_key)

    # ------------------------------------------------------------------
    # Documents and sessions
    # ------------------------------------------------------------------

    def _reset_ai(self) -> None:
        for key, orchestrator in self.orchestrators.items():
            orchestrator.cancel()
            orchestrator.clear_error()
            self.lifecycle.reject_all(key)

    def load_transcript(self, imported: ImportedTranscript, transcript_ref: FileReference | None = None) -> bool:
        """Open an imported transcript; returns True if cached edits were restored instead."""

        def load() -> None:
            self.store.load_transcript(
                imported.segments,
                tags=imported.tags,
                chapters=imported.chapters,
                is_whisperx_format=imported.is_whisperx_format,
            )

        previous_key = self.sessions.session_key
        restored = self.sessions.open_transcript(transcript_ref, load)
        if not restored or self.sessions.session_key != previous_key:
            self._reset_ai()
        self.request_persist()
        return restored

    def set_audio_reference(self, audio_ref: FileReference | None) -> None:
        previous_key = self.sessions.session_key
        self.sessions.set_audio_reference(audio_ref)
        if self.sessions.session_key != previous_key:
            self._reset_ai()
        self.request_persist()

    def activate_session(self, key: str) -> bool:
        if key == self.sessions.session_key:
            return True
        if not self.sessions.activate_session(key):
            return False
        self._reset_ai()
        self.request_persist()
        return True

    def create_revision(self, name: str, overwrite: bool = False) -> str | None:
        key = self.sessions.create_revision(name, overwrite=overwrite)
        if key is not None:
            self.request_persist()
        return key

    def delete_session(self, key: str) -> bool:
        deleted = self.sessions.delete_session(key)
        if deleted:
            self.request_persist()
        return deleted

    def update_config(self, config: GlobalConfig) -> None:
        self.config = config
        self.request_persist()

    # ------------------------------------------------------------------
    # AI features
    # ------------------------------------------------------------------

    def orchestrator(self, feature: str) -> BatchOrchestrator:
        try:
            return self.orchestrators[feature]
        except KeyError:
            raise KeyError(f"Unknown AI feature: {feature!r}") from None

    def start_feature(self, feature: str, options: dict[str, Any] | None = None) -> asyncio.Task | None:
        """Start a run for feature with config defaults merged under options.

        Must be called from inside a running event loop.
        """
        orchestrator = self.orchestrator(feature)
        merged = self.config.feature_options(feature)
        merged.update({k: v for k, v in (options or {}).items() if v is not None})
        try:
            provider = self.provider_factory(self.config.provider)
        except AIConfigurationError as exc:
            logger.warning("Cannot start %s: %s", feature, exc.message)
            orchestrator.state.error = exc.user_message()
            return None
        return orchestrator.start(provider, merged)

    async def aclose(self) -> None:
        """Cancel running jobs, wait for them, and flush pending persistence."""
        for orchestrator in self.orchestrators.values():
            orchestrator.cancel()
        await asyncio.gather(*(o.wait() for o in self.orchestrators.values()))
        if self.scheduler is not None:
            await self.scheduler.aclose()
