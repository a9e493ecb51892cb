"""Session cache keyed by (audio file, transcript file) identity.

WHY: An editor works on many recordings. Each (audio, transcript) pair
is an independent document with its own edits, selection, and chapters.
Switching files must never lose unsaved work, and reopening the same pair
must bring back exactly what was left.

HOW: build_session_key() derives a deterministic string from the two
FileReference identities. SessionManager keeps a dict of key → Session and
swaps documents in and out of a single DocumentStore. Before any switch the
current document is written back to the cache under its own key.

RULES:
- Session keys are a pure function of (audio_ref, transcript_ref)
- activate_session() on an unknown key is a no-op
- Activation resets history to a single entry seeded from the session
- A stale cached selection falls back to the first segment
- Changing only one half of the identity pair promotes the in-memory
  document to the new key when nothing is cached there yet
- Changing to a different, non-null audio file clears the transcript reference
- The active session cannot be deleted
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

from transcript_editor.core.models import DocumentSnapshot, FileReference
from transcript_editor.core.store import DocumentStore

logger = logging.getLogger(__name__)


def build_session_key(
    audio_ref: FileReference | None, transcript_ref: FileReference | None
) -> str:
    audio_key = audio_ref.serialize() if audio_ref else "none"
    transcript_key = transcript_ref.serialize() if transcript_ref else "none"
    return f"audio:{audio_key}|transcript:{transcript_key}"


@dataclass(frozen=True)
class Session:
    """A cached document for one identity pair (or a named revision of one)."""

    audio_ref: FileReference | None
    transcript_ref: FileReference | None
    snapshot: DocumentSnapshot
    is_whisperx_format: bool = False
    updated_at: float = 0.0
    kind: str = "current"
    label: str | None = None
    base_session_key: str | None = None


class SessionManager:
    """Multiplexes cached sessions into one DocumentStore."""

    def __init__(self, store: DocumentStore, sessions: dict[str, Session] | None = None) -> None:
        self.store = store
        self.sessions: dict[str, Session] = dict(sessions or {})
        self.audio_ref: FileReference | None = None
        self.transcript_ref: FileReference | None = None
        self.session_key = build_session_key(None, None)
        self.session_kind = "current"
        self.session_label: str | None = None
        self.base_session_key: str | None = None

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def _current_session(self) -> Session:
        return Session(
            audio_ref=self.audio_ref,
            transcript_ref=self.transcript_ref,
            snapshot=self.store.snapshot(),
            is_whisperx_format=self.store.is_whisperx_format,
            updated_at=time.time(),
            kind=self.session_kind,
            label=self.session_label,
            base_session_key=self.base_session_key,
        )

    def save_current(self) -> None:
        """Write the in-memory document back to the cache under its key."""
        if self.store.snapshot().is_empty:
            return
        self.sessions[self.session_key] = self._current_session()

    def snapshot_sessions(self) -> dict[str, Session]:
        """Cache contents with the live document folded in, for persistence."""
        sessions = dict(self.sessions)
        if not self.store.snapshot().is_empty:
            sessions[self.session_key] = self._current_session()
        return sessions

    def list_sessions(self) -> list[tuple[str, Session]]:
        """Cached sessions, most recently updated first."""
        return sorted(self.snapshot_sessions().items(), key=lambda kv: kv[1].updated_at, reverse=True)

    # ------------------------------------------------------------------
    # Switching
    # ------------------------------------------------------------------

    def _load(self, key: str, session: Session) -> None:
        snapshot = session.snapshot
        selected = snapshot.selected_segment_id
        if selected is None or all(s.id != selected for s in snapshot.segments):
            selected = snapshot.segments[0].id if snapshot.segments else None
        snapshot = dataclasses.replace(snapshot, selected_segment_id=selected)
        self.store.replace_document(
            snapshot,
            is_whisperx_format=session.is_whisperx_format,
            seed_history=not snapshot.is_empty,
        )
        self.audio_ref = session.audio_ref
        self.transcript_ref = session.transcript_ref
        self.session_key = key
        self.session_kind = session.kind
        self.session_label = session.label
        self.base_session_key = session.base_session_key

    def activate_session(self, key: str) -> bool:
        session = self.sessions.get(key)
        if session is None:
            return False
        if key != self.session_key:
            self.save_current()
        self._load(key, session)
        logger.info("Activated session %s", key)
        return True

    def _switch(
        self,
        audio_ref: FileReference | None,
        transcript_ref: FileReference | None,
        allow_promote: bool,
    ) -> None:
        key = build_session_key(audio_ref, transcript_ref)
        if key == self.session_key:
            self.audio_ref, self.transcript_ref = audio_ref, transcript_ref
            return
        self.save_current()
        cached = self.sessions.get(key)
        if cached is not None:
            self._load(key, cached)
            logger.info("Switched to cached session %s", key)
            return

        if allow_promote and not self.store.snapshot().is_empty:
            promoted = dataclasses.replace(
                self._current_session(), audio_ref=audio_ref, transcript_ref=transcript_ref
            )
            self.sessions[key] = promoted
            self.audio_ref, self.transcript_ref, self.session_key = audio_ref, transcript_ref, key
            self.store.history.reset(self.store.snapshot())
            logger.info("Promoted in-memory document to session %s", key)
            return

        self.store.replace_document(DocumentSnapshot(), seed_history=False)
        self.audio_ref, self.transcript_ref, self.session_key = audio_ref, transcript_ref, key
        self.session_kind, self.session_label, self.base_session_key = "current", None, None

    def set_audio_reference(self, audio_ref: FileReference | None) -> None:
        """Point the editor at a (possibly different) audio file."""
        audio_changed = audio_ref != self.audio_ref
        reset_transcript = audio_changed and audio_ref is not None
        transcript_ref = None if reset_transcript else self.transcript_ref
        self._switch(audio_ref, transcript_ref, allow_promote=not reset_transcript)

    def open_transcript(self, transcript_ref: FileReference | None, load: Callable[[], None]) -> bool:
        """Open a transcript file for the current audio.

        If a session is cached for the resulting identity pair it is
        restored and load is not called; reopening the live document is
        left alone. Otherwise the current document is saved and load()
        fills the store for the new key. Returns True when cached edits
        were restored instead of loading the file.
        """
        key = build_session_key(self.audio_ref, transcript_ref)
        if transcript_ref is not None and key == self.session_key and not self.store.snapshot().is_empty:
            return True
        self.save_current()
        cached = self.sessions.get(key) if transcript_ref is not None else None
        if cached is not None:
            self._load(key, cached)
            logger.info("Restored cached edits for %s", key)
            return True
        load()
        self.transcript_ref, self.session_key = transcript_ref, key
        self.session_kind, self.base_session_key = "current", None
        self.session_label = transcript_ref.name if transcript_ref else None
        return False

    def set_transcript_reference(self, transcript_ref: FileReference | None) -> None:
        """Record which transcript file the document came from."""
        if self.audio_ref is None:
            self.transcript_ref = transcript_ref
            if self.session_label is None and transcript_ref is not None:
                self.session_label = transcript_ref.name
            return
        self._switch(self.audio_ref, transcript_ref, allow_promote=True)

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def create_revision(self, name: str, overwrite: bool = False) -> str | None:
        """Store a named copy of the current document and return its key.

        A revision of the same name for the same base session is only
        replaced when overwrite=True; otherwise None is returned.
        """
        label = name.strip()
        if not label:
            return None
        key = f"{self.session_key}|revision:{quote(label, safe='')}"
        if key in self.sessions and not overwrite:
            return None
        self.sessions[key] = dataclasses.replace(
            self._current_session(),
            kind="revision",
            label=label,
            base_session_key=self.session_key,
        )
        logger.info("Created revision %r at %s", label, key)
        return key

    def delete_session(self, key: str) -> bool:
        if key not in self.sessions or key == self.session_key:
            return False
        del self.sessions[key]
        logger.info("Deleted session %s", key)
        return True
