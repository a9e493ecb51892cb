"""Pydantic request/response models for the editor HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and the generated /docs page. Document records
are frozen dataclasses; pydantic serializes them directly, so response
models embed them instead of mirroring every field.

HOW: Requests are grouped by the resource they act on (document,
segments, speakers, tags, chapters, sessions, features). Responses return
either the whole document view, a session listing, or one feature's
observable state.

RULES:
- All request fields use Field(description=...) for OpenAPI documentation
- Error bodies always use ErrorResponse
- Optional fields use typing.Optional (no PEP 604 unions in models)
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from transcript_editor.ai.orchestrator import BatchOrchestrator
from transcript_editor.core.models import Chapter, FileReference, Segment, Speaker, Tag
from transcript_editor.core.sessions import Session


# ---------------------------------------------------------------------------
# Request models: document
# ---------------------------------------------------------------------------


class FileReferenceModel(BaseModel):
    """Identity of a local file as reported by the client."""

    name: str = Field(min_length=1, description="File name without directories.")
    size: int = Field(default=0, ge=0, description="File size in bytes.")
    last_modified: int = Field(default=0, description="Modification time (ms since epoch).")

    def to_reference(self) -> FileReference:
        return FileReference(name=self.name, size=self.size, last_modified=self.last_modified)


class LoadTranscriptRequest(BaseModel):
    """A Whisper or WhisperX transcript to open.

    RULES:
    - data is the decoded transcript JSON (list or object)
    - When file is given and a session exists for it, cached edits win
    """

    data: Any = Field(description="Decoded Whisper (list) or WhisperX (object) transcript JSON.")
    file: Optional[FileReferenceModel] = Field(
        default=None, description="Identity of the transcript file, used for session caching."
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "data": {"segments": [{"start": 0.0, "end": 2.1, "text": "Hello there.", "speaker": "SPEAKER_00"}]},
                "file": {"name": "interview.json", "size": 1024, "last_modified": 1739959200000},
            }
        ]
    }}


class SelectionRequest(BaseModel):
    segment_id: Optional[str] = Field(default=None, description="Segment to select.")
    chapter_id: Optional[str] = Field(default=None, description="Chapter to select.")
    current_time: Optional[float] = Field(default=None, ge=0, description="Playback position in seconds.")


# ---------------------------------------------------------------------------
# Request models: segments, speakers, tags, chapters
# ---------------------------------------------------------------------------


class SegmentTextRequest(BaseModel):
    text: str = Field(description="New segment text. Word timings are preserved where words match.")


class SegmentSpeakerRequest(BaseModel):
    speaker: str = Field(min_length=1, description="Speaker name to assign.")


class SegmentTimingRequest(BaseModel):
    start: float = Field(ge=0, description="New start time in seconds.")
    end: float = Field(ge=0, description="New end time in seconds; must be after start.")


class SplitSegmentRequest(BaseModel):
    word_index: int = Field(ge=1, description="Index of the first word of the second half.")


class MergeSegmentsRequest(BaseModel):
    first_id: str = Field(description="Id of the earlier segment.")
    second_id: str = Field(description="Id of the segment directly after it.")
    text: Optional[str] = Field(default=None, description="Replacement text for the merged segment.")


class SpeakerCreateRequest(BaseModel):
    name: str = Field(min_length=1, description="Speaker name; must not already exist.")


class SpeakerRenameRequest(BaseModel):
    old_name: str = Field(description="Current speaker name.")
    new_name: str = Field(min_length=1, description="New speaker name.")


class SpeakerMergeRequest(BaseModel):
    from_name: str = Field(description="Speaker whose segments are reassigned and who is removed.")
    to_name: str = Field(description="Speaker who receives the segments.")


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, description="Tag name.")
    color: Optional[str] = Field(default=None, description="CSS color; defaults to the palette.")


class TagUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, description="New tag name.")
    color: Optional[str] = Field(default=None, description="New CSS color.")


class ChapterCreateRequest(BaseModel):
    title: str = Field(min_length=1, description="Chapter title.")
    start_segment_id: str = Field(description="Segment the chapter starts at.")
    tags: List[str] = Field(default_factory=list, description="Tag ids attached to the chapter.")


class ChapterUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, description="New title; must not be blank.")
    summary: Optional[str] = Field(default=None, description="Chapter summary.")
    notes: Optional[str] = Field(default=None, description="Free-form notes.")
    tags: Optional[List[str]] = Field(default=None, description="Replacement list of tag ids.")
    start_segment_id: Optional[str] = Field(default=None, description="New first segment.")
    end_segment_id: Optional[str] = Field(default=None, description="New last segment.")


class ChapterMoveRequest(BaseModel):
    target_segment_id: str = Field(description="Segment the chapter should start at.")


# ---------------------------------------------------------------------------
# Request models: sessions and features
# ---------------------------------------------------------------------------


class ActivateSessionRequest(BaseModel):
    key: str = Field(description="Session key from GET /sessions.")


class CreateRevisionRequest(BaseModel):
    name: str = Field(min_length=1, description="Revision label.")
    overwrite: bool = Field(default=False, description="Replace an existing revision of the same name.")


class StartFeatureRequest(BaseModel):
    """Scope and overrides for one AI run.

    RULES:
    - Unset fields fall back to the feature's section in GlobalConfig
    - segment_ids, when given, restricts the run to those segments
    """

    segment_ids: Optional[List[str]] = Field(default=None, description="Only analyze these segments.")
    speakers: Optional[List[str]] = Field(default=None, description="Only analyze segments of these speakers.")
    exclude_confirmed: Optional[bool] = Field(default=None, description="Skip human-confirmed segments.")
    batch_size: Optional[int] = Field(default=None, ge=1, description="Items per model call.")
    options: Dict[str, Any] = Field(default_factory=dict, description="Feature-specific options.")

    model_config = {"json_schema_extra": {
        "examples": [
            {"speakers": ["SPEAKER_01"], "exclude_confirmed": True, "batch_size": 10, "options": {}},
            {"options": {"max_time_gap": 1.5, "min_confidence": "high"}},
        ]
    }}

    def to_options(self) -> Dict[str, Any]:
        options = dict(self.options)
        for name in ("segment_ids", "speakers", "exclude_confirmed", "batch_size"):
            value = getattr(self, name)
            if value is not None:
                options[name] = value
        return options


class AcceptRequest(BaseModel):
    keys: List[str] = Field(min_length=1, description="Suggestion keys to accept as one undo step.")


class RejectRequest(BaseModel):
    key: str = Field(description="Suggestion key to discard.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    """The open document plus selection and undo availability."""

    session_key: str = Field(description="Key of the active session.")
    segments: List[Segment] = Field(description="Segments in document order.")
    speakers: List[Speaker] = Field(description="Known speakers.")
    tags: List[Tag] = Field(description="Known tags.")
    chapters: List[Chapter] = Field(description="Chapters ordered by start segment.")
    selected_segment_id: Optional[str] = None
    selected_chapter_id: Optional[str] = None
    current_time: float = 0.0
    can_undo: bool = False
    can_redo: bool = False
    is_whisperx_format: bool = False


class LoadTranscriptResponse(DocumentResponse):
    restored: bool = Field(description="True when cached edits for this file were restored instead.")


class SessionSummary(BaseModel):
    key: str
    kind: str = Field(description="'current' or 'revision'.")
    label: Optional[str] = None
    audio_name: Optional[str] = None
    transcript_name: Optional[str] = None
    segment_count: int = 0
    updated_at: float = 0.0
    base_session_key: Optional[str] = None

    @classmethod
    def from_session(cls, key: str, session: Session) -> "SessionSummary":
        return cls(
            key=key,
            kind=session.kind,
            label=session.label,
            audio_name=session.audio_ref.name if session.audio_ref else None,
            transcript_name=session.transcript_ref.name if session.transcript_ref else None,
            segment_count=len(session.snapshot.segments),
            updated_at=session.updated_at,
            base_session_key=session.base_session_key,
        )


class SessionListResponse(BaseModel):
    active_session_key: str = Field(description="Key of the session currently open.")
    sessions: List[SessionSummary] = Field(description="Cached sessions, most recent first.")


class RevisionCreatedResponse(BaseModel):
    key: str = Field(description="Session key of the new revision.")


class FeatureStateResponse(BaseModel):
    """Observable state of one AI feature.

    RULES:
    - suggestions holds pending suggestions; each has a kind and target_key
    - batch_log has one entry per processed batch, plus one on cancel
    """

    feature: str = Field(description="Feature key.")
    label: str = Field(description="Human-readable feature name.")
    status: str = Field(description="idle, running, completed, cancelled, or failed.")
    is_processing: bool
    processed_count: int
    total_to_process: int
    error: Optional[str] = None
    notice: Optional[str] = None
    suggestions: List[Dict[str, Any]] = Field(default_factory=list)
    batch_log: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_orchestrator(cls, orchestrator: BatchOrchestrator) -> "FeatureStateResponse":
        state = orchestrator.state
        return cls(
            feature=orchestrator.feature.key,
            label=orchestrator.feature.label,
            status=state.status.value,
            is_processing=state.is_processing,
            processed_count=state.processed_count,
            total_to_process=state.total_to_process,
            error=state.error,
            notice=state.notice,
            suggestions=[dataclasses.asdict(s) for s in state.pending()],
            batch_log=[dataclasses.asdict(entry) for entry in state.batch_log],
        )


class AcceptResponse(BaseModel):
    applied: bool = Field(description="True when at least one suggestion changed the document.")
    state: FeatureStateResponse


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
