"""FastAPI application exposing the transcript editor over HTTP.

WHY: The editor UI (or curl, or a script) drives one editing workspace:
it loads transcripts, performs undoable edits, switches sessions, and
runs AI features in the background while edits continue. FastAPI gives
request validation and an OpenAPI page for free.

HOW: A module-level Workspace holds the document and AI state. Selector
endpoints (GET) return the document, session list, or a feature's state.
Action endpoints (POST/PATCH/DELETE) call exactly one store, session, or
lifecycle operation and return the resulting view. AI runs are started as
asyncio tasks on the server's event loop and polled via
GET /features/{feature}.

RULES:
- Every endpoint is async so all mutations run on the event loop thread
- Unknown ids and feature names → 404, invalid input → 400, conflicts → 409
- Error responses use the ErrorResponse schema
- The state file is attached at startup when STATE_FILE is set and
  flushed at shutdown
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query

from transcript_editor import __version__
from transcript_editor.ai.orchestrator import BatchOrchestrator
from transcript_editor.config import STATE_FILE
from transcript_editor.core.importer import TranscriptFormatError, parse_transcript_data
from transcript_editor.persistence import GlobalConfig
from transcript_editor.server.models import (
    AcceptRequest,
    AcceptResponse,
    ActivateSessionRequest,
    ChapterCreateRequest,
    ChapterMoveRequest,
    ChapterUpdateRequest,
    CreateRevisionRequest,
    DocumentResponse,
    ErrorResponse,
    FeatureStateResponse,
    FileReferenceModel,
    HealthResponse,
    LoadTranscriptRequest,
    LoadTranscriptResponse,
    MergeSegmentsRequest,
    RejectRequest,
    RevisionCreatedResponse,
    SegmentSpeakerRequest,
    SegmentTextRequest,
    SegmentTimingRequest,
    SelectionRequest,
    SessionListResponse,
    SessionSummary,
    SpeakerCreateRequest,
    SpeakerMergeRequest,
    SpeakerRenameRequest,
    SplitSegmentRequest,
    StartFeatureRequest,
    TagCreateRequest,
    TagUpdateRequest,
)
from transcript_editor.workspace import Workspace

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and workspace setup
# ---------------------------------------------------------------------------

workspace = Workspace()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Restore persisted sessions on startup, flush them on shutdown."""
    if STATE_FILE:
        workspace.attach_state_file(Path(STATE_FILE))
    yield
    await workspace.aclose()


app = FastAPI(
    lifespan=lifespan,
    title="Transcript Editor API",
    description=(
        "Edit diarized transcripts with undo/redo, per-file sessions, chapters, "
        "and tags. AI features (speaker classification, text revision, chapter "
        "detection, segment merging) run in the background and produce "
        "suggestions that can be accepted or rejected."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown id"}}
BAD_REQUEST = {400: {"model": ErrorResponse, "description": "Invalid input"}}
CONFLICT = {409: {"model": ErrorResponse, "description": "Conflicts with the current document"}}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _document_response(cls=DocumentResponse, **extra) -> DocumentResponse:
    store = workspace.store
    snapshot = store.snapshot()
    return cls(
        session_key=workspace.sessions.session_key,
        segments=list(snapshot.segments),
        speakers=list(snapshot.speakers),
        tags=list(snapshot.tags),
        chapters=list(snapshot.chapters),
        selected_segment_id=snapshot.selected_segment_id,
        selected_chapter_id=snapshot.selected_chapter_id,
        current_time=snapshot.current_time,
        can_undo=store.can_undo,
        can_redo=store.can_redo,
        is_whisperx_format=store.is_whisperx_format,
        **extra,
    )


def _require_segment(segment_id: str) -> None:
    if workspace.store.get_segment(segment_id) is None:
        raise HTTPException(status_code=404, detail="Segment not found: {}".format(segment_id))


def _require_speaker(name: str) -> None:
    if workspace.store.find_speaker(name) is None:
        raise HTTPException(status_code=404, detail="Speaker not found: {}".format(name))


def _require_tag(tag_id: str) -> None:
    if workspace.store.get_tag(tag_id) is None:
        raise HTTPException(status_code=404, detail="Tag not found: {}".format(tag_id))


def _require_chapter(chapter_id: str) -> None:
    if workspace.store.get_chapter(chapter_id) is None:
        raise HTTPException(status_code=404, detail="Chapter not found: {}".format(chapter_id))


def _orchestrator(feature: str) -> BatchOrchestrator:
    try:
        return workspace.orchestrator(feature)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown AI feature: {}".format(feature))


def _feature_response(feature: str) -> FeatureStateResponse:
    return FeatureStateResponse.from_orchestrator(_orchestrator(feature))


# ---------------------------------------------------------------------------
# Endpoints: Document
# ---------------------------------------------------------------------------


@app.get(
    "/document",
    response_model=DocumentResponse,
    tags=["document"],
    summary="Get the open document",
)
async def get_document() -> DocumentResponse:
    return _document_response()


@app.post(
    "/document/load",
    response_model=LoadTranscriptResponse,
    tags=["document"],
    summary="Open a Whisper or WhisperX transcript",
    description=(
        "Parses the transcript and opens it for the current audio file. If a "
        "session for the same file identity is cached, its edits are restored "
        "instead and `restored` is true."
    ),
    responses=BAD_REQUEST,
)
async def load_document(request: LoadTranscriptRequest) -> LoadTranscriptResponse:
    try:
        imported = parse_transcript_data(request.data)
    except TranscriptFormatError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except (KeyError, TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Malformed transcript: {}".format(exc))
    ref = request.file.to_reference() if request.file else None
    restored = workspace.load_transcript(imported, ref)
    return _document_response(LoadTranscriptResponse, restored=restored)


@app.post(
    "/document/audio",
    response_model=DocumentResponse,
    tags=["document"],
    summary="Set the audio file the document belongs to",
    description=(
        "Switching to a different audio file saves the current document and "
        "opens the cached session for the new file, if any."
    ),
)
async def set_audio(file: Optional[FileReferenceModel] = None) -> DocumentResponse:
    workspace.set_audio_reference(file.to_reference() if file else None)
    return _document_response()


@app.post(
    "/document/selection",
    response_model=DocumentResponse,
    tags=["document"],
    summary="Change selection or playback position (not undoable)",
    responses=NOT_FOUND,
)
async def set_selection(request: SelectionRequest) -> DocumentResponse:
    store = workspace.store
    if request.segment_id is not None:
        _require_segment(request.segment_id)
        store.set_selected_segment_id(request.segment_id)
    if request.chapter_id is not None:
        _require_chapter(request.chapter_id)
        store.select_chapter(request.chapter_id)
    if request.current_time is not None:
        store.set_current_time(request.current_time)
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: Segments
# ---------------------------------------------------------------------------


@app.patch(
    "/segments/{segment_id}/text",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Replace a segment's text",
    responses=NOT_FOUND,
)
async def update_segment_text(segment_id: str, request: SegmentTextRequest) -> DocumentResponse:
    _require_segment(segment_id)
    workspace.store.update_segment_text(segment_id, request.text)
    return _document_response()


@app.patch(
    "/segments/{segment_id}/speaker",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Assign a segment to a speaker",
    responses=NOT_FOUND,
)
async def update_segment_speaker(segment_id: str, request: SegmentSpeakerRequest) -> DocumentResponse:
    _require_segment(segment_id)
    workspace.store.update_segment_speaker(segment_id, request.speaker)
    return _document_response()


@app.patch(
    "/segments/{segment_id}/timing",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Change a segment's start and end",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def update_segment_timing(segment_id: str, request: SegmentTimingRequest) -> DocumentResponse:
    _require_segment(segment_id)
    if request.start >= request.end:
        raise HTTPException(status_code=400, detail="start must be before end")
    workspace.store.update_segment_timing(segment_id, request.start, request.end)
    return _document_response()


@app.post(
    "/segments/{segment_id}/confirm",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Mark a segment as human-verified",
    responses=NOT_FOUND,
)
async def confirm_segment(segment_id: str) -> DocumentResponse:
    _require_segment(segment_id)
    workspace.store.confirm_segment(segment_id)
    return _document_response()


@app.post(
    "/segments/{segment_id}/bookmark",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Toggle a segment's bookmark",
    responses=NOT_FOUND,
)
async def toggle_bookmark(segment_id: str) -> DocumentResponse:
    _require_segment(segment_id)
    workspace.store.toggle_segment_bookmark(segment_id)
    return _document_response()


@app.post(
    "/segments/{segment_id}/split",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Split a segment before a word",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def split_segment(segment_id: str, request: SplitSegmentRequest) -> DocumentResponse:
    _require_segment(segment_id)
    if workspace.store.split_segment(segment_id, request.word_index) is None:
        raise HTTPException(status_code=400, detail="word_index must fall strictly inside the segment")
    return _document_response()


@app.post(
    "/segments/merge",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Merge two adjacent segments",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def merge_segments(request: MergeSegmentsRequest) -> DocumentResponse:
    _require_segment(request.first_id)
    _require_segment(request.second_id)
    if workspace.store.merge_segments(request.first_id, request.second_id, request.text) is None:
        raise HTTPException(status_code=400, detail="Segments are not adjacent")
    return _document_response()


@app.delete(
    "/segments/{segment_id}",
    response_model=DocumentResponse,
    tags=["segments"],
    summary="Delete a segment",
    responses=NOT_FOUND,
)
async def delete_segment(segment_id: str) -> DocumentResponse:
    _require_segment(segment_id)
    workspace.store.delete_segment(segment_id)
    return _document_response()


@app.post(
    "/segments/{segment_id}/tags/{tag_id}",
    response_model=DocumentResponse,
    tags=["segments", "tags"],
    summary="Toggle a tag on a segment",
    responses=NOT_FOUND,
)
async def toggle_segment_tag(segment_id: str, tag_id: str) -> DocumentResponse:
    _require_segment(segment_id)
    _require_tag(tag_id)
    workspace.store.toggle_tag_on_segment(segment_id, tag_id)
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: Speakers
# ---------------------------------------------------------------------------


@app.post(
    "/speakers",
    response_model=DocumentResponse,
    status_code=201,
    tags=["speakers"],
    summary="Add a speaker",
    responses={**BAD_REQUEST, **CONFLICT},
)
async def add_speaker(request: SpeakerCreateRequest) -> DocumentResponse:
    if workspace.store.find_speaker(request.name.strip()) is not None:
        raise HTTPException(status_code=409, detail="Speaker already exists: {}".format(request.name))
    if workspace.store.add_speaker(request.name) is None:
        raise HTTPException(status_code=400, detail="Speaker name must not be blank")
    return _document_response()


@app.post(
    "/speakers/rename",
    response_model=DocumentResponse,
    tags=["speakers"],
    summary="Rename a speaker everywhere",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def rename_speaker(request: SpeakerRenameRequest) -> DocumentResponse:
    _require_speaker(request.old_name)
    if not workspace.store.rename_speaker(request.old_name, request.new_name):
        raise HTTPException(status_code=400, detail="New name must be non-blank and different")
    return _document_response()


@app.post(
    "/speakers/merge",
    response_model=DocumentResponse,
    tags=["speakers"],
    summary="Merge one speaker into another",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def merge_speakers(request: SpeakerMergeRequest) -> DocumentResponse:
    _require_speaker(request.from_name)
    _require_speaker(request.to_name)
    if not workspace.store.merge_speakers(request.from_name, request.to_name):
        raise HTTPException(status_code=400, detail="Cannot merge a speaker into itself")
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: Tags
# ---------------------------------------------------------------------------


@app.post(
    "/tags",
    response_model=DocumentResponse,
    status_code=201,
    tags=["tags"],
    summary="Create a tag",
    responses=BAD_REQUEST,
)
async def add_tag(request: TagCreateRequest) -> DocumentResponse:
    if workspace.store.add_tag(request.name, request.color) is None:
        raise HTTPException(status_code=400, detail="Tag name must not be blank")
    return _document_response()


@app.patch(
    "/tags/{tag_id}",
    response_model=DocumentResponse,
    tags=["tags"],
    summary="Rename or recolor a tag",
    responses={**NOT_FOUND, **BAD_REQUEST},
)
async def update_tag(tag_id: str, request: TagUpdateRequest) -> DocumentResponse:
    _require_tag(tag_id)
    if request.name is not None:
        if not request.name.strip():
            raise HTTPException(status_code=400, detail="Tag name must not be blank")
        workspace.store.rename_tag(tag_id, request.name)
    if request.color is not None:
        workspace.store.update_tag_color(tag_id, request.color)
    return _document_response()


@app.delete(
    "/tags/{tag_id}",
    response_model=DocumentResponse,
    tags=["tags"],
    summary="Delete a tag and remove it from segments and chapters",
    responses=NOT_FOUND,
)
async def delete_tag(tag_id: str) -> DocumentResponse:
    _require_tag(tag_id)
    workspace.store.remove_tag(tag_id)
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: Chapters
# ---------------------------------------------------------------------------


@app.post(
    "/chapters",
    response_model=DocumentResponse,
    status_code=201,
    tags=["chapters"],
    summary="Start a chapter at a segment",
    description=(
        "The chapter runs until the next chapter starts; the chapter before "
        "it is trimmed. If a chapter already starts at the segment it is "
        "selected instead."
    ),
    responses={**NOT_FOUND, **CONFLICT},
)
async def create_chapter(request: ChapterCreateRequest) -> DocumentResponse:
    _require_segment(request.start_segment_id)
    if workspace.store.start_chapter(request.title, request.start_segment_id, request.tags) is None:
        raise HTTPException(status_code=409, detail="Chapter would overlap an existing chapter")
    return _document_response()


@app.patch(
    "/chapters/{chapter_id}",
    response_model=DocumentResponse,
    tags=["chapters"],
    summary="Update a chapter",
    responses={**NOT_FOUND, **BAD_REQUEST, **CONFLICT},
)
async def update_chapter(chapter_id: str, request: ChapterUpdateRequest) -> DocumentResponse:
    _require_chapter(chapter_id)
    updates = request.model_dump(exclude_none=True)
    if not updates:
        return _document_response()
    if "title" in updates and not updates["title"].strip():
        raise HTTPException(status_code=400, detail="Chapter title must not be blank")
    for key in ("start_segment_id", "end_segment_id"):
        if key in updates:
            _require_segment(updates[key])
    if not workspace.store.update_chapter(chapter_id, **updates):
        raise HTTPException(status_code=409, detail="Chapter would overlap an existing chapter")
    return _document_response()


@app.post(
    "/chapters/{chapter_id}/move",
    response_model=DocumentResponse,
    tags=["chapters"],
    summary="Move a chapter's start between its neighbours",
    responses={**NOT_FOUND, **CONFLICT},
)
async def move_chapter(chapter_id: str, request: ChapterMoveRequest) -> DocumentResponse:
    _require_chapter(chapter_id)
    _require_segment(request.target_segment_id)
    chapter = workspace.store.get_chapter(chapter_id)
    if chapter.start_segment_id == request.target_segment_id:
        return _document_response()
    if not workspace.store.move_chapter_start(chapter_id, request.target_segment_id):
        raise HTTPException(status_code=409, detail="Chapter start must stay between its neighbours")
    return _document_response()


@app.delete(
    "/chapters/{chapter_id}",
    response_model=DocumentResponse,
    tags=["chapters"],
    summary="Delete a chapter",
    responses=NOT_FOUND,
)
async def delete_chapter(chapter_id: str) -> DocumentResponse:
    _require_chapter(chapter_id)
    workspace.store.delete_chapter(chapter_id)
    return _document_response()


@app.delete(
    "/chapters",
    response_model=DocumentResponse,
    tags=["chapters"],
    summary="Delete all chapters",
)
async def clear_chapters() -> DocumentResponse:
    workspace.store.clear_chapters()
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: History
# ---------------------------------------------------------------------------


@app.post(
    "/history/undo",
    response_model=DocumentResponse,
    tags=["history"],
    summary="Undo the last document change",
    responses={409: {"model": ErrorResponse, "description": "Nothing to undo"}},
)
async def undo() -> DocumentResponse:
    if not workspace.store.undo():
        raise HTTPException(status_code=409, detail="Nothing to undo")
    return _document_response()


@app.post(
    "/history/redo",
    response_model=DocumentResponse,
    tags=["history"],
    summary="Redo the last undone change",
    responses={409: {"model": ErrorResponse, "description": "Nothing to redo"}},
)
async def redo() -> DocumentResponse:
    if not workspace.store.redo():
        raise HTTPException(status_code=409, detail="Nothing to redo")
    return _document_response()


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.get(
    "/sessions",
    response_model=SessionListResponse,
    tags=["sessions"],
    summary="List cached sessions",
)
async def list_sessions() -> SessionListResponse:
    sessions = [SessionSummary.from_session(key, s) for key, s in workspace.sessions.list_sessions()]
    return SessionListResponse(active_session_key=workspace.sessions.session_key, sessions=sessions)


@app.post(
    "/sessions/activate",
    response_model=DocumentResponse,
    tags=["sessions"],
    summary="Open a cached session",
    responses=NOT_FOUND,
)
async def activate_session(request: ActivateSessionRequest) -> DocumentResponse:
    if not workspace.activate_session(request.key):
        raise HTTPException(status_code=404, detail="Session not found: {}".format(request.key))
    return _document_response()


@app.post(
    "/sessions/revisions",
    response_model=RevisionCreatedResponse,
    status_code=201,
    tags=["sessions"],
    summary="Save the open document as a named revision",
    responses={**BAD_REQUEST, **CONFLICT},
)
async def create_revision(request: CreateRevisionRequest) -> RevisionCreatedResponse:
    if workspace.store.snapshot().is_empty:
        raise HTTPException(status_code=400, detail="No document is open")
    key = workspace.create_revision(request.name, overwrite=request.overwrite)
    if key is None:
        raise HTTPException(status_code=409, detail="Revision already exists: {}".format(request.name))
    return RevisionCreatedResponse(key=key)


@app.delete(
    "/sessions",
    status_code=204,
    tags=["sessions"],
    summary="Delete a cached session",
    responses={**NOT_FOUND, **CONFLICT},
)
async def delete_session(key: str = Query(description="Session key to delete.")) -> None:
    if key == workspace.sessions.session_key:
        raise HTTPException(status_code=409, detail="The active session cannot be deleted")
    if not workspace.delete_session(key):
        raise HTTPException(status_code=404, detail="Session not found: {}".format(key))


# ---------------------------------------------------------------------------
# Endpoints: Config
# ---------------------------------------------------------------------------


@app.get("/config", response_model=GlobalConfig, tags=["config"], summary="Get AI settings")
async def get_config() -> GlobalConfig:
    return workspace.config


@app.put("/config", response_model=GlobalConfig, tags=["config"], summary="Replace AI settings")
async def put_config(config: GlobalConfig) -> GlobalConfig:
    workspace.update_config(config)
    return workspace.config


# ---------------------------------------------------------------------------
# Endpoints: AI features
# ---------------------------------------------------------------------------


@app.get(
    "/features",
    response_model=List[FeatureStateResponse],
    tags=["features"],
    summary="State of every AI feature",
)
async def list_features() -> List[FeatureStateResponse]:
    return [FeatureStateResponse.from_orchestrator(o) for o in workspace.orchestrators.values()]


@app.get(
    "/features/{feature}",
    response_model=FeatureStateResponse,
    tags=["features"],
    summary="State of one AI feature",
    description="Poll this endpoint while a run is in progress.",
    responses=NOT_FOUND,
)
async def get_feature(feature: str) -> FeatureStateResponse:
    return _feature_response(feature)


@app.post(
    "/features/{feature}/start",
    response_model=FeatureStateResponse,
    status_code=202,
    tags=["features"],
    summary="Start an AI run",
    description=(
        "Starts a background run and returns immediately. A run already in "
        "progress for the same feature is superseded. If nothing could be "
        "started the returned state carries the reason in `error`."
    ),
    responses=NOT_FOUND,
)
async def start_feature(feature: str, request: Optional[StartFeatureRequest] = None) -> FeatureStateResponse:
    _orchestrator(feature)
    options = request.to_options() if request else {}
    workspace.start_feature(feature, options)
    return _feature_response(feature)


@app.post(
    "/features/{feature}/cancel",
    response_model=FeatureStateResponse,
    tags=["features"],
    summary="Cancel the running AI job",
    responses=NOT_FOUND,
)
async def cancel_feature(feature: str) -> FeatureStateResponse:
    _orchestrator(feature).cancel()
    return _feature_response(feature)


@app.post(
    "/features/{feature}/accept",
    response_model=AcceptResponse,
    tags=["features"],
    summary="Accept suggestions as one undo step",
    description=(
        "Keys without a pending suggestion are skipped. When none of the keys "
        "match, nothing changes and `applied` is false."
    ),
    responses={**NOT_FOUND, **CONFLICT},
)
async def accept_suggestions(feature: str, request: AcceptRequest) -> AcceptResponse:
    orchestrator = _orchestrator(feature)
    orchestrator.clear_error()
    applied = workspace.lifecycle.accept_many(feature, request.keys)
    if not applied and orchestrator.state.error:
        raise HTTPException(status_code=409, detail=orchestrator.state.error)
    return AcceptResponse(applied=applied, state=_feature_response(feature))


@app.post(
    "/features/{feature}/accept-high-confidence",
    response_model=AcceptResponse,
    tags=["features"],
    summary="Accept every high-confidence suggestion",
    responses={**NOT_FOUND, **CONFLICT},
)
async def accept_high_confidence(feature: str) -> AcceptResponse:
    orchestrator = _orchestrator(feature)
    orchestrator.clear_error()
    applied = workspace.lifecycle.accept_all_high_confidence(feature)
    if not applied and orchestrator.state.error:
        raise HTTPException(status_code=409, detail=orchestrator.state.error)
    return AcceptResponse(applied=applied, state=_feature_response(feature))


@app.post(
    "/features/{feature}/reject",
    response_model=FeatureStateResponse,
    tags=["features"],
    summary="Discard one suggestion",
    responses=NOT_FOUND,
)
async def reject_suggestion(feature: str, request: RejectRequest) -> FeatureStateResponse:
    _orchestrator(feature)
    if not workspace.lifecycle.reject(feature, request.key):
        raise HTTPException(status_code=404, detail="Suggestion not found: {}".format(request.key))
    return _feature_response(feature)


@app.post(
    "/features/{feature}/reject-all",
    response_model=FeatureStateResponse,
    tags=["features"],
    summary="Discard every suggestion",
    responses=NOT_FOUND,
)
async def reject_all_suggestions(feature: str) -> FeatureStateResponse:
    _orchestrator(feature)
    workspace.lifecycle.reject_all(feature)
    return _feature_response(feature)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Service health check",
)
async def health() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------


def run_api(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Start the API server with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)
