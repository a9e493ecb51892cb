"""Transcript editor core: undoable document store with AI suggestions.

WHY: Diarized ASR transcripts need human correction: fixing speakers,
cleaning text, merging fragments, adding chapters. Background AI jobs
can propose those fixes in bulk, but they race against live edits, so
the document model has to stay consistent and undoable no matter which
side changes it.

HOW: Three layers.
  core/     : immutable records, the DocumentStore with bounded history,
               chapter invariants, transcript import, and the session cache
  ai/       : chat providers, feature definitions, the batch orchestrator,
               and the suggestion lifecycle that applies accepted results
  server/   : FastAPI surface over a Workspace that wires it all together

RULES:
- Every document change goes through DocumentStore and is one undo step
- AI results only reach the document through SuggestionLifecycle
- Chapters never overlap, whether added by hand or by the AI
"""

__version__ = "0.1.0"
