"""AI-assisted editing: providers, features, batch runs, and suggestions.

WHY: Background AI jobs propose speaker reassignments, text revisions,
chapters, and segment merges while the user keeps editing. This package
keeps all model interaction out of the document core.

HOW: providers.py talks HTTP to a chat model; features/ turn transcript
batches into prompts and replies into suggestions; orchestrator.py runs
batches for one feature at a time; lifecycle.py applies accepted
suggestions to the DocumentStore.

RULES:
- Nothing in this package mutates the store except feature apply() calls
  made by SuggestionLifecycle
- Providers are the only place that performs network I/O
"""
