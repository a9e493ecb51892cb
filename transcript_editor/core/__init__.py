"""Document model, history, and sessions.

WHY: Everything that must stay consistent under undo lives here, free of
any I/O beyond reading transcript files.

HOW: models.py defines frozen records; history.py the bounded snapshot
log; chapters.py the range invariants; store.py the transactional
DocumentStore; importer.py the Whisper/WhisperX parser; sessions.py the
per-file session cache.

RULES:
- Nothing in core imports from ai/ or server/
"""
