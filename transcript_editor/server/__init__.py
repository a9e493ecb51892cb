"""HTTP API for the transcript editor (FastAPI)."""
