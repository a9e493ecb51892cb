"""Configuration constants, palettes, and .env loading.

WHY: Centralizes all tunable values (history depth, persistence throttle,
AI endpoint, per-feature batch sizes) so they are easy to find, update,
and override without touching the editing or orchestration logic.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read through os.getenv() with sensible defaults.
load_ai_api_key() gives a clear error when a hosted provider needs a key
that is not configured.

RULES:
- SPEAKER_COLORS is a fixed 20-entry palette; colors cycle by creation index
- MAX_HISTORY bounds the undo log (oldest entries are evicted first)
- PERSIST_THROTTLE_MS bounds how often the write-behind snapshot is flushed
- AI keys are loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the process is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------

SPEAKER_COLORS: tuple[str, ...] = (
    "hsl(0, 90%, 50%)",
    "hsl(30, 90%, 50%)",
    "hsl(60, 90%, 45%)",
    "hsl(120, 70%, 40%)",
    "hsl(180, 80%, 42%)",
    "hsl(210, 90%, 48%)",
    "hsl(270, 85%, 50%)",
    "hsl(300, 80%, 48%)",
    "hsl(330, 80%, 50%)",
    "hsl(15, 90%, 48%)",
    "hsl(345, 65%, 48%)",
    "hsl(45, 85%, 50%)",
    "hsl(75, 70%, 45%)",
    "hsl(135, 60%, 45%)",
    "hsl(165, 65%, 42%)",
    "hsl(195, 70%, 44%)",
    "hsl(225, 65%, 46%)",
    "hsl(255, 60%, 48%)",
    "hsl(285, 55%, 50%)",
    "hsl(315, 60%, 48%)",
)
"""Speaker palette. Also used for tags, cycling by tag count."""


def palette_color(index: int) -> str:
    """Return the palette color for the index-th created entity."""
    return SPEAKER_COLORS[index % len(SPEAKER_COLORS)]


MAX_HISTORY = int(os.getenv("MAX_HISTORY", "100"))
DEFAULT_SPEAKER_NAME = "SPEAKER_00"

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

PERSIST_THROTTLE_MS = int(os.getenv("PERSIST_THROTTLE_MS", "500"))
STATE_FILE = os.getenv("STATE_FILE", "transcript-editor-state.json")

# ---------------------------------------------------------------------------
# AI provider defaults
# ---------------------------------------------------------------------------

AI_PROVIDER = os.getenv("AI_PROVIDER", "ollama").lower()
AI_BASE_URL = os.getenv("AI_BASE_URL", "http://localhost:11434")
AI_MODEL = os.getenv("AI_MODEL", "llama3.1")
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "120"))
AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "2048"))

# ---------------------------------------------------------------------------
# Per-feature batch sizes
# ---------------------------------------------------------------------------

SPEAKER_BATCH_SIZE = int(os.getenv("SPEAKER_BATCH_SIZE", "10"))
REVISION_BATCH_SIZE = int(os.getenv("REVISION_BATCH_SIZE", "10"))
CHAPTER_BATCH_SIZE = int(os.getenv("CHAPTER_BATCH_SIZE", "100"))
MERGE_BATCH_SIZE = int(os.getenv("MERGE_BATCH_SIZE", "20"))

MAX_CHAPTER_BATCH_SIZE = 500
"""Chapter detection prompts grow with the batch; larger batches are clamped."""


def load_ai_api_key(required: bool = True) -> str | None:
    """Load the AI provider API key from the environment.

    WHY: Hosted OpenAI-compatible endpoints reject unauthenticated calls,
    while a local Ollama server needs no key at all.

    HOW: Reads AI_API_KEY from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the key is required but missing or empty
    - Returns None when the key is optional and absent
    """
    key = os.getenv("AI_API_KEY", "").strip()
    if not key:
        if required:
            raise ValueError(
                "AI API key not configured. "
                "Add AI_API_KEY to the .env file or switch AI_PROVIDER to ollama."
            )
        return None
    return key
