"""Command-line interface for the transcript editor.

WHY: Besides the HTTP API, it is handy to look at a transcript file or
try an AI feature against a local model without starting a server.

HOW: argparse subcommands:
  serve   : run the FastAPI app with uvicorn
  inspect : load a Whisper/WhisperX file and print a summary
  suggest : run one AI feature over a file and print the suggestions
`suggest` builds a throwaway Workspace, starts the feature, and waits for
the run with asyncio.run(). Status messages go to stderr; results go to
stdout as JSON so they can be piped.

RULES:
- Exit code 1 for unreadable input or configuration errors
- Exit code 130 when interrupted
- Logging is configured once, here
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import List, Optional

from transcript_editor import __version__
from transcript_editor.ai.features import FEATURES
from transcript_editor.ai.orchestrator import RunStatus
from transcript_editor.core.importer import ImportedTranscript, TranscriptFormatError, load_transcript_file
from transcript_editor.workspace import Workspace

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def _status(msg: str) -> None:
    """Print a status message to stderr so stdout stays pipeable."""
    print(msg, file=sys.stderr, flush=True)


def _load(path: Path) -> ImportedTranscript:
    if not path.exists():
        _status("Error: File not found: {}".format(path))
        sys.exit(1)
    try:
        return load_transcript_file(path)
    except TranscriptFormatError as exc:
        _status("Error: {}".format(exc))
        sys.exit(1)


def summarize_transcript(imported: ImportedTranscript) -> dict:
    """Counts and speaker breakdown of an imported transcript."""
    segments = imported.segments
    per_speaker = Counter(s.speaker for s in segments)
    return {
        "format": "whisperx" if imported.is_whisperx_format else "whisper",
        "segments": len(segments),
        "words": sum(len(s.words) for s in segments),
        "duration": round(max((s.end for s in segments), default=0.0), 3),
        "speakers": dict(sorted(per_speaker.items())),
        "tags": [tag.name for tag in imported.tags],
        "chapters": [chapter.title for chapter in imported.chapters],
    }


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_serve(args: argparse.Namespace) -> None:
    from transcript_editor.server.app import run_api

    run_api(host=args.host, port=args.port)


def _cmd_inspect(args: argparse.Namespace) -> None:
    imported = _load(Path(args.file))
    print(json.dumps(summarize_transcript(imported), indent=2, ensure_ascii=False))


async def _run_suggest(args: argparse.Namespace, imported: ImportedTranscript) -> int:
    workspace = Workspace()
    workspace.load_transcript(imported)
    options = {}
    if args.batch_size:
        options["batch_size"] = args.batch_size
    if args.speaker:
        options["speakers"] = args.speaker
    if args.exclude_confirmed:
        options["exclude_confirmed"] = True

    task = workspace.start_feature(args.feature, options)
    state = workspace.orchestrator(args.feature).state
    if task is None:
        _status("Error: {}".format(state.error))
        return 1

    _status("Running {} over {} segments...".format(args.feature, state.total_to_process))
    await workspace.orchestrator(args.feature).wait()
    for entry in state.batch_log:
        _status(
            "  batch {}: returned {}, used {}, ignored {}".format(
                entry.batch_index + 1, entry.returned_count, entry.used_count, entry.ignored_count
            )
        )
    if state.notice:
        _status(state.notice)
    if state.status == RunStatus.FAILED:
        _status("Error: {}".format(state.error))
        return 1

    for suggestion in state.pending():
        print(json.dumps(dataclasses.asdict(suggestion), ensure_ascii=False))
    _status("Done! {} suggestion(s).".format(len(state.pending())))
    return 0


def _cmd_suggest(args: argparse.Namespace) -> None:
    imported = _load(Path(args.file))
    try:
        code = asyncio.run(_run_suggest(args, imported))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    if code:
        sys.exit(code)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser; kept separate from main() for tests."""
    parser = argparse.ArgumentParser(
        prog="transcript_editor",
        description="Edit diarized transcripts and run AI suggestion features.",
    )
    parser.add_argument("--version", action="version", version="%(prog)s {}".format(__version__))
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: %(default)s).")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: %(default)s).")
    serve.set_defaults(func=_cmd_serve)

    inspect = sub.add_parser("inspect", help="Print a summary of a transcript file.")
    inspect.add_argument("file", help="Whisper or WhisperX JSON file.")
    inspect.set_defaults(func=_cmd_inspect)

    suggest = sub.add_parser("suggest", help="Run an AI feature and print its suggestions.")
    suggest.add_argument("feature", choices=sorted(FEATURES), help="AI feature to run.")
    suggest.add_argument("file", help="Whisper or WhisperX JSON file.")
    suggest.add_argument("--batch-size", type=int, default=None, help="Items per model call.")
    suggest.add_argument(
        "--speaker",
        action="append",
        default=None,
        help="Only analyze segments of this speaker. Can be specified multiple times.",
    )
    suggest.add_argument(
        "--exclude-confirmed", action="store_true", help="Skip human-confirmed segments."
    )
    suggest.set_defaults(func=_cmd_suggest)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m transcript_editor`` and the console script.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)
    args.func(args)


if __name__ == "__main__":
    main()
