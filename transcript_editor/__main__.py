"""Package entry point for ``python -m transcript_editor``.

RULES:
- This file must exist for ``python -m transcript_editor`` to work
- All argument handling lives in cli.main()
"""

from transcript_editor.cli import main

if __name__ == "__main__":
    main()
