"""Apply a text edit to a segment while keeping word timings.

WHY: Editors fix typos constantly. Re-spreading word timings evenly after
every keystroke would destroy the alignment that playback highlighting
relies on. Words that survive the edit should keep their original start
and end times; only inserted or replaced words need new timings.

HOW: The old and new word sequences are aligned with a longest common
subsequence table. Matched words keep their timing. Each unmatched run of
new words is spread evenly over the time span of the old words it
replaces, or over the gap between its matched neighbours.

RULES:
- Text is stripped before comparison; an unchanged text returns None
- Matched words keep start/end/score and take the new spelling
- New words get score 1.0 and the segment's speaker
- With no previous words, timings are spread evenly over the segment
- Word end is never before word start
"""

from __future__ import annotations

import dataclasses

from transcript_editor.core.models import Segment, Word


def _lcs_matches(old: list[str], new: list[str]) -> list[tuple[int, int]]:
    rows, cols = len(old), len(new)
    table = [[0] * (cols + 1) for _ in range(rows + 1)]
    for i in range(rows - 1, -1, -1):
        for j in range(cols - 1, -1, -1):
            if old[i] == new[j]:
                table[i][j] = table[i + 1][j + 1] + 1
            else:
                table[i][j] = max(table[i + 1][j], table[i][j + 1])

    matches = []
    i = j = 0
    while i < rows and j < cols:
        if old[i] == new[j]:
            matches.append((i, j))
            i += 1
            j += 1
        elif table[i + 1][j] >= table[i][j + 1]:
            i += 1
        else:
            j += 1
    return matches


def spread_words(texts: list[str], start: float, end: float, speaker: str | None = None) -> list[Word]:
    """Spread word texts evenly over [start, end]."""
    if not texts:
        return []
    step = (end - start) / len(texts)
    return [
        Word(text=text, start=start + i * step, end=start + (i + 1) * step, speaker=speaker, score=1.0)
        for i, text in enumerate(texts)
    ]


def apply_text_update(segment: Segment, text: str) -> Segment | None:
    """Return a copy of the segment with new text and realigned words.

    Returns None when the stripped text equals the current text.
    """
    normalized = text.strip()
    if segment.text == normalized:
        return None

    new_texts = normalized.split()
    old_words = list(segment.words)

    if not old_words or not new_texts:
        words = spread_words(new_texts, segment.start, segment.end, segment.speaker)
        return dataclasses.replace(segment, text=normalized, words=tuple(words))

    updated: list[Word] = []

    def add_region(old_start: int, old_end: int, new_start: int, new_end: int) -> None:
        region = new_texts[new_start:new_end]
        if not region:
            return
        region_start, region_end = segment.start, segment.end
        if old_end > old_start:
            region_start = old_words[old_start].start
            region_end = old_words[old_end - 1].end
        else:
            prev_word = old_words[old_start - 1] if old_start > 0 else None
            next_word = old_words[old_end] if old_end < len(old_words) else None
            if prev_word and next_word:
                region_start, region_end = prev_word.end, next_word.start
            elif prev_word:
                region_start = prev_word.end
            elif next_word:
                region_end = next_word.start
        region_end = max(region_end, region_start)
        updated.extend(spread_words(region, region_start, region_end, segment.speaker))

    old_idx = new_idx = 0
    for old_i, new_i in _lcs_matches([w.text for w in old_words], new_texts):
        add_region(old_idx, old_i, new_idx, new_i)
        updated.append(dataclasses.replace(old_words[old_i], text=new_texts[new_i]))
        old_idx, new_idx = old_i + 1, new_i + 1
    add_region(old_idx, len(old_words), new_idx, len(new_texts))

    return dataclasses.replace(segment, text=normalized, words=tuple(updated))
