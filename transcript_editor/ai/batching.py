"""Batch slicing, segment filtering, and prompt id mapping.

WHY: Every AI feature sends a long transcript to a model in bounded
chunks, and smaller models handle "1, 2, 3" far better than opaque uuids.
These helpers are shared by all features so batching behaves identically.

HOW: filter_segments() applies the scope filters, slice_batches() cuts the
target list into Batch records, and BatchIdMapping translates between
1-based prompt ids and real segment ids.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from transcript_editor.core.models import Segment

T = TypeVar("T")


@dataclass(frozen=True)
class Batch(Generic[T]):
    """One slice of a run's targets. index is 0-based."""

    index: int
    total_batches: int
    items: tuple[T, ...]

    @property
    def number(self) -> int:
        return self.index + 1

    def __len__(self) -> int:
        return len(self.items)


def slice_batches(items: Sequence[T], batch_size: int) -> list[Batch[T]]:
    """Cut items into consecutive batches of at most batch_size."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    chunks = [tuple(items[i: i + batch_size]) for i in range(0, len(items), batch_size)]
    return [Batch(index=i, total_batches=len(chunks), items=chunk) for i, chunk in enumerate(chunks)]


@dataclass(frozen=True)
class TargetFilter:
    """Which segments a run should look at.

    An explicit segment_ids scope wins over the speaker filter. Speaker
    names match case-insensitively; an empty speaker list means all.
    """

    speakers: tuple[str, ...] = ()
    exclude_confirmed: bool = False
    segment_ids: tuple[str, ...] = ()

    @classmethod
    def from_options(cls, options: dict[str, Any] | None) -> "TargetFilter":
        options = options or {}
        return cls(
            speakers=tuple(options.get("speakers") or ()),
            exclude_confirmed=bool(options.get("exclude_confirmed", False)),
            segment_ids=tuple(options.get("segment_ids") or ()),
        )


def filter_segments(segments: Iterable[Segment], target: TargetFilter) -> list[Segment]:
    if target.segment_ids:
        wanted = set(target.segment_ids)
        scoped = [s for s in segments if s.id in wanted]
    else:
        scoped = list(segments)
    speakers = {name.casefold() for name in target.speakers}
    return [
        s
        for s in scoped
        if not (target.exclude_confirmed and s.confirmed)
        and (not speakers or s.speaker.casefold() in speakers)
    ]


@dataclass
class BatchIdMapping:
    """1-based prompt ids ↔ real ids for one batch."""

    simple_to_real: dict[int, str] = field(default_factory=dict)
    real_to_simple: dict[str, int] = field(default_factory=dict)

    @classmethod
    def for_ids(cls, ids: Iterable[str]) -> "BatchIdMapping":
        mapping = cls()
        for simple_id, real_id in enumerate(ids, start=1):
            mapping.simple_to_real[simple_id] = real_id
            mapping.real_to_simple[real_id] = simple_id
        return mapping

    def to_real(self, value: Any) -> str | None:
        """Resolve a model-supplied id (int, numeric string, or real id)."""
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)) and float(value).is_integer():
            return self.simple_to_real.get(int(value))
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.isdigit():
                return self.simple_to_real.get(int(stripped))
            if stripped in self.real_to_simple:
                return stripped
        return None
