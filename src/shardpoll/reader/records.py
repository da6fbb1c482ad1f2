# shardpoll/reader/records.py
from __future__ import annotations

from typing import Iterable, Iterator, Literal, Mapping, Sequence

from ..domain.models import Record
from ..domain.value_types import SplitId

_State = Literal["before_split", "in_split", "exhausted"]


class RecordBatch:
    """
    Single-pass result of one poll cycle.

    Records are grouped per split, in proxy order. The host alternates
    `next_split()` and `next_record_from_split()` until `next_split()` returns
    None; on a fresh batch `next_record_from_split()` alone reads the first
    split with records. A split finished in this cycle is reported by
    `finished_splits()` once its records in this batch have been drained; a
    split that finished with no records is reported right away.
    """
    __slots__ = ("_entries", "_remaining", "_finished", "_idx", "_pos", "_state")

    def __init__(
        self,
        records_by_split: Mapping[SplitId, Sequence[Record]] | None = None,
        finished: Iterable[SplitId] = (),
    ) -> None:
        # copies only; nothing here points back into the reader's state
        self._entries: list[tuple[SplitId, tuple[Record, ...]]] = [
            (sid, tuple(recs)) for sid, recs in (records_by_split or {}).items() if recs
        ]
        self._remaining: dict[SplitId, int] = {sid: len(recs) for sid, recs in self._entries}
        self._finished: frozenset[SplitId] = frozenset(finished)
        self._idx = -1
        self._pos = 0
        self._state: _State = "before_split"

    @classmethod
    def empty(cls) -> RecordBatch:
        return cls()

    @property
    def record_count(self) -> int:
        return sum(len(recs) for _, recs in self._entries)

    def next_split(self) -> SplitId | None:
        if self._state == "exhausted":
            return None
        if self._state == "in_split":
            sid, recs = self._entries[self._idx]
            if self._pos < len(recs):
                return sid
        self._idx += 1
        self._pos = 0
        if self._idx >= len(self._entries):
            self._state = "exhausted"
            return None
        self._state = "in_split"
        return self._entries[self._idx][0]

    def next_record_from_split(self) -> Record | None:
        # a fresh batch selects its first split on demand
        if self._state == "before_split" and self.next_split() is None:
            return None
        if self._state != "in_split":
            return None
        sid, recs = self._entries[self._idx]
        if self._pos >= len(recs):
            return None
        rec = recs[self._pos]
        self._pos += 1
        self._remaining[sid] -= 1
        return rec

    def finished_splits(self) -> frozenset[SplitId]:
        return frozenset(sid for sid in self._finished if self._remaining.get(sid, 0) == 0)

    def drain(self) -> Iterator[tuple[SplitId, Record]]:
        """Yield every unread (split_id, record) pair in delivery order."""
        while (sid := self.next_split()) is not None:
            while (rec := self.next_record_from_split()) is not None:
                yield sid, rec

    def __repr__(self) -> str:
        return (f"RecordBatch(splits={len(self._entries)}, records={self.record_count}, "
                f"finished={sorted(self._finished)}, state={self._state})")
