# shardpoll/adapters/proxy_memory.py
from __future__ import annotations

import itertools
from typing import Iterable

from ..domain.errors import ExpiredCursorError, StreamProxyError
from ..domain.models import GetRecordsResult, Record, StartingPosition
from ..domain.value_types import Cursor, StreamArn
from ..ports.proxy import StreamProxy


class InMemoryStreamProxy(StreamProxy):
    """
    Shard simulator with no network behind it.

    Each `add_records` call queues one proxy response for a shard; every
    `get_records` hands out the next queued response (or an empty one when the
    queue is drained). `set_should_complete_next_shard(True)` makes the next
    `get_records` report the shard as closed.
    """
    def __init__(self) -> None:
        self._shards: dict[tuple[str, str], list[list[Record]]] = {}
        self._cursors: dict[Cursor, tuple[str, str, int, int]] = {}
        self._tokens = itertools.count()
        self._complete_next = False
        self._fail_next: Exception | None = None
        self._fail_times = 0
        self.closed = False
        self.iterator_calls = 0
        self.get_records_calls = 0

    # ── setup ──
    def add_shards(self, *shard_ids: str, stream_arn: str = "") -> None:
        for sid in shard_ids:
            self._shards.setdefault((stream_arn, sid), [])

    def add_records(self, stream_arn: str, shard_id: str, records: Iterable[Record]) -> None:
        self._queue(stream_arn, shard_id).append(list(records))

    def set_should_complete_next_shard(self, value: bool) -> None:
        self._complete_next = value

    def expire_cursors(self) -> None:
        self._cursors.clear()

    def fail_next(self, exc: Exception, times: int = 1) -> None:
        self._fail_next, self._fail_times = exc, times

    def is_closed(self) -> bool:
        return self.closed

    # ── port ──
    async def get_shard_iterator(self, stream_arn: StreamArn, shard_id: str,
                                 starting_position: StartingPosition) -> Cursor:
        self.iterator_calls += 1
        batches = self._queue(stream_arn, shard_id)
        kind = starting_position.kind
        if kind == "LATEST":
            pos = (len(batches), 0)
        elif kind in ("AT_SEQUENCE_NUMBER", "AFTER_SEQUENCE_NUMBER"):
            pos = self._locate(batches, str(starting_position.marker), after=kind == "AFTER_SEQUENCE_NUMBER")
        elif kind == "AT_TIMESTAMP":
            ts = float(starting_position.marker or 0)
            pos = next(((b, i) for b, recs in enumerate(batches) for i, r in enumerate(recs)
                        if (r.arrival_timestamp or 0) >= ts), (len(batches), 0))
        else:
            pos = (0, 0)
        return self._issue(str(stream_arn), shard_id, *pos)

    async def get_records(self, cursor: Cursor, limit: int) -> GetRecordsResult:
        self.get_records_calls += 1
        if self._fail_next is not None and self._fail_times > 0:
            self._fail_times -= 1
            raise self._fail_next
        try:
            stream, shard, b, i = self._cursors.pop(cursor)
        except KeyError:
            raise ExpiredCursorError(f"unknown or expired cursor {cursor!r}") from None
        batches = self._queue(stream, shard)
        recs = batches[b][i:i + limit] if b < len(batches) else []
        if b < len(batches) and i + len(recs) >= len(batches[b]):
            b, i = b + 1, 0
        elif recs:
            i += len(recs)
        if self._complete_next:
            self._complete_next = False
            return GetRecordsResult(tuple(recs), None)
        return GetRecordsResult(tuple(recs), self._issue(stream, shard, b, i))

    async def list_shards(self, stream_arn: StreamArn) -> list[str]:
        return [sid for (stream, sid) in self._shards if stream in ("", str(stream_arn))]

    async def close(self) -> None:
        self.closed = True

    # ── internals ──
    def _queue(self, stream_arn: str, shard_id: str) -> list[list[Record]]:
        key = (str(stream_arn), shard_id)
        if key not in self._shards:
            # shards added without a stream are visible from any stream
            fallback = ("", shard_id)
            if fallback in self._shards:
                return self._shards[fallback]
            raise StreamProxyError(f"ResourceNotFound: shard {shard_id} of {stream_arn}")
        return self._shards[key]

    def _issue(self, stream: str, shard: str, b: int, i: int) -> Cursor:
        cur = Cursor(f"mem-{next(self._tokens)}")
        self._cursors[cur] = (stream, shard, b, i)
        return cur

    @staticmethod
    def _locate(batches: list[list[Record]], seq: str, *, after: bool) -> tuple[int, int]:
        for b, recs in enumerate(batches):
            for i, r in enumerate(recs):
                if r.sequence_number == seq:
                    if not after:
                        return (b, i)
                    return (b, i + 1) if i + 1 < len(recs) else (b + 1, 0)
        return (len(batches), 0)
