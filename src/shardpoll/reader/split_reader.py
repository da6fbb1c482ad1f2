# shardpoll/reader/split_reader.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable

from ..domain.errors import ExpiredCursorError
from ..domain.models import (
    GetRecordsResult, Record, Split, SplitsAddition, SplitsChange, SplitsRemoval, SplitState,
)
from ..domain.value_types import SplitId
from ..ports.proxy import StreamProxy
from .records import RecordBatch
from .split_state import SplitStateTable

log = logging.getLogger(__name__)

MAX_GET_RECORDS_LIMIT = 10_000


@dataclass(slots=True, frozen=True)
class ReaderConfig:
    get_records_limit: int = MAX_GET_RECORDS_LIMIT
    max_concurrency: int = 8

    def __post_init__(self) -> None:
        if not 1 <= self.get_records_limit <= MAX_GET_RECORDS_LIMIT:
            raise ValueError(f"get_records_limit must be in [1, {MAX_GET_RECORDS_LIMIT}]")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")


class PollingShardSplitReader:
    """
    Polls every active split once per `fetch()` call.

    The host owns the loop: it calls `fetch()` repeatedly, drains the returned
    batch, and stops calling before `close()`. Each call makes at most one
    `get_records` request per split (plus iterator opens), so it never blocks
    beyond the proxy's own I/O.
    """

    def __init__(self, proxy: StreamProxy, config: ReaderConfig | None = None) -> None:
        self.proxy = proxy
        self.config = config or ReaderConfig()
        self._table = SplitStateTable()
        self._closed = False

    def handle_splits_changes(self, change: SplitsChange) -> None:
        if isinstance(change, SplitsAddition):
            self._table.add(change.splits)
        elif isinstance(change, SplitsRemoval):
            self._table.remove(change.split_ids)
        else:
            raise TypeError(f"Unsupported splits change: {type(change).__name__}")

    def remove_splits(self, split_ids: list[SplitId]) -> list[Split]:
        return self._table.remove(split_ids)

    def active_split_ids(self) -> list[SplitId]:
        return self._table.active_ids()

    def snapshot_state(self) -> list[Split]:
        return self._table.snapshot()

    async def fetch(self) -> RecordBatch:
        states = self._table.active()
        if not states:
            return RecordBatch.empty()

        sem = asyncio.Semaphore(self.config.max_concurrency)

        async def poll(state: SplitState) -> GetRecordsResult:
            async with sem:
                return await self._poll_split(state)

        # table is touched only after every request succeeded
        results = await self._poll_all([poll(s) for s in states])

        records_by_split: dict[SplitId, tuple[Record, ...]] = {}
        finished: list[SplitId] = []
        for state, res in zip(states, results):
            if res.records:
                records_by_split[state.split_id] = res.records
                state.last_sequence_number = res.records[-1].sequence_number
            if res.shard_closed:
                self._table.mark_finished(state.split_id)
                finished.append(state.split_id)
            else:
                state.cursor = res.next_cursor

        batch = RecordBatch(records_by_split, finished)
        lags = [r.millis_behind_latest for r in results if r.millis_behind_latest is not None]
        log.debug("fetch: %d split(s) polled, %d record(s), finished=%s, lag_ms=%s",
                  len(states), batch.record_count, finished, max(lags) if lags else None)
        return batch

    @staticmethod
    async def _poll_all(coros: list[Awaitable[GetRecordsResult]]) -> list[GetRecordsResult]:
        """Run the polls of one cycle; on the first failure cancel the rest and wait for them."""
        tasks = [asyncio.ensure_future(c) for c in coros]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            pending = [t for t in tasks if not t.done()]
            for t in pending:
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        errors = [t.exception() for t in tasks if not t.cancelled() and t.exception() is not None]
        if errors:
            raise errors[0]
        return [t.result() for t in tasks]

    async def _poll_split(self, state: SplitState) -> GetRecordsResult:
        split = state.split
        cursor = state.cursor
        if cursor is None:
            cursor = await self.proxy.get_shard_iterator(
                split.stream_arn, split.shard_id, state.current_position())
        try:
            return await self.proxy.get_records(cursor, self.config.get_records_limit)
        except ExpiredCursorError:
            log.info("cursor expired for split %s, reopening at %s",
                     state.split_id, state.current_position())
            cursor = await self.proxy.get_shard_iterator(
                split.stream_arn, split.shard_id, state.current_position())
            return await self.proxy.get_records(cursor, self.config.get_records_limit)

    def wake_up(self) -> None:
        # fetch() is bounded per call; there is nothing to interrupt
        return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.proxy.close()
