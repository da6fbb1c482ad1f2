# shardpoll/ports/proxy.py
from __future__ import annotations

from typing import Protocol
from ..domain.models import GetRecordsResult, StartingPosition
from ..domain.value_types import Cursor, StreamArn


class StreamProxy(Protocol):
    """Port for the remote stream service. Owns connections and retries."""

    async def get_shard_iterator(
        self,
        stream_arn: StreamArn,
        shard_id: str,
        starting_position: StartingPosition,
    ) -> Cursor:
        """Open a cursor on the shard at the given position."""

    async def get_records(self, cursor: Cursor, limit: int) -> GetRecordsResult:
        """Return the next batch after `cursor`; `next_cursor is None` once the shard is closed.

        Raises ExpiredCursorError when `cursor` is no longer valid."""

    async def close(self) -> None:
        """Release the underlying connection."""
