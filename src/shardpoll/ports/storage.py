# shardpoll/ports/storage.py
from __future__ import annotations

from typing import Iterable, Protocol
from ..domain.models import ProgressRec, Record
from ..domain.value_types import SplitId


class RecordSink(Protocol):
    """Port for persisting the records drained from one poll cycle (e.g., Parquet)."""

    async def write_chunk(self, cycle: int, rows: Iterable[tuple[SplitId, Record]]) -> None:
        """Persist the rows drained in cycle `cycle`, in drain order."""


class ManifestSink(Protocol):
    """Port for appending per-split progress records (e.g., JSONL manifest)."""

    async def append(self, rec: ProgressRec) -> None:
        """Append a progress record atomically (callers handle ordering/locking)."""
