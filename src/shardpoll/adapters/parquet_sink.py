from __future__ import annotations
import asyncio, os, pyarrow as pa, pyarrow.parquet as pq
from typing import Iterable

from ..ports.storage import RecordSink
from ..domain.models import Record
from ..domain.value_types import SplitId

RECORD_SCHEMA = pa.schema([
    ("split_id", pa.string()),
    ("sequence_number", pa.string()),
    ("partition_key", pa.string()),
    ("arrival_timestamp", pa.float64()),
    ("data", pa.binary()),
])

def _rows_to_table(rows: Iterable[tuple[SplitId, Record]]) -> pa.Table:
    rs = list(rows)
    return pa.Table.from_arrays(
        arrays=[
            pa.array([sid for sid, _ in rs], pa.string()),
            pa.array([r.sequence_number for _, r in rs], pa.string()),
            pa.array([r.partition_key for _, r in rs], pa.string()),
            pa.array([r.arrival_timestamp for _, r in rs], pa.float64()),
            pa.array([r.data for _, r in rs], pa.binary()),
        ],
        schema=RECORD_SCHEMA,
    )

class ParquetRecordSink(RecordSink):
    """One Parquet file per non-empty poll cycle."""
    def __init__(self, root_dir: str, stream_slug: str, run_tag: str = "run", codec: str = "zstd") -> None:
        self.root = root_dir
        self.stream_slug = stream_slug
        self.run_tag = run_tag
        self.codec = codec
        os.makedirs(self.root, exist_ok=True)

    def path_for(self, cycle: int) -> str:
        fname = f"{self.stream_slug}__{self.run_tag}__cycle_{cycle:08d}.parquet"
        return os.path.join(self.root, fname)

    def _write(self, path: str, table: pa.Table) -> None:
        tmp = path + ".tmp"
        pq.write_table(table, tmp, compression=self.codec)
        os.replace(tmp, path)

    async def write_chunk(self, cycle: int, rows: Iterable[tuple[SplitId, Record]]) -> None:
        table = _rows_to_table(rows)
        if table.num_rows == 0:
            return
        await asyncio.to_thread(self._write, self.path_for(cycle), table)
