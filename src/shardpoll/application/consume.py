from __future__ import annotations
import asyncio, logging, time
from typing import Dict

from ..domain.models import ProgressRec, Record
from ..domain.value_types import SplitId, SplitStatus
from ..ports.storage import ManifestSink, RecordSink
from ..reader.split_reader import PollingShardSplitReader

log = logging.getLogger(__name__)


async def consume_splits(
    reader: PollingShardSplitReader,
    *,
    sink: RecordSink | None = None,
    manifest: ManifestSink | None = None,
    max_cycles: int | None = None,
    idle_sleep_s: float = 0.5,
    stop_when_idle: bool = True,
) -> Dict[str, int]:
    """
    Host loop around the reader: fetch, drain, persist, record progress.
    Stops when no split is left (if `stop_when_idle`) or after `max_cycles`.
    The reader is always closed on exit.
    """
    cycles = total_records = empty_cycles = finished_total = 0
    stream_of: dict[str, str] = {}

    async def append_progress(sid: SplitId, status: SplitStatus, n: int, last_seq: str | None) -> None:
        if manifest is None:
            return
        await manifest.append(ProgressRec(
            split_id=sid, stream_arn=stream_of.get(sid, ""), status=status,
            records=n, last_sequence_number=last_seq, updated_at=time.time(),
        ))

    try:
        while max_cycles is None or cycles < max_cycles:
            if stop_when_idle and not reader.active_split_ids():
                log.info("no active splits left, stopping")
                break
            for s in reader.snapshot_state():
                stream_of.setdefault(s.split_id, str(s.stream_arn))

            batch = await reader.fetch()
            cycles += 1

            rows: list[tuple[SplitId, Record]] = list(batch.drain())
            per_split: dict[SplitId, list[Record]] = {}
            for sid, rec in rows:
                per_split.setdefault(sid, []).append(rec)

            if rows and sink is not None:
                await sink.write_chunk(cycles, rows)
            finished = batch.finished_splits()
            for sid, recs in per_split.items():
                if sid not in finished:
                    await append_progress(sid, "active", len(recs), recs[-1].sequence_number)
            for sid in sorted(finished):
                recs = per_split.get(sid, [])
                await append_progress(sid, "finished", len(recs), recs[-1].sequence_number if recs else None)

            total_records += len(rows)
            finished_total += len(finished)
            log.debug("cycle %d: %d record(s), finished=%s", cycles, len(rows), sorted(finished))

            if not rows and not finished:
                empty_cycles += 1
                if idle_sleep_s > 0:
                    await asyncio.sleep(idle_sleep_s)
    finally:
        await reader.close()

    return {
        "cycles": cycles,
        "records": total_records,
        "empty_cycles": empty_cycles,
        "finished_splits": finished_total,
    }
