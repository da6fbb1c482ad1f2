from __future__ import annotations
from typing import Iterable, Mapping
from ..domain.models import ProgressRec, Split, StartingPosition
from ..domain.value_types import StreamArn

def plan_splits(
    stream_arn: StreamArn,
    shard_ids: Iterable[str],
    starting_position: StartingPosition,
    progress: Mapping[str, ProgressRec] | None = None,
) -> list[Split]:
    """Initial assignment: skip shards already finished, resume the rest after their last sequence number."""
    progress = progress or {}
    out: list[Split] = []
    seen: set[str] = set()
    for sid in shard_ids:
        if sid in seen: continue
        seen.add(sid)
        rec = progress.get(sid)
        if rec is not None and rec.status == "finished": continue
        if rec is not None and rec.last_sequence_number:
            pos = StartingPosition.after_sequence_number(rec.last_sequence_number)
        else:
            pos = starting_position
        out.append(Split(stream_arn=stream_arn, shard_id=sid, starting_position=pos))
    return out
