# shardpoll/reader/split_state.py
from __future__ import annotations

import logging
from typing import Iterable

from ..domain.models import Split, SplitState
from ..domain.value_types import SplitId

log = logging.getLogger(__name__)


class SplitStateTable:
    """Active splits of one reader, keyed by split id. Not shared, not locked."""

    def __init__(self) -> None:
        self._states: dict[SplitId, SplitState] = {}
        self._finished: set[SplitId] = set()

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, split_id: object) -> bool:
        return split_id in self._states

    def add(self, splits: Iterable[Split]) -> None:
        for split in splits:
            sid = split.split_id
            if sid in self._finished:
                log.warning("ignoring split %s: already finished by this reader", sid)
                continue
            self._states[sid] = SplitState(split=split)
            log.info("split %s added at %s", sid, split.starting_position.kind)

    def remove(self, split_ids: Iterable[SplitId]) -> list[Split]:
        """Drop unfinished splits; returns their current positions for reassignment."""
        out: list[Split] = []
        for sid in split_ids:
            state = self._states.pop(sid, None)
            if state is None:
                continue
            out.append(state.snapshot())
            log.info("split %s removed", sid)
        return out

    def mark_finished(self, split_id: SplitId) -> None:
        state = self._states.pop(split_id, None)
        if state is not None:
            state.status = "finished"
        self._finished.add(split_id)
        log.info("split %s finished", split_id)

    def active(self) -> list[SplitState]:
        return list(self._states.values())

    def active_ids(self) -> list[SplitId]:
        return list(self._states)

    def snapshot(self) -> list[Split]:
        return [s.snapshot() for s in self._states.values()]
