from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Union
from .value_types import Cursor, PositionKind, SplitId, SplitStatus, StreamArn

_NEEDS_MARKER = ("AT_SEQUENCE_NUMBER", "AFTER_SEQUENCE_NUMBER", "AT_TIMESTAMP")


@dataclass(slots=True, frozen=True)
class StartingPosition:
    kind: PositionKind = "TRIM_HORIZON"
    marker: str | None = None   # sequence number, or epoch seconds for AT_TIMESTAMP

    def __post_init__(self) -> None:
        if self.kind in _NEEDS_MARKER and not self.marker:
            raise ValueError(f"{self.kind} requires a marker")

    @classmethod
    def latest(cls) -> StartingPosition: return cls("LATEST")

    @classmethod
    def trim_horizon(cls) -> StartingPosition: return cls("TRIM_HORIZON")

    @classmethod
    def after_sequence_number(cls, seq: str) -> StartingPosition:
        return cls("AFTER_SEQUENCE_NUMBER", seq)

    @classmethod
    def at_timestamp(cls, ts: float) -> StartingPosition:
        return cls("AT_TIMESTAMP", str(ts))


@dataclass(slots=True, frozen=True)
class Split:
    stream_arn: StreamArn
    shard_id: str
    starting_position: StartingPosition = StartingPosition()

    @property
    def split_id(self) -> SplitId: return SplitId(self.shard_id)


@dataclass(slots=True, frozen=True)
class Record:
    data: bytes
    sequence_number: str
    partition_key: str = ""
    arrival_timestamp: float | None = None


@dataclass(slots=True, frozen=True)
class GetRecordsResult:
    records: tuple[Record, ...]
    next_cursor: Cursor | None          # None: shard closed, nothing more will ever arrive
    millis_behind_latest: int | None = None

    @property
    def shard_closed(self) -> bool: return self.next_cursor is None


@dataclass(slots=True)
class SplitState:
    """Mutable consumption state of one assigned split."""
    split: Split
    cursor: Cursor | None = None
    last_sequence_number: str | None = None
    status: SplitStatus = "active"

    @property
    def split_id(self) -> SplitId: return self.split.split_id

    def current_position(self) -> StartingPosition:
        if self.last_sequence_number is not None:
            return StartingPosition.after_sequence_number(self.last_sequence_number)
        return self.split.starting_position

    def snapshot(self) -> Split:
        return replace(self.split, starting_position=self.current_position())


@dataclass(slots=True, frozen=True)
class SplitsAddition:
    splits: tuple[Split, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class SplitsRemoval:
    split_ids: tuple[SplitId, ...] = field(default_factory=tuple)


SplitsChange = Union[SplitsAddition, SplitsRemoval]


@dataclass(slots=True, frozen=True)
class ProgressRec:
    split_id: str
    stream_arn: str
    status: SplitStatus = "active"
    records: int = 0
    last_sequence_number: str | None = None
    updated_at: float = 0.0
