from __future__ import annotations
from typing import NewType, Literal

SplitId   = NewType("SplitId", str)     # shard id, e.g. shardId-000000000001
Cursor    = NewType("Cursor", str)      # opaque shard iterator token
StreamArn = NewType("StreamArn", str)   # ARN or plain stream name
SplitStatus  = Literal["active", "finished"]
PositionKind = Literal[
    "LATEST", "TRIM_HORIZON", "AT_SEQUENCE_NUMBER", "AFTER_SEQUENCE_NUMBER", "AT_TIMESTAMP",
]
