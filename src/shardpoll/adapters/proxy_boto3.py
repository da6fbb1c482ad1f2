# shardpoll/adapters/proxy_boto3.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..domain.errors import ExpiredCursorError, StreamProxyError
from ..domain.models import GetRecordsResult, Record, StartingPosition
from ..domain.value_types import Cursor, StreamArn
from ..ports.proxy import StreamProxy

log = logging.getLogger(__name__)

_THROTTLED = {
    "ProvisionedThroughputExceededException",
    "LimitExceededException",
    "KMSThrottlingException",
}


def _stream_param(stream_arn: str) -> dict[str, str]:
    return {"StreamARN": stream_arn} if stream_arn.startswith("arn:") else {"StreamName": stream_arn}


def _position_params(pos: StartingPosition) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"ShardIteratorType": pos.kind}
    if pos.kind in ("AT_SEQUENCE_NUMBER", "AFTER_SEQUENCE_NUMBER"):
        kwargs["StartingSequenceNumber"] = pos.marker
    elif pos.kind == "AT_TIMESTAMP":
        kwargs["Timestamp"] = float(pos.marker or 0)
    return kwargs


def _to_record(r: dict[str, Any]) -> Record:
    ts = r.get("ApproximateArrivalTimestamp")
    return Record(
        data=bytes(r.get("Data") or b""),
        sequence_number=r["SequenceNumber"],
        partition_key=r.get("PartitionKey") or "",
        arrival_timestamp=ts.timestamp() if hasattr(ts, "timestamp") else ts,
    )


class Boto3StreamProxy(StreamProxy):
    """Kinesis Data Streams proxy on a boto3 client; blocking calls run in a worker thread."""

    def __init__(
        self,
        client: Any = None,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        max_attempts: int = 3,
        backoff_s: float = 1.0,
    ) -> None:
        self.client = client or boto3.client("kinesis", region_name=region, endpoint_url=endpoint_url)
        self.max_attempts = max_attempts
        self.backoff_s = backoff_s

    async def _call(self, op: str, **kwargs: Any) -> dict[str, Any]:
        fn = getattr(self.client, op)
        for attempt in range(self.max_attempts):
            try:
                return await asyncio.to_thread(fn, **kwargs)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "")
                if code == "ExpiredIteratorException":
                    raise ExpiredCursorError(str(e)) from e
                if code in _THROTTLED and attempt + 1 < self.max_attempts:
                    delay = self.backoff_s * (2 ** attempt)
                    log.warning("%s throttled (%s), retrying in %.1fs", op, code, delay)
                    await asyncio.sleep(delay); continue
                raise StreamProxyError(f"{op} failed: code={code} message={e}") from e
            except BotoCoreError as e:
                raise StreamProxyError(f"{op} failed: {e}") from e
        raise StreamProxyError(f"Retries exhausted for {op}")

    async def get_shard_iterator(self, stream_arn: StreamArn, shard_id: str,
                                 starting_position: StartingPosition) -> Cursor:
        resp = await self._call(
            "get_shard_iterator",
            ShardId=shard_id,
            **_stream_param(str(stream_arn)),
            **_position_params(starting_position),
        )
        return Cursor(resp["ShardIterator"])

    async def get_records(self, cursor: Cursor, limit: int) -> GetRecordsResult:
        resp = await self._call("get_records", ShardIterator=cursor, Limit=limit)
        nxt = resp.get("NextShardIterator")
        return GetRecordsResult(
            records=tuple(_to_record(r) for r in resp.get("Records", [])),
            next_cursor=Cursor(nxt) if nxt else None,
            millis_behind_latest=resp.get("MillisBehindLatest"),
        )

    async def list_shards(self, stream_arn: StreamArn) -> list[str]:
        """All shard ids of the stream, paging through ListShards."""
        out: list[str] = []
        resp = await self._call("list_shards", **_stream_param(str(stream_arn)))
        while True:
            out.extend(s["ShardId"] for s in resp.get("Shards", []))
            token = resp.get("NextToken")
            if not token:
                return out
            resp = await self._call("list_shards", NextToken=token)

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)
