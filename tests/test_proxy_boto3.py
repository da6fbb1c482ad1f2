from datetime import datetime, timezone

import boto3
import pytest
from botocore.stub import Stubber

from shardpoll.adapters.proxy_boto3 import Boto3StreamProxy
from shardpoll.domain.errors import ExpiredCursorError, StreamProxyError
from shardpoll.domain.models import StartingPosition
from shardpoll.domain.value_types import Cursor, StreamArn

ARN = StreamArn("arn:aws:kinesis:us-east-1:000000000000:stream/orders")


@pytest.fixture
def client():
    return boto3.client(
        "kinesis",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(client):
    with Stubber(client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def proxy(client, stubber):
    return Boto3StreamProxy(client, max_attempts=3, backoff_s=0)


@pytest.mark.asyncio
async def test_get_shard_iterator_by_arn_and_sequence(proxy, stubber):
    stubber.add_response(
        "get_shard_iterator",
        {"ShardIterator": "it-1"},
        {
            "StreamARN": str(ARN),
            "ShardId": "shardId-000000000001",
            "ShardIteratorType": "AFTER_SEQUENCE_NUMBER",
            "StartingSequenceNumber": "49590338271490256608559692538361571095921575989136588898",
        },
    )
    cur = await proxy.get_shard_iterator(
        ARN, "shardId-000000000001",
        StartingPosition.after_sequence_number(
            "49590338271490256608559692538361571095921575989136588898"),
    )
    assert cur == "it-1"


@pytest.mark.asyncio
async def test_get_shard_iterator_by_stream_name(proxy, stubber):
    stubber.add_response(
        "get_shard_iterator",
        {"ShardIterator": "it-2"},
        {"StreamName": "orders", "ShardId": "shardId-000000000001", "ShardIteratorType": "LATEST"},
    )
    assert await proxy.get_shard_iterator(
        StreamArn("orders"), "shardId-000000000001", StartingPosition.latest()) == "it-2"


@pytest.mark.asyncio
async def test_get_records_maps_records_and_cursor(proxy, stubber):
    ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
    stubber.add_response(
        "get_records",
        {
            "Records": [
                {"Data": b"hello", "SequenceNumber": "1", "PartitionKey": "pk-1",
                 "ApproximateArrivalTimestamp": ts},
                {"Data": b"world", "SequenceNumber": "2", "PartitionKey": "pk-2"},
            ],
            "NextShardIterator": "it-next",
            "MillisBehindLatest": 0,
        },
        {"ShardIterator": "it-1", "Limit": 100},
    )
    res = await proxy.get_records(Cursor("it-1"), 100)

    assert [r.data for r in res.records] == [b"hello", b"world"]
    assert [r.sequence_number for r in res.records] == ["1", "2"]
    assert res.records[0].arrival_timestamp == ts.timestamp()
    assert res.records[1].arrival_timestamp is None
    assert res.next_cursor == "it-next"
    assert res.millis_behind_latest == 0
    assert not res.shard_closed


@pytest.mark.asyncio
async def test_missing_next_iterator_means_shard_closed(proxy, stubber):
    stubber.add_response("get_records", {"Records": []}, {"ShardIterator": "it-1", "Limit": 10})
    res = await proxy.get_records(Cursor("it-1"), 10)
    assert res.shard_closed
    assert res.records == ()


@pytest.mark.asyncio
async def test_throttling_is_retried(proxy, stubber):
    params = {"ShardIterator": "it-1", "Limit": 10}
    stubber.add_client_error("get_records", "ProvisionedThroughputExceededException",
                             expected_params=params)
    stubber.add_response("get_records", {"Records": [], "NextShardIterator": "it-2"}, params)

    res = await proxy.get_records(Cursor("it-1"), 10)
    assert res.next_cursor == "it-2"


@pytest.mark.asyncio
async def test_throttling_gives_up_after_max_attempts(proxy, stubber):
    params = {"ShardIterator": "it-1", "Limit": 10}
    for _ in range(3):
        stubber.add_client_error("get_records", "LimitExceededException", expected_params=params)

    with pytest.raises(StreamProxyError):
        await proxy.get_records(Cursor("it-1"), 10)


@pytest.mark.asyncio
async def test_expired_iterator_maps_to_expired_cursor(proxy, stubber):
    stubber.add_client_error("get_records", "ExpiredIteratorException",
                             expected_params={"ShardIterator": "it-1", "Limit": 10})
    with pytest.raises(ExpiredCursorError):
        await proxy.get_records(Cursor("it-1"), 10)


@pytest.mark.asyncio
async def test_other_client_errors_are_not_retried(proxy, stubber):
    stubber.add_client_error("get_records", "ResourceNotFoundException",
                             expected_params={"ShardIterator": "it-1", "Limit": 10})
    with pytest.raises(StreamProxyError, match="ResourceNotFoundException"):
        await proxy.get_records(Cursor("it-1"), 10)


@pytest.mark.asyncio
async def test_list_shards_pages(proxy, stubber):
    stubber.add_response(
        "list_shards",
        {"Shards": [_shard("shardId-000000000000")], "NextToken": "page-2"},
        {"StreamARN": str(ARN)},
    )
    stubber.add_response(
        "list_shards",
        {"Shards": [_shard("shardId-000000000001")]},
        {"NextToken": "page-2"},
    )
    assert await proxy.list_shards(ARN) == ["shardId-000000000000", "shardId-000000000001"]


@pytest.mark.asyncio
async def test_close_closes_client():
    class FakeClient:
        closed = False

        def close(self):
            self.closed = True

    client = FakeClient()
    proxy = Boto3StreamProxy(client)
    await proxy.close()
    assert client.closed


def _shard(shard_id: str) -> dict:
    return {
        "ShardId": shard_id,
        "HashKeyRange": {"StartingHashKey": "0", "EndingHashKey": "1"},
        "SequenceNumberRange": {"StartingSequenceNumber": "0"},
    }
