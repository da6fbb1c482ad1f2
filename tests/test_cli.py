import os

import pyarrow.parquet as pq
import pytest
from click.testing import CliRunner

from shardpoll.adapters.proxy_memory import InMemoryStreamProxy
from shardpoll.domain.errors import StreamProxyError
from shardpoll.domain.models import Record
from shardpoll.presentation import cli as cli_mod


@pytest.fixture
def proxy(monkeypatch):
    proxy = InMemoryStreamProxy()
    proxy.add_shards("shardId-000000000000", "shardId-000000000001")
    monkeypatch.setattr(cli_mod, "_build_proxy", lambda region, endpoint_url: proxy)
    return proxy


def test_shards_lists_ids(proxy):
    result = CliRunner().invoke(cli_mod.cli, ["shards", "orders"])
    assert result.exit_code == 0, result.output
    assert result.output.split() == ["shardId-000000000000", "shardId-000000000001"]
    assert proxy.is_closed()


def test_tail_writes_parquet_and_resumes(proxy, tmp_path):
    proxy.add_records("orders", "shardId-000000000000", [Record(b"a", "1"), Record(b"b", "2")])
    args = ["tail", "orders", "--iterator", "TRIM_HORIZON", "--out-dir", str(tmp_path),
            "--max-cycles", "2", "--poll-interval", "0", "--log-level", "WARNING"]

    result = CliRunner().invoke(cli_mod.cli, args)
    assert result.exit_code == 0, result.output
    assert "records=2" in result.output

    key_dir = tmp_path / "orders"
    files = sorted(f for f in os.listdir(key_dir) if f.endswith(".parquet"))
    assert len(files) == 1
    assert pq.read_table(key_dir / files[0]).column("data").to_pylist() == [b"a", b"b"]
    assert len(os.listdir(key_dir / "manifests")) == 1

    # a second run resumes after sequence "2" and finds nothing new
    result = CliRunner().invoke(cli_mod.cli, args)
    assert result.exit_code == 0, result.output
    assert "records=0" in result.output


def test_tail_with_explicit_shard_and_finished_stream(proxy, tmp_path):
    proxy.add_records("orders", "shardId-000000000001", [Record(b"x", "9")])
    proxy.set_should_complete_next_shard(True)
    args = ["tail", "orders", "--shard", "shardId-000000000001", "--iterator", "TRIM_HORIZON",
            "--out-dir", str(tmp_path), "--poll-interval", "0", "--log-level", "WARNING"]

    result = CliRunner().invoke(cli_mod.cli, args)
    assert result.exit_code == 0, result.output
    assert "finished_splits=1" in result.output

    result = CliRunner().invoke(cli_mod.cli, args)
    assert result.exit_code == 0, result.output
    assert "nothing to do" in result.output


def test_tail_rejects_bad_limit(proxy, tmp_path):
    result = CliRunner().invoke(cli_mod.cli, ["tail", "orders", "--limit", "0", "--out-dir", str(tmp_path)])
    assert result.exit_code == 2
    assert "get_records_limit" in result.output


def test_tail_reports_proxy_errors(proxy, tmp_path):
    proxy.fail_next(StreamProxyError("AccessDenied"))
    result = CliRunner().invoke(cli_mod.cli, ["tail", "orders", "--out-dir", str(tmp_path),
                                              "--poll-interval", "0", "--log-level", "WARNING"])
    assert result.exit_code == 1
    assert "AccessDenied" in result.output
