import asyncio, logging, os
import click
from rich.console import Console
from rich.logging import RichHandler

from ..adapters.manifest_jsonl import JSONLProgressManifest, load_progress
from ..adapters.parquet_sink import ParquetRecordSink
from ..adapters.proxy_boto3 import Boto3StreamProxy
from ..application.consume import consume_splits
from ..application.planning import plan_splits
from ..application.utils import _now_ts_str, _slug
from ..domain.errors import StreamProxyError
from ..domain.models import SplitsAddition, StartingPosition
from ..domain.value_types import StreamArn
from ..reader.split_reader import PollingShardSplitReader, ReaderConfig

console = Console()


def _build_proxy(region: str | None, endpoint_url: str | None) -> Boto3StreamProxy:
    return Boto3StreamProxy(region=region, endpoint_url=endpoint_url)


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(), format="%(message)s", datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
def cli():
    """shardpoll: bounded polling reader for Kinesis-style shards."""


@cli.command("shards")
@click.argument("stream")
@click.option("--region", envvar="SHARDPOLL_REGION", default=None, help="AWS region override")
@click.option("--endpoint-url", envvar="SHARDPOLL_ENDPOINT_URL", default=None, help="e.g. LocalStack URL")
def shards_cmd(stream, region, endpoint_url):
    """List the shard ids of STREAM (name or ARN)."""
    async def run():
        proxy = _build_proxy(region, endpoint_url)
        try:
            return await proxy.list_shards(StreamArn(stream))
        finally:
            await proxy.close()

    try:
        ids = asyncio.run(run())
    except StreamProxyError as e:
        raise click.ClickException(str(e))
    for sid in ids:
        console.print(sid)


@cli.command("tail")
@click.argument("stream")
@click.option("--shard", "shard_ids", multiple=True, help="Shard id; repeat for several (default: all)")
@click.option("--iterator", type=click.Choice(["LATEST", "TRIM_HORIZON"]), default="LATEST",
              show_default=True, help="Where new shards start reading")
@click.option("--region", envvar="SHARDPOLL_REGION", default=None, help="AWS region override")
@click.option("--endpoint-url", envvar="SHARDPOLL_ENDPOINT_URL", default=None, help="e.g. LocalStack URL")
@click.option("--limit", type=int, default=10_000, show_default=True, help="Max records per GetRecords")
@click.option("--concurrency", type=int, default=8, show_default=True, help="Max parallel shard requests")
@click.option("--out-dir", type=str, default="records_parquet", show_default=True)
@click.option("--resume/--no-resume", default=True, show_default=True,
              help="Continue from progress recorded by previous runs in OUT_DIR")
@click.option("--max-cycles", type=int, default=None, help="Stop after this many poll cycles")
@click.option("--poll-interval", type=float, default=0.5, show_default=True,
              help="Seconds to sleep after an empty cycle")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING"], case_sensitive=False),
              default="INFO", show_default=True)
def tail_cmd(stream, shard_ids, iterator, region, endpoint_url, limit, concurrency, out_dir,
             resume, max_cycles, poll_interval, log_level):
    """Consume STREAM into Parquet files, one per non-empty poll cycle."""
    _setup_logging(log_level)
    try:
        config = ReaderConfig(get_records_limit=limit, max_concurrency=concurrency)
    except ValueError as e:
        raise click.UsageError(str(e))

    slug = _slug(stream)
    key_dir = os.path.join(out_dir, slug)
    man_dir = os.path.join(key_dir, "manifests")
    run_tag = f"run_{_now_ts_str()}"

    async def run():
        proxy = _build_proxy(region, endpoint_url)
        try:
            ids = list(shard_ids) or await proxy.list_shards(StreamArn(stream))
        except StreamProxyError:
            await proxy.close()
            raise
        progress = load_progress(man_dir) if resume else {}
        splits = plan_splits(StreamArn(stream), ids, StartingPosition(iterator), progress)
        if not splits:
            await proxy.close()
            return None

        reader = PollingShardSplitReader(proxy, config)
        reader.handle_splits_changes(SplitsAddition(tuple(splits)))
        return await consume_splits(
            reader,
            sink=ParquetRecordSink(key_dir, slug, run_tag),
            manifest=JSONLProgressManifest(os.path.join(man_dir, f"{run_tag}.jsonl")),
            max_cycles=max_cycles,
            idle_sleep_s=poll_interval,
        )

    try:
        res = asyncio.run(run())
    except StreamProxyError as e:
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        console.print("[yellow]interrupted[/]")
        return

    if res is None:
        console.print("[bold]nothing to do[/]: every shard already finished")
        return
    console.print(
        f"[bold]summary[/]: "
        f"cycles={res['cycles']}  "
        f"[green]records[/]={res['records']}  "
        f"[yellow]empty_cycles[/]={res['empty_cycles']}  "
        f"[red]finished_splits[/]={res['finished_splits']}"
    )


if __name__ == "__main__":
    cli()
