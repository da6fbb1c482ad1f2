import re
from datetime import datetime, timezone


def _slug(stream_arn: str) -> str:
    # arn:aws:kinesis:us-east-1:123456789012:stream/orders -> orders
    name = stream_arn.rsplit("/", 1)[-1] if stream_arn.startswith("arn:") else stream_arn
    return re.sub(r"[^A-Za-z0-9_.-]+", "-", name).strip("-").lower() or "stream"


def _now_ts_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y_%m_%d_%H%M%S")
