from __future__ import annotations


class StreamProxyError(RuntimeError):
    """Remote failure the proxy could not recover from (retries exhausted, bad request, ...)."""


class ExpiredCursorError(StreamProxyError):
    """The shard iterator is no longer valid; a new one must be opened."""
