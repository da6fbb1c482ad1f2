from __future__ import annotations
import os, json, asyncio
from dataclasses import asdict
from ..ports.storage import ManifestSink
from ..domain.models import ProgressRec

class JSONLProgressManifest(ManifestSink):
    """Per-run progress log: one compact JSON object per line, unset fields omitted."""
    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        open(self.path, "a").close()   # an empty run still leaves its file behind
        self._lock = asyncio.Lock()
        self.lines = 0

    @staticmethod
    def _encode(rec: ProgressRec) -> str:
        fields = {k: v for k, v in asdict(rec).items() if v is not None}
        return json.dumps(fields, separators=(",", ":")) + "\n"

    @staticmethod
    def _write_line(path: str, line: str) -> None:
        with open(path, "a", buffering=1) as f:
            f.write(line); os.fsync(f.fileno())

    async def append(self, rec: ProgressRec) -> None:
        line = self._encode(rec)
        async with self._lock:
            await asyncio.to_thread(self._write_line, self.path, line)
            self.lines += 1


def _manifest_files(path: str) -> list[str]:
    if os.path.isfile(path):
        return [path]
    if not os.path.isdir(path):
        return []
    return sorted(os.path.join(path, n) for n in os.listdir(path) if n.endswith(".jsonl"))


def load_progress(path: str) -> dict[str, ProgressRec]:
    """
    Latest progress per split across one manifest file or every *.jsonl in a directory.
    Files are read in name order (run files are timestamped); later lines win,
    and a finished record is never overridden.
    """
    latest: dict[str, ProgressRec] = {}
    for fpath in _manifest_files(path):
        with open(fpath, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    rec = ProgressRec(**json.loads(line))
                except (ValueError, TypeError):
                    # torn or foreign line
                    continue
                prev = latest.get(rec.split_id)
                if prev is not None and prev.status == "finished":
                    continue
                if rec.last_sequence_number is None and prev is not None:
                    rec = ProgressRec(rec.split_id, rec.stream_arn, rec.status, rec.records,
                                      prev.last_sequence_number, rec.updated_at)
                latest[rec.split_id] = rec
    return latest
