"""Durable queue of degraded writes, shared between processes.

Any process whose repository degrades a write drops one small .jsonl file into
the queue directory:

    <queue_dir>/{timestamp}-{rand}.jsonl   {"memo_id": ..., "store": ..., ...}

The reconcile worker reads the queued memo ids, resyncs them from the primary
store and removes exactly the files it read. Files are written under a
temporary name and renamed, so a reader never sees a half-written entry.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from memosync.errors import DegradedWrite

logger = logging.getLogger(__name__)


class DegradedQueue:
    """Directory-backed queue of DegradedWrite records."""

    def __init__(self, queue_dir: Path) -> None:
        self.queue_dir = Path(queue_dir)
        self.queue_dir.mkdir(parents=True, exist_ok=True)

    def enqueue(self, event: DegradedWrite) -> Path:
        """Persist one degraded write. Usable directly as a degradation listener."""
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        name = f"{ts}-{uuid.uuid4().hex[:8]}.jsonl"
        entry = {
            "memo_id": event.memo_id,
            "store": event.store,
            "operation": event.operation,
            "error": event.error,
            "queued_at": ts,
        }
        tmp_path = self.queue_dir / f".{name}.tmp"
        tmp_path.write_text(json.dumps(entry, ensure_ascii=False) + "\n", encoding="utf-8")
        path = self.queue_dir / name
        tmp_path.rename(path)
        logger.debug("Queued %s of memo %s for repair: %s", event.operation, event.memo_id, path.name)
        return path

    def pending(self) -> dict[str, list[Path]]:
        """Queued memo ids, each with the files that mention it."""
        entries: dict[str, list[Path]] = {}
        for path in sorted(self.queue_dir.glob("*.jsonl")):
            try:
                memo_id = json.loads(path.read_text(encoding="utf-8"))["memo_id"]
            except FileNotFoundError:
                # Acked by another reader since the glob.
                continue
            except (json.JSONDecodeError, KeyError, TypeError, OSError) as e:
                logger.error("Failed to read queue entry %s: %s", path, e)
                continue
            entries.setdefault(memo_id, []).append(path)
        return entries

    def ack(self, paths: list[Path]) -> None:
        """Remove entries that have been reconciled."""
        for path in paths:
            path.unlink(missing_ok=True)

    def __len__(self) -> int:
        return sum(1 for _ in self.queue_dir.glob("*.jsonl"))
