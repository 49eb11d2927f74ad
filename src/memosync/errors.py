"""Error taxonomy shared by the adapters and the repository coordinator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


class MemoSyncError(Exception):
    """Base class for all memosync errors."""


class NotFound(MemoSyncError):
    """The memo is absent from the primary store."""

    def __init__(self, memo_id: str) -> None:
        super().__init__(f"Memo not found: {memo_id}")
        self.memo_id = memo_id


class Conflict(MemoSyncError):
    """Compare-and-swap rejected (stale version) or duplicate insert."""

    def __init__(self, memo_id: str, message: str = "stale version") -> None:
        super().__init__(f"Conflict on memo {memo_id}: {message}")
        self.memo_id = memo_id


class AlreadyExists(Conflict):
    """Insert of an id that is already present in the primary store."""

    def __init__(self, memo_id: str) -> None:
        super().__init__(memo_id, "already exists")


class StorageUnavailable(MemoSyncError):
    """Primary store unreachable or timed out. Fatal to the calling operation."""


class CacheUnavailable(MemoSyncError):
    """Cache unreachable or failing. Never surfaced by the repository."""


class IndexUnavailable(MemoSyncError):
    """Search index unreachable. Absorbed on writes, fatal for search."""


class InvalidMemo(MemoSyncError, ValueError):
    """A memo violates one of the entity invariants."""


SecondaryStore = Literal["cache", "index"]


@dataclass(frozen=True)
class DegradedWrite:
    """A primary write succeeded but a secondary store could not be updated.

    Not raised: attached to the successful result and published to listeners
    so the secondary store can be reconciled later.
    """

    store: SecondaryStore
    operation: str
    memo_id: str
    error: str
