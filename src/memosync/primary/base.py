"""Primary store protocol and compare-and-swap result type."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from memosync.memo import Memo


class CasStatus(enum.Enum):
    APPLIED = "applied"
    VERSION_MISMATCH = "version_mismatch"
    MISSING = "missing"


@dataclass(frozen=True)
class CasResult:
    """Outcome of `update_if_version`.

    A version mismatch is a routine concurrent-edit outcome, so it is reported
    as a value. Store faults are raised as StorageUnavailable instead.
    """

    status: CasStatus
    memo: Memo | None = None
    current_version: int | None = None

    @property
    def applied(self) -> bool:
        return self.status is CasStatus.APPLIED


@runtime_checkable
class PrimaryStore(Protocol):
    """Protocol that all primary store backends must implement."""

    @property
    def name(self) -> str: ...

    async def get(self, memo_id: str) -> Memo | None:
        """Point lookup by id. Must read-your-writes."""
        ...

    async def list_by_owner(self, owner_id: str) -> list[Memo]:
        """All memos owned by a principal, in no particular order."""
        ...

    async def insert(self, memo: Memo) -> None:
        """Insert a new memo. Raises AlreadyExists if the id is taken."""
        ...

    async def update_if_version(self, memo: Memo, expected_version: int) -> CasResult:
        """Atomically apply memo's mutable fields and version = expected_version + 1,
        only if the stored version equals expected_version.
        """
        ...

    async def delete(self, memo_id: str) -> None:
        """Unconditional, idempotent delete."""
        ...

    async def exists(self, memo_id: str) -> bool: ...

    async def ping(self) -> bool:
        """Check if the store is reachable. Returns True if healthy."""
        ...

    async def close(self) -> None: ...
