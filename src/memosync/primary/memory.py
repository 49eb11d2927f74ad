"""In-process primary store. Used in tests and for local development."""

from __future__ import annotations

import logging
from dataclasses import replace

from memosync.errors import AlreadyExists
from memosync.memo import Memo, advance_timestamp
from memosync.primary.base import CasResult, CasStatus

logger = logging.getLogger(__name__)


def apply_update(stored: Memo, memo: Memo, expected_version: int) -> Memo:
    """Post-image of a CAS update: mutable fields from `memo`, identity from `stored`."""
    return replace(
        stored,
        title=memo.title,
        content=memo.content,
        tags=memo.tags,
        updated_at=advance_timestamp(stored.created_at, stored.updated_at, memo.updated_at),
        version=expected_version + 1,
    )


class InMemoryPrimaryStore:
    """Dict-backed primary store.

    Compare and swap happen without an intervening await, so each CAS is atomic
    with respect to every other coroutine on the loop.
    """

    def __init__(self) -> None:
        self._rows: dict[str, Memo] = {}

    @property
    def name(self) -> str:
        return "memory"

    async def get(self, memo_id: str) -> Memo | None:
        return self._rows.get(memo_id)

    async def list_by_owner(self, owner_id: str) -> list[Memo]:
        return [m for m in self._rows.values() if m.owner_id == owner_id]

    async def insert(self, memo: Memo) -> None:
        if memo.id in self._rows:
            raise AlreadyExists(memo.id)
        self._rows[memo.id] = memo

    async def update_if_version(self, memo: Memo, expected_version: int) -> CasResult:
        stored = self._rows.get(memo.id)
        if stored is None:
            return CasResult(CasStatus.MISSING)
        if stored.version != expected_version:
            logger.debug(
                "CAS rejected for %s: expected v%d, stored v%d",
                memo.id,
                expected_version,
                stored.version,
            )
            return CasResult(CasStatus.VERSION_MISMATCH, current_version=stored.version)
        updated = apply_update(stored, memo, expected_version)
        self._rows[memo.id] = updated
        return CasResult(CasStatus.APPLIED, memo=updated, current_version=updated.version)

    async def delete(self, memo_id: str) -> None:
        self._rows.pop(memo_id, None)

    async def exists(self, memo_id: str) -> bool:
        return memo_id in self._rows

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass
