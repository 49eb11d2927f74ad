"""Application service: owner-scoped memo use cases on top of the repository.

Callers pass an already-authenticated owner id. A memo owned by someone else
is reported as NotFound, so ids of other owners are not disclosed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from memosync.errors import NotFound
from memosync.memo import Memo
from memosync.repository import MemoRepository

logger = logging.getLogger(__name__)


@dataclass
class SearchPage:
    items: list[Memo] = field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 1


class MemoService:
    def __init__(self, repository: MemoRepository) -> None:
        self.repository = repository

    async def _owned(self, owner_id: str, memo_id: str, *, consistent: bool = False) -> Memo:
        memo = await self.repository.find(memo_id, consistent=consistent)
        if memo is None or memo.owner_id != owner_id:
            raise NotFound(memo_id)
        return memo

    async def create_memo(
        self,
        owner_id: str,
        title: str,
        content: str,
        tags: Iterable[str] = (),
    ) -> Memo:
        memo = Memo.create(title, content, tags, owner_id)
        result = await self.repository.save(memo)
        return result.memo

    async def update_memo(
        self,
        owner_id: str,
        memo_id: str,
        version: int,
        *,
        title: str | None = None,
        content: str | None = None,
        tags: Iterable[str] | None = None,
    ) -> Memo:
        """Apply an edit made against `version`. Raises Conflict if it is stale."""
        # The edit base must come from the primary: unchanged fields of a stale
        # cached copy would otherwise be written back over newer values.
        current = await self._owned(owner_id, memo_id, consistent=True)
        edited = current.edit(title=title, content=content, tags=tags)
        result = await self.repository.save(edited, expected_version=version)
        return result.memo

    async def get_memo(self, owner_id: str, memo_id: str) -> Memo:
        return await self._owned(owner_id, memo_id)

    async def delete_memo(self, owner_id: str, memo_id: str) -> None:
        await self._owned(owner_id, memo_id)
        await self.repository.delete(memo_id)

    async def list_memos(self, owner_id: str) -> list[Memo]:
        """All memos of an owner, most recently updated first."""
        memos = await self.repository.list_by_owner(owner_id)
        return sorted(memos, key=lambda m: m.updated_at, reverse=True)

    async def search_memos(
        self,
        owner_id: str,
        query: str = "",
        tag: str | None = None,
    ) -> SearchPage:
        items = await self.repository.search(query, tag, owner_id)
        return SearchPage(items=items, total=len(items))
