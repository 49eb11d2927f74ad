"""Search index protocol."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from memosync.memo import Memo

TITLE_BOOST = 2.0
DEFAULT_MAX_RESULTS = 100

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens. A query with none of them counts as empty."""
    return _TOKEN.findall(text.lower())


@runtime_checkable
class SearchIndex(Protocol):
    """Owner-scoped, denormalized projection of memos.

    Implementations raise IndexUnavailable when the backend cannot be reached.
    """

    @property
    def name(self) -> str: ...

    async def ensure_index(self) -> None:
        """Create the index and its mapping if missing. Idempotent."""
        ...

    async def index(self, memo: Memo) -> None:
        """Upsert by id. Last write wins; staleness is not detected here."""
        ...

    async def delete(self, memo_id: str) -> None:
        """Remove by id. Deleting a missing document is not an error."""
        ...

    async def search(
        self,
        query_text: str,
        tag_filter: str | None,
        owner_id: str,
    ) -> list[Memo]:
        """Ranked memos of owner_id.

        Empty query matches every owned memo, newest first. Otherwise title
        matches weigh TITLE_BOOST times content matches, with updated_at
        descending as the secondary order.
        """
        ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...
