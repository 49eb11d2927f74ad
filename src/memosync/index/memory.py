"""In-process search index with term-frequency ranking."""

from __future__ import annotations

from memosync.index.base import DEFAULT_MAX_RESULTS, TITLE_BOOST, tokenize
from memosync.memo import Memo


def score(memo: Memo, terms: list[str]) -> float:
    """Title hits count TITLE_BOOST times a content hit."""
    title = tokenize(memo.title)
    content = tokenize(memo.content)
    return sum(TITLE_BOOST * title.count(t) + content.count(t) for t in terms)


class InMemorySearchIndex:
    """Dict-backed index mirroring the OpenSearch query semantics."""

    def __init__(self, max_results: int = DEFAULT_MAX_RESULTS) -> None:
        self.max_results = max_results
        self._docs: dict[str, Memo] = {}

    @property
    def name(self) -> str:
        return "memory"

    async def ensure_index(self) -> None:
        pass

    async def index(self, memo: Memo) -> None:
        self._docs[memo.id] = memo

    async def delete(self, memo_id: str) -> None:
        self._docs.pop(memo_id, None)

    async def search(
        self,
        query_text: str,
        tag_filter: str | None,
        owner_id: str,
    ) -> list[Memo]:
        candidates = [
            m
            for m in self._docs.values()
            if m.owner_id == owner_id and (tag_filter is None or tag_filter in m.tags)
        ]
        terms = tokenize(query_text)
        if not terms:
            candidates.sort(key=lambda m: m.updated_at, reverse=True)
            return candidates[: self.max_results]

        scored = [(score(m, terms), m) for m in candidates]
        hits = [(s, m) for s, m in scored if s > 0]
        hits.sort(key=lambda pair: (pair[0], pair[1].updated_at), reverse=True)
        return [m for _, m in hits[: self.max_results]]

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass
