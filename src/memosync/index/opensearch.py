"""OpenSearch / Elasticsearch-compatible index adapter (opensearch-py async client).

Documents are keyed by memo id. Owner and tag are exact keyword filters;
relevance comes only from the title/content should-clauses.
"""

from __future__ import annotations

import logging
from typing import Any

from opensearchpy import AsyncOpenSearch
from opensearchpy.exceptions import NotFoundError, OpenSearchException, RequestError

from memosync.errors import IndexUnavailable, InvalidMemo
from memosync.index.base import DEFAULT_MAX_RESULTS, TITLE_BOOST, tokenize
from memosync.memo import Memo

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "memos"

INDEX_BODY: dict[str, Any] = {
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "title": {
                "type": "text",
                "analyzer": "standard",
                "fields": {"keyword": {"type": "keyword"}},
            },
            "content": {"type": "text", "analyzer": "standard"},
            "tags": {"type": "keyword"},
            "owner_id": {"type": "keyword"},
            "created_at": {"type": "date"},
            "updated_at": {"type": "date"},
            "version": {"type": "integer"},
        }
    },
    "settings": {"number_of_shards": 1, "number_of_replicas": 1},
}


def build_query(
    query_text: str,
    tag_filter: str | None,
    owner_id: str,
    size: int = DEFAULT_MAX_RESULTS,
) -> dict[str, Any]:
    """Search body: owner/tag filters, boosted title match, recency ordering."""
    filters: list[dict[str, Any]] = [{"term": {"owner_id": owner_id}}]
    if tag_filter is not None:
        filters.append({"term": {"tags": tag_filter}})

    # Same emptiness rule as the in-process index: no word tokens, no text query.
    text = query_text.strip() if tokenize(query_text) else ""
    should: list[dict[str, Any]] = []
    if text:
        should = [
            {"match": {"title": {"query": text, "boost": TITLE_BOOST}}},
            {"match": {"content": {"query": text}}},
        ]

    recency = {"updated_at": {"order": "desc"}}
    return {
        "query": {
            "bool": {
                "filter": filters,
                "should": should,
                "minimum_should_match": 1 if text else 0,
            }
        },
        "sort": ["_score", recency] if text else [recency],
        "size": size,
    }


class OpenSearchIndex:
    """Search index on an OpenSearch (or Elasticsearch 7-compatible) cluster."""

    def __init__(
        self,
        url: str = "http://localhost:9200",
        *,
        index_name: str = DEFAULT_INDEX_NAME,
        max_results: int = DEFAULT_MAX_RESULTS,
        timeout: float = 2.0,
        refresh: bool = True,
        client: AsyncOpenSearch | None = None,
    ) -> None:
        self.url = url
        self.index_name = index_name
        self.max_results = max_results
        self.refresh = refresh
        self._client = client or AsyncOpenSearch(hosts=[url], timeout=timeout)

    @property
    def name(self) -> str:
        return "opensearch"

    async def ensure_index(self) -> None:
        try:
            if await self._client.indices.exists(index=self.index_name):
                return
            await self._client.indices.create(index=self.index_name, body=INDEX_BODY)
            logger.info("Created search index %s", self.index_name)
        except RequestError as e:
            # Another process created it between exists() and create().
            if e.error == "resource_already_exists_exception":
                return
            raise IndexUnavailable(f"Failed to create index {self.index_name}: {e}") from e
        except OpenSearchException as e:
            raise IndexUnavailable(f"Failed to initialize index {self.index_name}: {e}") from e

    async def index(self, memo: Memo) -> None:
        try:
            await self._client.index(
                index=self.index_name,
                id=memo.id,
                body=memo.to_dict(),
                refresh=self.refresh,
            )
        except OpenSearchException as e:
            raise IndexUnavailable(f"Failed to index memo {memo.id}: {e}") from e

    async def delete(self, memo_id: str) -> None:
        try:
            await self._client.delete(index=self.index_name, id=memo_id, refresh=self.refresh)
        except NotFoundError:
            logger.debug("Memo %s not in index, nothing to delete", memo_id)
        except OpenSearchException as e:
            raise IndexUnavailable(f"Failed to delete memo {memo_id} from index: {e}") from e

    async def search(
        self,
        query_text: str,
        tag_filter: str | None,
        owner_id: str,
    ) -> list[Memo]:
        body = build_query(query_text, tag_filter, owner_id, self.max_results)
        try:
            response = await self._client.search(index=self.index_name, body=body)
        except NotFoundError:
            logger.warning("Search index %s does not exist yet", self.index_name)
            return []
        except OpenSearchException as e:
            raise IndexUnavailable(f"Search failed: {e}") from e

        try:
            hits = response["hits"]["hits"]
        except (KeyError, TypeError) as e:
            raise IndexUnavailable("Invalid search response format") from e

        memos: list[Memo] = []
        for hit in hits:
            try:
                memos.append(Memo.from_dict(hit["_source"]))
            except (KeyError, InvalidMemo) as e:
                logger.warning("Skipping malformed index document %s: %s", hit.get("_id"), e)
        return memos

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except OpenSearchException as e:
            logger.warning("OpenSearch health check failed: %s", e)
            return False

    async def close(self) -> None:
        await self._client.close()
